"""Low-level helpers: CRC, byte unpacking, and the replay buffer."""

from .crc import crc16
from .byte_codec import read_exact, unpack_float32, unpack_string, unpack_uint
from .replay_buffer import ReplayBuffer
