"""Little-endian field readers shared by every decoder.

Each helper takes any object with a ``read(size)`` method: a
:class:`~polaris_capi.utils.replay_buffer.ReplayBuffer` wrapped around the
device channel, or an ``io.BytesIO`` over a binary payload.
"""

from __future__ import annotations

import struct

from ..errors import TruncatedFrameError


def read_exact(reader, size: int) -> bytes:
    """Read exactly ``size`` bytes.

    Raises:
        TruncatedFrameError: If the reader returns no data before ``size``
            bytes were collected.
    """
    if size < 0:
        raise ValueError(f"Cannot read a negative length ({size})")
    data = bytearray()
    while len(data) < size:
        chunk = reader.read(size - len(data))
        if not chunk:
            raise TruncatedFrameError(
                f"Expected {size} bytes, got {len(data)}"
            )
        data += chunk
    return bytes(data)


def unpack_uint(reader, size: int = 4) -> int:
    """Unpack a little-endian unsigned integer of 1 to 4 bytes."""
    if not 1 <= size <= 4:
        raise ValueError(f"Integer width must be 1-4 bytes, got {size}")
    return int.from_bytes(read_exact(reader, size), "little")


def unpack_float32(reader) -> float:
    """Unpack an IEEE-754 single precision float."""
    try:
        return struct.unpack("<f", read_exact(reader, 4))[0]
    except TruncatedFrameError as e:
        raise TruncatedFrameError(f"Not enough data for a float: {e}") from e


def unpack_string(reader, length: int) -> str:
    """Unpack ``length`` bytes as an ASCII string."""
    return read_exact(reader, length).decode("ascii", errors="replace")
