"""Protocol layer: packet decoding, commands, GBF, and reply assembly."""

from .packets import (
    AsciiPacket,
    BinaryPacket,
    Packet,
    StartSequence,
    StreamPacket,
    read_packet,
)
from .commands import Command, ReplyOption, StreamCommand
from .gbf import ComponentType, GbfContainer, decode_container
from .replies import parse_bx, parse_bx2
