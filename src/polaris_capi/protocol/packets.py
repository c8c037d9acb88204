"""Packet model and decoder for frames read from a CAPI byte channel.

A single channel carries three kinds of frame::

    ASCII         <content><CRC as 4 hex digits>\\r
    Binary short  A5C4 | length (2) | header CRC (2) | payload | payload CRC (2)
    Stream        B5D4 | id length (2) | id | header CRC (2) | nested frame

Binary long replies (magic ``A5C8``) are recognised but not decoded. ASCII
replies have no magic, so anything unrecognised is read as ASCII.

All integers are little-endian. Decoders never raise on CRC mismatch; the
returned packet is marked invalid instead.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from enum import IntEnum

from ..errors import UnsupportedFrameError
from ..utils.byte_codec import read_exact, unpack_string, unpack_uint
from ..utils.crc import crc16
from .codes import error_string, parse_reply_code

logger = logging.getLogger(__name__)

CR = 0x0D
ASCII_CRC_LENGTH = 4
MIN_ASCII_LENGTH = ASCII_CRC_LENGTH + 1  # CRC digits + CR
BINARY_HEADER_SIZE = 4
CRC_SIZE = 2


class StartSequence(IntEnum):
    """Magic numbers at the start of binary frames."""

    SHORT_REPLY = 0xA5C4
    LONG_REPLY = 0xA5C8
    STREAM_REPLY = 0xB5D4


@dataclass
class Packet:
    """A decoded frame and the raw bytes it was decoded from."""

    raw: bytearray = field(default_factory=bytearray)
    is_valid: bool = False

    def __str__(self) -> str:
        return self.raw.hex(" ")


@dataclass
class AsciiPacket(Packet):
    """An ASCII reply: a status message, parameter value, or error."""

    data: str = ""
    received_crc: int = 0
    calculated_crc: int = 0
    error_code: int = 0

    @property
    def error_string(self) -> str:
        return error_string(self.error_code)

    def __str__(self) -> str:
        return self.raw.decode("ascii", errors="replace").rstrip("\r")


@dataclass
class BinaryPacket(Packet):
    """A binary reply wrapping BX or BX2 payloads."""

    start_sequence: StartSequence | int = 0
    reply_length: int = 0
    header_crc: int = 0
    header_okay: bool = False
    payload: bytes = b""
    payload_crc: int = 0
    payload_okay: bool = False

    def payload_stream(self) -> io.BytesIO:
        """A seekable reader over the payload."""
        return io.BytesIO(self.payload)


@dataclass
class StreamPacket(Packet):
    """A streamed reply: a header naming the stream plus a nested packet."""

    start_sequence: StartSequence | int = StartSequence.STREAM_REPLY
    stream_id: str = ""
    header_crc: int = 0
    header_okay: bool = False
    contents: Packet | None = None

    def __str__(self) -> str:
        return f"{self.raw.hex(' ')} [{self.stream_id}] {self.contents}"


def _start_sequence(value: int) -> StartSequence | int:
    try:
        return StartSequence(value)
    except ValueError:
        return value


def read_packet(reader) -> Packet:
    """Decode the next frame from a seekable reader.

    Peeks the two-byte start sequence, rewinds, and hands the reader to the
    matching decoder.

    Raises:
        UnsupportedFrameError: For binary long replies.
        TruncatedFrameError: If the reader runs out mid-frame.
    """
    magic = unpack_uint(reader, 2)
    reader.seek(-2, io.SEEK_CUR)

    if magic == StartSequence.SHORT_REPLY:
        return decode_binary(reader)
    if magic == StartSequence.STREAM_REPLY:
        return decode_stream(reader)
    if magic == StartSequence.LONG_REPLY:
        # Consume the magic so the next read does not hit it again.
        reader.seek(2, io.SEEK_CUR)
        raise UnsupportedFrameError("Binary long replies are not implemented")
    return decode_ascii(reader)


def decode_ascii(reader) -> AsciiPacket:
    """Read an ASCII reply up to and including its carriage return."""
    packet = AsciiPacket()
    while True:
        packet.raw += read_exact(reader, 1)
        if len(packet.raw) >= MIN_ASCII_LENGTH and packet.raw[-1] == CR:
            break

    content = bytes(packet.raw[:-MIN_ASCII_LENGTH])
    crc_text = bytes(packet.raw[-MIN_ASCII_LENGTH:-1]).decode("ascii", errors="replace")
    packet.data = content.decode("ascii", errors="replace")

    try:
        packet.received_crc = int(crc_text, 16)
    except ValueError:
        logger.debug("Malformed ASCII CRC field %r", crc_text)
        return packet

    packet.calculated_crc = crc16(content)
    if packet.received_crc != packet.calculated_crc:
        return packet

    try:
        packet.error_code = parse_reply_code(packet.data)
    except ValueError:
        logger.debug("Malformed error code in reply %r", packet.data)
        return packet

    # A well formed ERROR or WARNING reply carries no usable data.
    packet.is_valid = packet.error_code == 0
    return packet


def decode_binary(reader) -> BinaryPacket:
    """Read a binary short reply: header, header CRC, payload, payload CRC."""
    packet = BinaryPacket()

    header = read_exact(reader, BINARY_HEADER_SIZE)
    packet.raw += header
    packet.start_sequence = _start_sequence(int.from_bytes(header[0:2], "little"))
    packet.reply_length = int.from_bytes(header[2:4], "little")

    crc_bytes = read_exact(reader, CRC_SIZE)
    packet.raw += crc_bytes
    packet.header_crc = int.from_bytes(crc_bytes, "little")
    packet.header_okay = crc16(header) == packet.header_crc
    if not packet.header_okay:
        # The length field cannot be trusted, so read nothing further.
        return packet

    packet.payload = read_exact(reader, packet.reply_length)
    packet.raw += packet.payload

    if packet.start_sequence == StartSequence.SHORT_REPLY:
        crc_bytes = read_exact(reader, CRC_SIZE)
        packet.raw += crc_bytes
        packet.payload_crc = int.from_bytes(crc_bytes, "little")
        packet.payload_okay = crc16(packet.payload) == packet.payload_crc
    else:
        packet.payload_okay = True

    packet.is_valid = packet.header_okay and packet.payload_okay
    return packet


def decode_stream(reader) -> StreamPacket:
    """Read a stream header and the packet nested inside it."""
    packet = StreamPacket()

    packet.start_sequence = _start_sequence(unpack_uint(reader, 2))
    id_length = unpack_uint(reader, 2)

    # Re-read the whole header, id included, for the CRC.
    reader.seek(-BINARY_HEADER_SIZE, io.SEEK_CUR)
    header = read_exact(reader, BINARY_HEADER_SIZE + id_length)
    packet.raw += header

    reader.seek(-id_length, io.SEEK_CUR)
    packet.stream_id = unpack_string(reader, id_length)

    crc_bytes = read_exact(reader, CRC_SIZE)
    packet.raw += crc_bytes
    packet.header_crc = int.from_bytes(crc_bytes, "little")
    packet.header_okay = crc16(header) == packet.header_crc
    if not packet.header_okay:
        return packet

    packet.contents = read_packet(reader)
    packet.is_valid = packet.contents.is_valid
    return packet


def build_ascii_reply(content: str) -> bytes:
    """Frame ``content`` the way the device frames an ASCII reply."""
    body = content.encode("ascii")
    return body + f"{crc16(body):04X}".encode("ascii") + b"\r"


def build_binary_reply(payload: bytes) -> bytes:
    """Frame ``payload`` as a binary short reply."""
    header = (
        StartSequence.SHORT_REPLY.to_bytes(2, "little")
        + len(payload).to_bytes(2, "little")
    )
    return (
        header
        + crc16(header).to_bytes(2, "little")
        + payload
        + crc16(payload).to_bytes(2, "little")
    )


def build_stream_reply(stream_id: str, frame: bytes) -> bytes:
    """Wrap an already framed reply in a stream header for ``stream_id``."""
    sid = stream_id.encode("ascii")
    header = (
        StartSequence.STREAM_REPLY.to_bytes(2, "little")
        + len(sid).to_bytes(2, "little")
        + sid
    )
    return header + crc16(header).to_bytes(2, "little") + frame
