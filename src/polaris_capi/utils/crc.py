"""CRC-16 used by every CAPI frame.

Reflected polynomial 0xA001 with a zero initial value (CRC-16/ARC). ASCII
replies carry it as four hex digits before the carriage return, binary
replies as a little-endian ``uint16`` after the header and the payload.
"""

from __future__ import annotations

POLYNOMIAL = 0xA001


def _build_table() -> tuple[int, ...]:
    table = []
    for i in range(256):
        value = i
        for _ in range(8):
            value = (value >> 1) ^ (POLYNOMIAL if value & 1 else 0)
        table.append(value & 0xFFFF)
    return tuple(table)


CRC_TABLE = _build_table()


def crc16(data: bytes) -> int:
    """Calculate the CRC-16 of ``data``.

    Args:
        data: Bytes to checksum, without any trailing CRC field.

    Returns:
        The 16-bit CRC as an ``int``.
    """
    crc = 0
    for byte in data:
        crc = (CRC_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)) & 0xFFFF
    return crc
