"""Tests for CRC-16 calculation."""

from polaris_capi.utils.crc import CRC_TABLE, crc16


def _crc16_bitwise(data: bytes) -> int:
    crc = 0
    for byte in data:
        crc ^= byte
        for _ in range(8):
            crc = (crc >> 1) ^ 0xA001 if crc & 1 else crc >> 1
    return crc


def test_crc16_empty():
    """CRC of empty data is the zero initial value."""
    assert crc16(b"") == 0


def test_crc16_check_value():
    """Standard check input for CRC-16/ARC."""
    assert crc16(b"123456789") == 0xBB3D


def test_crc16_okay_reply():
    """The CRC the device appends to an OKAY reply."""
    result = crc16(b"OKAY")
    assert result == 0xA896, f"Expected 0xA896, got 0x{result:04X}"


def test_crc16_table_matches_bitwise():
    """Table-driven result agrees with a bit-at-a-time computation."""
    assert len(CRC_TABLE) == 256
    for data in (b"\x00", b"\xff", b"APIREV ", bytes(range(256))):
        assert crc16(data) == _crc16_bitwise(data)


def test_crc16_accepts_bytearray():
    assert crc16(bytearray(b"OKAY")) == crc16(b"OKAY")


def test_crc16_different_inputs():
    """Different inputs should produce different CRCs."""
    assert crc16(b"\x01") != crc16(b"\x02")
