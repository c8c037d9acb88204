"""Tests for little-endian field readers."""

import io
import struct

import pytest

from polaris_capi.errors import TruncatedFrameError
from polaris_capi.utils.byte_codec import (
    read_exact,
    unpack_float32,
    unpack_string,
    unpack_uint,
)


class _Trickle:
    """Reader that hands out one byte per call."""

    def __init__(self, data: bytes):
        self._data = io.BytesIO(data)

    def read(self, size):
        return self._data.read(min(size, 1))


def test_read_exact_collects_short_reads():
    assert read_exact(_Trickle(b"abcd"), 4) == b"abcd"


def test_read_exact_truncated():
    with pytest.raises(TruncatedFrameError):
        read_exact(io.BytesIO(b"ab"), 3)


def test_truncated_is_eof_error():
    """Callers that only know about EOFError still catch truncation."""
    with pytest.raises(EOFError):
        read_exact(io.BytesIO(b""), 1)


def test_read_exact_negative_length():
    with pytest.raises(ValueError):
        read_exact(io.BytesIO(b"ab"), -1)


def test_read_exact_zero_length():
    assert read_exact(io.BytesIO(b""), 0) == b""


def test_unpack_uint_little_endian():
    reader = io.BytesIO(bytes([0xC4, 0xA5, 0x01, 0x02, 0x03, 0x04, 0xFF]))
    assert unpack_uint(reader, 2) == 0xA5C4
    assert unpack_uint(reader, 4) == 0x04030201
    assert unpack_uint(reader, 1) == 0xFF


def test_unpack_uint_rejects_bad_width():
    with pytest.raises(ValueError):
        unpack_uint(io.BytesIO(bytes(8)), 5)
    with pytest.raises(ValueError):
        unpack_uint(io.BytesIO(bytes(8)), 0)


def test_unpack_float32():
    reader = io.BytesIO(struct.pack("<ff", 1.5, -20.25))
    assert unpack_float32(reader) == 1.5
    assert unpack_float32(reader) == -20.25


def test_unpack_float32_truncated():
    with pytest.raises(TruncatedFrameError):
        unpack_float32(io.BytesIO(b"\x00\x00"))


def test_unpack_string():
    assert unpack_string(io.BytesIO(b"bx2-stream"), 3) == "bx2"
