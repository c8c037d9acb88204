"""Tests for command records and command-text builders."""

import logging

import pytest

from polaris_capi.errors import CommandCancelledError
from polaris_capi.protocol.commands import (
    DEFAULT_BX_OPTIONS,
    Command,
    ReplyOption,
    StreamCommand,
    build_bx,
    build_bx2,
    build_unstream,
)
from polaris_capi.protocol.packets import AsciiPacket


def _okay() -> AsciiPacket:
    return AsciiPacket(data="OKAY", is_valid=True)


def test_command_string_without_parameters():
    """A bare command needs a space before the carriage return."""
    assert Command("INIT").command_string == "INIT \r"


def test_command_string_with_parameters():
    assert Command("BX 0801").command_string == "BX 0801\r"


def test_command_string_already_terminated():
    assert Command("APIREV \r").command_string == "APIREV \r"


def test_build_bx_default():
    assert DEFAULT_BX_OPTIONS == ReplyOption.TRANSFORM_DATA | ReplyOption.ALL_TRANSFORMS
    assert build_bx() == "BX 0801"
    assert build_bx(ReplyOption.TRANSFORM_DATA) == "BX 0001"


def test_build_bx2():
    assert build_bx2("--6d=tools") == "BX2 --6d=tools"
    assert build_bx2() == "BX2"
    assert Command(build_bx2()).command_string == "BX2 \r"


def test_build_unstream():
    assert build_unstream("bx2") == "USTREAM --id=bx2"


def test_resolve_first_wins():
    cmd = Command("INIT")
    first = _okay()
    assert cmd.resolve(first)
    assert not cmd.resolve(AsciiPacket(data="ERROR01"))
    assert not cmd.cancel()
    assert cmd.response is first
    assert cmd.done
    assert cmd.has_valid_response
    assert not cmd.cancelled


def test_cancel_stores_error():
    cmd = Command("INIT")
    assert cmd.cancel()
    assert cmd.done
    assert cmd.cancelled
    assert isinstance(cmd.error, CommandCancelledError)
    assert cmd.response is None
    assert not cmd.has_valid_response
    assert not cmd.resolve(_okay())


def test_invalid_response_is_not_valid():
    cmd = Command("INIT")
    cmd.resolve(AsciiPacket(data="ERROR01", error_code=1))
    assert cmd.done
    assert not cmd.has_valid_response


def test_wait_times_out():
    assert not Command("INIT").wait(0.01)


def test_stream_command_string():
    stream = StreamCommand("BX2 --6d=tools", "bx2")
    assert stream.command_string == "STREAM --id=bx2 BX2 --6d=tools\r"


def test_stream_command_interval():
    stream = StreamCommand("BX2 --6d=tools", "bx2", frame_count_divisor=2)
    assert stream.command_string == "STREAM --interval=2 --id=bx2 BX2 --6d=tools\r"


def test_stream_id_defaults_to_command():
    assert StreamCommand("TX 0001").stream_id == "TX 0001"


def test_stream_divisor_must_be_positive():
    with pytest.raises(ValueError):
        StreamCommand("BX2", "bx2", frame_count_divisor=0)


def test_stream_push_calls_listeners_in_order():
    stream = StreamCommand("BX2", "bx2")
    seen = []
    stream.add_listener(lambda p: seen.append(("a", p)))
    stream.add_listener(lambda p: seen.append(("b", p)))

    packet = _okay()
    stream.push(packet)

    assert seen == [("a", packet), ("b", packet)]
    assert stream.response is packet
    assert stream.packet_count == 1
    assert stream.wait_accepted(0)


def test_stream_listener_failure_is_logged(caplog):
    """A failing listener does not stop the others."""
    stream = StreamCommand("BX2", "bx2")
    seen = []

    def broken(packet):
        raise RuntimeError("listener blew up")

    stream.add_listener(broken)
    stream.add_listener(seen.append)

    with caplog.at_level(logging.ERROR):
        stream.push(_okay())

    assert len(seen) == 1
    assert "listener blew up" in caplog.text


def test_stream_remove_listener():
    stream = StreamCommand("BX2", "bx2")
    seen = []
    stream.add_listener(seen.append)
    stream.remove_listener(seen.append)
    stream.push(_okay())
    assert seen == []


def test_cancelled_stream_is_not_accepted():
    """Dropping a stream wakes waiters without reporting acceptance."""
    stream = StreamCommand("BX2", "bx2")
    stream.cancel()
    assert stream.done
    assert not stream.wait_accepted(0)
    assert stream.packet_count == 0
