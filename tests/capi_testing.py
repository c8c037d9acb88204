"""Shared test doubles and frame builders."""

from __future__ import annotations

import struct
import threading
import time

from polaris_capi.protocol.gbf import ComponentType
from polaris_capi.protocol.packets import build_ascii_reply


class MemoryChannel:
    """In-memory byte channel.

    Bytes passed to :meth:`feed` are returned by :meth:`read`. ``read`` waits
    briefly and returns ``b""`` when nothing is queued, like a serial port
    timing out. ``responder`` is called with every written command and may
    return bytes to queue as the device's reply.
    """

    def __init__(self, responder=None, read_timeout: float = 0.05) -> None:
        self.responder = responder
        self.written: list[bytes] = []
        self.fail_writes = False
        self._read_timeout = read_timeout
        self._incoming = bytearray()
        self._cond = threading.Condition()
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def connection_info(self) -> str:
        return "memory"

    def feed(self, data: bytes) -> None:
        with self._cond:
            self._incoming += data
            self._cond.notify_all()

    def read(self, size: int) -> bytes:
        with self._cond:
            if self._open and not self._incoming:
                self._cond.wait(self._read_timeout)
            if not self._open:
                raise ConnectionError("Channel is closed")
            data = bytes(self._incoming[:size])
            del self._incoming[:size]
            return data

    def write(self, data: bytes) -> None:
        if not self._open:
            raise ConnectionError("Channel is closed")
        if self.fail_writes:
            raise ConnectionError("Write failed")
        self.written.append(bytes(data))
        if self.responder is not None:
            reply = self.responder(bytes(data).decode("ascii"))
            if reply:
                self.feed(reply)

    def close(self) -> None:
        with self._cond:
            self._open = False
            self._cond.notify_all()


def scripted_responder(replies: dict[str, bytes] | None = None):
    """Reply to each command by its first word, ``OKAY`` when not listed.

    A value of ``None`` in ``replies`` means the device stays silent.
    """
    replies = replies or {}

    def respond(text: str) -> bytes | None:
        word = text.split(" ", 1)[0].strip()
        if word in replies:
            return replies[word]
        return build_ascii_reply("OKAY")

    return respond


def wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


# ─── GBF ─────────────────────────────────────────────────────────────

def gbf_component(component_type: int, items: bytes, item_count: int, option: int = 0) -> bytes:
    header = struct.pack("<HIHI", component_type, 12 + len(items), option, item_count)
    return header + items


def gbf_container(*components: bytes, version: int = 1) -> bytes:
    return struct.pack("<HH", version, len(components)) + b"".join(components)


def data_6d_item(
    handle: int,
    status: int = 0,
    quaternion=(1.0, 0.0, 0.0, 0.0),
    position=(10.0, 20.0, 30.0),
    error: float = 0.5,
) -> bytes:
    item = struct.pack("<HH", handle, status)
    if status & 0x0100:
        return item
    return item + struct.pack("<8f", *quaternion, *position, error)


def data_3d_item(handle: int, markers) -> bytes:
    """``markers`` is a list of ``(status, index, (x, y, z))``."""
    item = struct.pack("<HH", handle, len(markers))
    for status, index, position in markers:
        item += struct.pack("<BBH", status, 0, index)
        if status != 0x01:
            item += struct.pack("<3f", *position)
    return item


def alert_item(code: int, sub_type: int) -> bytes:
    return struct.pack("<BBH", code, 0, sub_type)


def frame_item(
    container: bytes,
    frame_type: int = 0x02,
    sequence_index: int = 0,
    status: int = 0,
    number: int = 42,
    timespec_s: int = 100,
    timespec_ns: int = 500_000_000,
) -> bytes:
    header = struct.pack(
        "<BBHIII", frame_type, sequence_index, status, number, timespec_s, timespec_ns
    )
    return header + container


def bx2_payload(*frame_items: bytes) -> bytes:
    """A BX2 reply payload: one container holding one Frame component."""
    frame = gbf_component(ComponentType.FRAME, b"".join(frame_items), len(frame_items))
    return gbf_container(frame)


def single_tool_bx2_payload(handle: int = 1) -> bytes:
    inner = gbf_container(
        gbf_component(ComponentType.DATA_6D, data_6d_item(handle), 1),
    )
    return bx2_payload(frame_item(inner))


# ─── BX ──────────────────────────────────────────────────────────────

def bx_tool(
    handle: int,
    handle_status: int = 0x01,
    quaternion=(1.0, 0.0, 0.0, 0.0),
    position=(10.0, 20.0, 30.0),
    error: float = 0.25,
    port_status: int = 0,
    frame_number: int = 7,
) -> bytes:
    item = struct.pack("<BB", handle, handle_status)
    if handle_status != 0x01:
        return item
    return item + struct.pack("<8fII", *quaternion, *position, error, port_status, frame_number)


def bx_payload(*tools: bytes, system_status: int = 0) -> bytes:
    return bytes([len(tools)]) + b"".join(tools) + struct.pack("<H", system_status)
