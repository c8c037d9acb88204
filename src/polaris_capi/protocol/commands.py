"""Command records and builders for the CAPI text protocol.

A :class:`Command` tracks one request and the single packet that answers it.
A :class:`StreamCommand` subscribes to a command the device repeats on its
own, and receives every packet tagged with its stream id.
"""

from __future__ import annotations

import logging
import threading
from enum import IntFlag
from typing import Callable

from ..errors import CommandCancelledError
from .packets import Packet

logger = logging.getLogger(__name__)

PacketListener = Callable[[Packet], None]


class ReplyOption(IntFlag):
    """BX reply option flags."""

    TRANSFORM_DATA = 0x0001
    TOOL_AND_MARKER_INFO = 0x0002
    STRAY_ACTIVE_MARKERS = 0x0004
    TOOL_MARKER_DATA = 0x0008
    ALL_TRANSFORMS = 0x0800
    STRAY_PASSIVE_MARKERS = 0x1000


# Only transform data can be parsed from a BX reply.
SUPPORTED_BX_OPTIONS = ReplyOption.TRANSFORM_DATA | ReplyOption.ALL_TRANSFORMS
DEFAULT_BX_OPTIONS = SUPPORTED_BX_OPTIONS


class Command:
    """A one-shot request and the packet that answers it.

    The command is resolved exactly once, either by :meth:`resolve` with the
    reply or by :meth:`cancel` when the connection goes away. Later calls
    to either are ignored.
    """

    def __init__(self, command: str) -> None:
        self._command = command
        self._lock = threading.Lock()
        self._done = threading.Event()
        self.response: Packet | None = None
        self.error: Exception | None = None

    @property
    def command(self) -> str:
        return self._command

    @property
    def command_string(self) -> str:
        """The text written to the device, terminated by a carriage return.

        A command without parameters needs a trailing space before the CR.
        """
        if not self._command or self._command.endswith("\r"):
            return self._command
        if " " in self._command:
            return self._command + "\r"
        return self._command + " \r"

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def cancelled(self) -> bool:
        return isinstance(self.error, CommandCancelledError)

    @property
    def has_valid_response(self) -> bool:
        return self.response is not None and self.response.is_valid

    def resolve(self, packet: Packet) -> bool:
        """Store the reply and wake the waiter.

        Returns:
            ``False`` if the command had already been resolved or cancelled.
        """
        with self._lock:
            if self._done.is_set():
                return False
            self.response = packet
            self._done.set()
        return True

    def cancel(self, error: Exception | None = None) -> bool:
        """Resolve the command without a reply."""
        with self._lock:
            if self._done.is_set():
                return False
            self.error = error or CommandCancelledError(
                f"Command cancelled: {self._command}"
            )
            self._done.set()
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until resolved. Returns ``False`` on timeout."""
        return self._done.wait(timeout)

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "done" if self.done else "pending"
        return f"{type(self).__name__}({self._command!r}, {state})"


class StreamCommand(Command):
    """A subscription to a command the device streams unprompted.

    Every packet tagged with :attr:`stream_id` replaces :attr:`response` and is
    passed to each listener in registration order. The accepted signal
    (:meth:`wait_accepted`) fires on the first packet only.
    """

    def __init__(
        self,
        command: str,
        stream_id: str = "",
        frame_count_divisor: int = 1,
    ) -> None:
        super().__init__(command)
        if frame_count_divisor < 1:
            raise ValueError(
                f"Frame count divisor must be at least 1, got {frame_count_divisor}"
            )
        self.stream_id = stream_id or command
        self.frame_count_divisor = frame_count_divisor
        self.listeners: list[PacketListener] = []
        self.packet_count = 0

    @property
    def command_string(self) -> str:
        parts = ["STREAM"]
        if self.frame_count_divisor > 1:
            parts.append(f"--interval={self.frame_count_divisor}")
        parts.append(f"--id={self.stream_id}")
        parts.append(super().command_string)
        return " ".join(parts)

    def add_listener(self, listener: PacketListener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: PacketListener) -> None:
        self.listeners.remove(listener)

    def push(self, packet: Packet) -> None:
        """Deliver a streamed packet to the listeners."""
        with self._lock:
            self.response = packet
            self.packet_count += 1
            self._done.set()
            listeners = list(self.listeners)

        for listener in listeners:
            try:
                listener(packet)
            except Exception:
                logger.exception("Listener for stream %r failed", self.stream_id)

    def wait_accepted(self, timeout: float | None = None) -> bool:
        """Block until the first streamed packet arrives.

        Returns ``False`` on timeout or if the stream was dropped first.
        """
        return self.wait(timeout) and not self.cancelled

    def __repr__(self) -> str:
        return (
            f"StreamCommand({self._command!r}, stream_id={self.stream_id!r}, "
            f"packets={self.packet_count})"
        )


def build_bx(options: int = DEFAULT_BX_OPTIONS) -> str:
    """Build a BX command, e.g. ``BX 0801``."""
    return f"BX {int(options):04X}"


def build_bx2(options: str = "") -> str:
    """Build a BX2 command; ``options`` is passed through, e.g. ``--6d=tools``."""
    return f"BX2 {options}".rstrip()


def build_unstream(stream_id: str) -> str:
    return f"USTREAM --id={stream_id}"
