"""Command/response correlation over a single CAPI byte channel.

One reader thread owns the channel's read side. It decodes one packet at a
time and routes it:

- :class:`~polaris_capi.protocol.packets.StreamPacket` goes to the
  :class:`~polaris_capi.protocol.commands.StreamCommand` registered under its
  stream id;
- anything else answers the oldest pending
  :class:`~polaris_capi.protocol.commands.Command`, since the device replies
  in the order commands were sent.

Writers append to the pending queue and write the command text inside the
same lock, so queue order always equals send order. When the channel stops
being readable the reader closes it and cancels everything still pending.
"""

from __future__ import annotations

import logging
import threading
from collections import deque

from .errors import CommandCancelledError, FramingError, UnsupportedOptionError
from .models.tracking import Tool
from .protocol.commands import (
    DEFAULT_BX_OPTIONS,
    Command,
    StreamCommand,
    build_bx,
    build_bx2,
    build_unstream,
)
from .protocol.packets import AsciiPacket, Packet, StreamPacket, read_packet
from .protocol.replies import check_bx_options, parse_bx, parse_bx2
from .utils.replay_buffer import ReplayBuffer

REPLAY_BUFFER_SIZE = 1024
RESPONSE_TIMEOUT_S = 15.0


class Capi:
    """A CAPI connection to a position sensor.

    Usage::

        channel = TCPChannel("192.168.1.10").open()
        with Capi(channel) as capi:
            capi.initialize()
            capi.tracking_start()
            tools = capi.send_bx2("--6d=tools")

    Args:
        channel: An open :class:`~polaris_capi.transport.channels.ByteChannel`.
        logger: Logger for protocol diagnostics; defaults to this module's.
        buffer_size: Size of the replay window used to rewind the channel.
        response_timeout: Seconds :meth:`send` waits for a reply.
        log_transit: Log every frame sent and received at debug level.
    """

    def __init__(
        self,
        channel,
        logger: logging.Logger | None = None,
        buffer_size: int = REPLAY_BUFFER_SIZE,
        response_timeout: float = RESPONSE_TIMEOUT_S,
        log_transit: bool = False,
    ) -> None:
        self._channel = channel
        self._stream = ReplayBuffer(channel, buffer_size)
        self._log = logger or logging.getLogger(__name__)
        self._response_timeout = response_timeout
        self.log_transit = log_transit

        self._connected = False
        self._tracking = False

        self._pending: deque[Command] = deque()
        self._pending_lock = threading.Lock()
        self._streams: dict[str, StreamCommand] = {}
        self._streams_lock = threading.Lock()
        self._reader: threading.Thread | None = None

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def tracking(self) -> bool:
        return self._tracking

    @property
    def channel(self):
        return self._channel

    @property
    def pending_count(self) -> int:
        with self._pending_lock:
            return len(self._pending)

    @property
    def stream_ids(self) -> list[str]:
        with self._streams_lock:
            return list(self._streams)

    def get_stream(self, stream_id: str) -> StreamCommand | None:
        with self._streams_lock:
            return self._streams.get(stream_id)

    # ─── LIFECYCLE ───────────────────────────────────────────────────

    def start(self) -> Capi:
        """Start the reader thread. The channel must already be open."""
        if self._reader is not None and self._reader.is_alive():
            return self
        self._connected = True
        self._reader = threading.Thread(
            target=self._listen, name="capi-reader", daemon=True
        )
        self._reader.start()
        return self

    def disconnect(self) -> None:
        """Stop tracking if needed, close the channel, and join the reader."""
        if self._connected and self._tracking:
            self.tracking_stop()

        self._connected = False
        self._tracking = False
        self._stream.close()

        reader = self._reader
        if reader is not None and reader is not threading.current_thread():
            reader.join(self._response_timeout)
            if reader.is_alive():
                self._log.warning("Reader thread did not stop")

    def __enter__(self) -> Capi:
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    # ─── SEND / RECEIVE ──────────────────────────────────────────────

    def submit(self, command: str | Command, expect_response: bool = True) -> Command:
        """Queue and write a command without waiting for its reply.

        When ``expect_response`` is set the command is queued and written
        under one lock so replies pair with commands in send order. A command
        that cannot be written is cancelled immediately.
        """
        if isinstance(command, str):
            command = Command(command)
        text = command.command_string
        if not text:
            raise ValueError("Cannot send an empty command")

        if not self._connected:
            command.cancel(CommandCancelledError(f"Not connected: {command.command!r}"))
            return command

        with self._pending_lock:
            if expect_response:
                self._pending.append(command)
            sent = self._write(text)
            if not sent and expect_response:
                self._pending.pop()

        if not sent:
            command.cancel(CommandCancelledError(f"Could not send {command.command!r}"))
        return command

    def send(
        self,
        command: str | Command,
        expect_response: bool = True,
        timeout: float | None = None,
    ) -> Command:
        """Send a command and wait for its reply.

        On timeout the command is returned unresolved; it stays queued so
        that a late reply still pairs with it.
        """
        command = self.submit(command, expect_response)
        if expect_response:
            wait = self._response_timeout if timeout is None else timeout
            if not command.wait(wait):
                self._log.warning(
                    "No response within %.1f s for command: %s", wait, command.command
                )
        return command

    def _write(self, text: str) -> bool:
        if self.log_transit:
            self._log.debug(">> %s", text.rstrip("\r"))
        try:
            self._stream.write(text.encode("ascii"))
            return True
        except OSError as e:
            self._log.error("Write failed: %s", e)

        self._connected = False
        self._tracking = False
        self._stream.close()
        return False

    def start_streaming(
        self,
        command: str,
        stream_id: str = "",
        frame_count_divisor: int = 1,
    ) -> StreamCommand:
        """Ask the device to stream ``command`` and subscribe to its packets.

        Add listeners to the returned :class:`StreamCommand` to receive data.
        The subscription is registered before the STREAM command is sent, as
        streamed packets may arrive before its acknowledgement.

        Raises:
            ValueError: If ``stream_id`` (or ``command``, when no id is given)
                is already streaming.
        """
        stream = StreamCommand(command, stream_id, frame_count_divisor)

        with self._streams_lock:
            if stream.stream_id in self._streams:
                raise ValueError(
                    f"Stream id {stream.stream_id!r} is taken. Stop it or use a different id."
                )
            self._streams[stream.stream_id] = stream

        ack = self.send(stream.command_string)
        if not ack.has_valid_response:
            self._log.warning("Stream %r was not acknowledged", stream.stream_id)
        return stream

    def stop_streaming(self, stream: str | StreamCommand) -> bool:
        """Stop a stream by id or by its :class:`StreamCommand`.

        Returns:
            True if the device acknowledged and the subscription was dropped.
        """
        stream_id = stream.stream_id if isinstance(stream, StreamCommand) else stream
        command = self.send(build_unstream(stream_id))
        if not command.has_valid_response:
            self._log.warning("Failed to stop stream %r", stream_id)
            return False

        with self._streams_lock:
            self._streams.pop(stream_id, None)
        return True

    # ─── READER ──────────────────────────────────────────────────────

    def _listen(self) -> None:
        while self._connected:
            try:
                packet = read_packet(self._stream)
            except FramingError as e:
                self._log.error("Discarding undecodable frame: %s", e)
                continue
            except Exception as e:
                # Closing the channel on disconnect also lands here.
                if self._connected:
                    self._log.error("Read failed: %s", e)
                break

            self._dispatch(packet)

        self._teardown()

    def _dispatch(self, packet: Packet) -> None:
        if self.log_transit:
            self._log.debug("<< %s", packet)

        if isinstance(packet, AsciiPacket) and packet.error_code:
            self._log.warning("%s (%s)", packet.error_string, packet.data)

        if isinstance(packet, StreamPacket):
            self._dispatch_stream(packet)
        else:
            self._dispatch_reply(packet)

    def _dispatch_stream(self, packet: StreamPacket) -> None:
        with self._streams_lock:
            stream = self._streams.get(packet.stream_id)

        if stream is None:
            self._log.warning(
                "Packet received for stream id %r but it is not registered",
                packet.stream_id,
            )
            return
        if packet.contents is None:
            self._log.warning("Stream %r packet failed its header CRC", packet.stream_id)
            return
        stream.push(packet.contents)

    def _dispatch_reply(self, packet: Packet) -> None:
        with self._pending_lock:
            command = self._pending.popleft() if self._pending else None

        if command is None:
            self._log.warning("Packet not handled: %s", packet)
            return
        command.resolve(packet)

    def _teardown(self) -> None:
        self._log.info("Listen thread stopped")
        self._connected = False
        self._tracking = False
        self._stream.close()

        with self._pending_lock:
            pending = list(self._pending)
            self._pending.clear()
        with self._streams_lock:
            streams = list(self._streams.values())
            self._streams.clear()

        for command in pending:
            command.cancel(CommandCancelledError("Could not read data"))
        for stream in streams:
            stream.cancel(CommandCancelledError(f"Stream {stream.stream_id!r} dropped"))

    # ─── COMMANDS ────────────────────────────────────────────────────

    def reset(self) -> bool:
        """Send RESET. The device restarts and does not reply."""
        command = self.send("RESET", expect_response=False)
        self._tracking = False
        return not command.cancelled

    def initialize(self) -> bool:
        return self.send("INIT").has_valid_response

    def get_api_revision(self) -> str | None:
        command = self.send("APIREV")
        if command.has_valid_response and isinstance(command.response, AsciiPacket):
            return command.response.data
        return None

    def tracking_start(self) -> bool:
        if self._tracking:
            return True
        self._tracking = self.send("TSTART").has_valid_response
        return self._tracking

    def tracking_stop(self) -> bool:
        if not self._tracking:
            return True
        if not self.send("TSTOP").has_valid_response:
            return False
        self._tracking = False
        return True

    def send_bx(self, options: int = DEFAULT_BX_OPTIONS) -> list[Tool]:
        """Request poses with BX. Only transform data options are supported."""
        try:
            check_bx_options(options)
        except UnsupportedOptionError as e:
            self._log.error("%s", e)
            return []

        command = self.send(build_bx(options))
        if command.has_valid_response:
            return parse_bx(command.response, options)
        return []

    def send_bx2(self, options: str = "") -> list[Tool]:
        """Request poses with BX2, e.g. ``send_bx2("--6d=tools")``."""
        command = self.send(build_bx2(options))
        if command.has_valid_response:
            return parse_bx2(command.response)
        return []

    @staticmethod
    def supports_bx2(api_revision: str | None) -> bool:
        """True for API revisions of the G family, version 3 or newer."""
        if not api_revision:
            return False
        try:
            major = int(api_revision[2:5])
        except ValueError:
            return False
        return api_revision[0] == "G" and major >= 3
