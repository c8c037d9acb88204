"""Byte channels to the position sensor over TCP or a serial port.

The protocol core only needs :class:`ByteChannel`: blocking reads that give
up after a timeout, blocking writes, and a ``close`` that makes the next read
fail promptly so the reader thread can exit.

Device guides allow up to 12 seconds for some replies, so serial timeouts
default to 15 seconds. The TCP read timeout is shorter; it only bounds how
long a read blocks before the caller gets ``b""`` and may retry.
"""

from __future__ import annotations

import logging
import socket
import threading
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DEFAULT_TCP_PORT = 8765
TCP_READ_TIMEOUT_S = 3.0
DEFAULT_BAUDRATE = 9600
SERIAL_TIMEOUT_S = 15.0


@runtime_checkable
class ByteChannel(Protocol):
    """What the protocol core requires of a transport."""

    @property
    def is_open(self) -> bool: ...

    def read(self, size: int) -> bytes:
        """Return up to ``size`` bytes, or ``b""`` if none arrived in time.

        Raises:
            ConnectionError: Once the channel is closed.
        """
        ...

    def write(self, data: bytes) -> None: ...

    def close(self) -> None: ...


class TCPChannel:
    """CAPI over a TCP socket (Ethernet-connected devices).

    Usage::

        channel = TCPChannel("192.168.1.10")
        channel.open()
        channel.write(b"APIREV \\r")
        data = channel.read(64)
        channel.close()
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_TCP_PORT,
        timeout: float = TCP_READ_TIMEOUT_S,
    ) -> None:
        self._host = host
        self._port = port
        self._timeout = timeout
        self._sock: socket.socket | None = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    @property
    def connection_info(self) -> str:
        return f"{self._host}:{self._port}"

    def open(self) -> TCPChannel:
        """Connect to the device.

        Raises:
            ConnectionError: If the socket cannot be connected.
        """
        try:
            sock = socket.create_connection((self._host, self._port), self._timeout)
        except OSError as e:
            raise ConnectionError(
                f"Could not connect to {self.connection_info}: {e}"
            ) from e
        sock.settimeout(self._timeout)
        self._sock = sock
        logger.info("Connected to %s", self.connection_info)
        return self

    def read(self, size: int) -> bytes:
        sock = self._sock
        if sock is None:
            raise ConnectionError("Channel is closed")
        try:
            data = sock.recv(size)
        except socket.timeout:
            return b""
        if not data:
            raise ConnectionError(f"Connection to {self.connection_info} closed by peer")
        return data

    def write(self, data: bytes) -> None:
        sock = self._sock
        if sock is None:
            raise ConnectionError("Channel is closed")
        sock.sendall(data)

    def close(self) -> None:
        with self._lock:
            sock, self._sock = self._sock, None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # already disconnected
        sock.close()
        logger.info("Disconnected from %s", self.connection_info)


class SerialChannel:
    """CAPI over a serial port, using pyserial.

    The port opens at ``baudrate``; negotiating a faster rate with the device
    (``COMM``) is left to the caller.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        timeout: float = SERIAL_TIMEOUT_S,
    ) -> None:
        self._port = port
        self._baudrate = baudrate
        self._timeout = timeout
        self._serial = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    @property
    def connection_info(self) -> str:
        return self._port

    @staticmethod
    def available_ports() -> list[str]:
        """Names of the serial ports present on this machine."""
        from serial.tools import list_ports

        return [p.device for p in list_ports.comports()]

    def open(self) -> SerialChannel:
        """Open the serial port (8N1, no handshake).

        Raises:
            ConnectionError: If the port cannot be opened.
        """
        import serial

        try:
            self._serial = serial.Serial(
                self._port,
                baudrate=self._baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self._timeout,
                write_timeout=self._timeout,
            )
        except serial.SerialException as e:
            raise ConnectionError(f"Could not open {self._port}: {e}") from e
        logger.info("Opened %s at %d baud", self._port, self._baudrate)
        return self

    def read(self, size: int) -> bytes:
        port = self._serial
        if port is None or not port.is_open:
            raise ConnectionError("Channel is closed")
        # pyserial returns what arrived before the timeout, possibly nothing.
        return port.read(size)

    def write(self, data: bytes) -> None:
        port = self._serial
        if port is None or not port.is_open:
            raise ConnectionError("Channel is closed")
        port.write(data)

    def close(self) -> None:
        with self._lock:
            port, self._serial = self._serial, None
        if port is None:
            return
        try:
            port.close()
        except OSError as e:
            logger.warning("Error closing %s: %s", self._port, e)
        finally:
            logger.info("Closed %s", self._port)
