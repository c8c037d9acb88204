"""Seekable read buffer over a byte channel that cannot seek.

The packet decoder peeks the two-byte start sequence of every frame and then
rewinds so the type-specific decoder can read the same bytes again. Serial
ports and sockets cannot rewind, so every byte read from the channel is kept
in a bounded replay window::

    discarded prefix | retained window            | not yet read
    -----------------+-----------+----------------+-------------
                     ^start      ^cursor          ^start + len(window)

Positions used by :meth:`ReplayBuffer.seek` and :meth:`ReplayBuffer.tell` are
absolute stream offsets, so they stay meaningful after the window is trimmed.
"""

from __future__ import annotations

import io
import logging

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 1024


class ReplayBuffer:
    """Wrap a byte channel with a replay window that supports ``seek``.

    Usage::

        buf = ReplayBuffer(channel)
        magic = buf.read(2)
        buf.seek(-2, io.SEEK_CUR)
    """

    def __init__(self, channel, max_size: int = DEFAULT_MAX_SIZE) -> None:
        if max_size < 1:
            raise ValueError(f"Replay window must hold at least 1 byte, got {max_size}")
        self._channel = channel
        self._max_size = max_size
        self._window = bytearray()
        self._start = 0
        self._cursor = 0

    @property
    def channel(self):
        return self._channel

    @property
    def max_size(self) -> int:
        return self._max_size

    def __len__(self) -> int:
        return len(self._window)

    def set_channel(self, channel) -> None:
        """Swap the base channel without dropping the replay window."""
        self._channel = channel

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes.

        Bytes already in the window ahead of the cursor are returned first;
        the remainder is requested from the channel and appended to the
        window. When nothing is buffered this blocks until the channel yields
        at least one byte. Channel errors (closed port, dropped socket)
        propagate to the caller.
        """
        if size <= 0:
            return b""

        out = bytearray(self._window[self._cursor : self._cursor + size])
        self._cursor += len(out)

        if len(out) < size:
            while True:
                chunk = self._channel.read(size - len(out))
                if chunk or out:
                    break
                # Channel timed out with nothing to show; keep waiting.
            if chunk:
                self._window += chunk
                self._cursor += len(chunk)
                out += chunk

        self.trim()
        return bytes(out)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        """Move the cursor within the retained window.

        Raises:
            ValueError: If the target lies before the discarded prefix or
                beyond the bytes read so far.
        """
        if whence == io.SEEK_SET:
            target = offset
        elif whence == io.SEEK_CUR:
            target = self.tell() + offset
        elif whence == io.SEEK_END:
            target = self._start + len(self._window) + offset
        else:
            raise ValueError(f"Invalid whence: {whence}")

        if target < self._start:
            raise ValueError(
                f"Cannot seek to {target}: bytes before {self._start} were discarded"
            )
        if target > self._start + len(self._window):
            raise ValueError(
                f"Cannot seek to {target}: only {self._start + len(self._window)} bytes read"
            )
        self._cursor = target - self._start
        return target

    def tell(self) -> int:
        return self._start + self._cursor

    def trim(self) -> None:
        """Discard the oldest bytes while the window exceeds ``max_size``.

        Bytes at or after the cursor are never discarded.
        """
        excess = len(self._window) - self._max_size
        if excess <= 0:
            return
        drop = min(excess, self._cursor)
        if drop:
            del self._window[:drop]
            self._start += drop
            self._cursor -= drop

    def flush(self) -> None:
        """Forget the replay window."""
        self._start += len(self._window)
        self._window.clear()
        self._cursor = 0

    def write(self, data: bytes) -> None:
        """Write straight through to the channel."""
        self._channel.write(data)

    def close(self) -> None:
        try:
            self._channel.close()
        except OSError as e:
            logger.warning("Error closing channel: %s", e)
