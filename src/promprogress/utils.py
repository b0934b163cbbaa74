"""Utility helpers for promprogress."""

from __future__ import annotations

import threading
from typing import Any, BinaryIO, Optional, Tuple


class CountingReader:
    """Binary reader that counts the bytes passing through it.

    The wrapper owns its underlying stream for one segment of a transfer.
    ``reset`` swaps in the next segment while keeping the running count, so
    ``current`` is cumulative across every segment read through the wrapper.
    """

    def __init__(self, underlying: BinaryIO, current: int = 0, done: bool = False):
        self.lock = threading.RLock()
        self._underlying = underlying
        self._current = current
        self._done = done
        self._closed = False

    @property
    def underlying(self) -> BinaryIO:
        with self.lock:
            return self._underlying

    @property
    def current(self) -> int:
        with self.lock:
            return self._current

    @property
    def done(self) -> bool:
        with self.lock:
            return self._done

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> Tuple[int, bool]:
        """Return ``(current, done)`` read under a single lock acquisition."""

        with self.lock:
            return self._current, self._done

    def read(self, size: Optional[int] = -1) -> bytes:
        with self.lock:
            underlying = self._underlying

        # The stream itself is read unlocked so a stalled segment never
        # blocks observers of the counters.
        chunk = underlying.read(-1 if size is None else size)

        with self.lock:
            if underlying is not self._underlying:
                # Segment swapped mid-read: count the bytes, leave done alone.
                self._current += len(chunk)
                return chunk
            if chunk:
                self._current += len(chunk)
            elif size != 0:
                self._done = True
        return chunk

    def readinto(self, buffer: Any) -> int:
        view = memoryview(buffer).cast("B")
        chunk = self.read(len(view))
        view[: len(chunk)] = chunk
        return len(chunk)

    def readable(self) -> bool:
        return True

    def reset(self, underlying: BinaryIO) -> None:
        """Point the reader at a new segment, keeping the cumulative count."""

        with self.lock:
            self._underlying = underlying
            self._done = False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        close = getattr(self.underlying, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "CountingReader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
