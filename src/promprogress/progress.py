"""Percentage progress reporting for byte streams.

A :class:`ProgressReader` sits between a consumer and the stream it reads,
turning the cumulative byte count into a percentage that is pushed to a
metric sink keyed by an owner identifier. Multi-part transfers hand off to
the next segment with :meth:`ProgressReader.set_next_reader`; the count
carries over so the owner sees one continuous percentage.

Updates are published on every read and, optionally, from a background
thread started with :meth:`ProgressReader.start_timed_update`.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, BinaryIO, Dict, List, Optional

from .metrics import MetricSink
from .utils import CountingReader

logger = logging.getLogger(__name__)

DEFAULT_UPDATE_INTERVAL = 1.0


class ProgressError(RuntimeError):
    """Base exception for all promprogress errors."""

    def __init__(self, message: str, *, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


class ProgressConfigError(ProgressError, ValueError):
    """Raised when a reader or timer is constructed with invalid arguments."""


class ProgressStateError(ProgressError):
    """Raised when an operation is not valid in the reader's current state."""


class TimedUpdate:
    """Handle for the background loop publishing progress at a fixed interval."""

    def __init__(self, reader: "ProgressReader", interval: float = DEFAULT_UPDATE_INTERVAL):
        if interval <= 0:
            raise ProgressConfigError(
                "Update interval must be positive", context={"interval": interval}
            )
        self.reader = reader
        self.interval = interval
        self.finished = False
        self._stop = threading.Event()
        self._tick_lock = threading.Lock()
        self._thread = threading.Thread(
            target=self._run,
            name=f"promprogress-{reader.owner_id}",
            daemon=True,
        )

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set() and not self.finished

    def start(self) -> "TimedUpdate":
        logger.debug(
            "Starting timed progress update for %s every %ss",
            self.reader.owner_id,
            self.interval,
        )
        self._thread.start()
        return self

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            with self._tick_lock:
                if self._stop.is_set():
                    break
                if not self.reader.update_progress():
                    self.finished = True
                    self._stop.set()
                    break
        logger.debug(
            "Timed progress update for %s stopped (finished=%s)",
            self.reader.owner_id,
            self.finished,
        )

    def cancel(self) -> None:
        """Stop the loop; no metric write from it happens after this returns."""

        self._stop.set()
        if threading.current_thread() is self._thread:
            return
        # Wait out a tick that is already publishing.
        with self._tick_lock:
            pass

    def join(self, timeout: Optional[float] = None) -> bool:
        if self._thread.ident is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()


class ProgressReader:
    """Stream wrapper publishing ``current / total * 100`` to a metric sink.

    ``total`` of zero means the size is unknown; the reader then still passes
    data through but never publishes a value. ``final`` marks the last
    segment of the transfer: only exhausting a final segment completes it.
    """

    def __init__(
        self,
        underlying: BinaryIO,
        total: int,
        owner_id: str,
        sink: MetricSink,
        *,
        final: bool = True,
    ):
        if total < 0:
            raise ProgressConfigError("Total must not be negative", context={"total": total})
        if not isinstance(owner_id, str) or not owner_id:
            raise ProgressConfigError(
                "Owner ID must be a non-empty string", context={"owner_id": owner_id}
            )
        if not callable(getattr(sink, "set", None)):
            raise ProgressConfigError(
                "Metric sink must provide set(owner_id, value)",
                context={"sink": type(sink).__name__},
            )

        self.counting = CountingReader(underlying)
        self._total = total
        self._owner_id = owner_id
        self._sink = sink
        self._final = final
        self._timers: List[TimedUpdate] = []
        logger.debug(
            "Progress reader for %s created: total=%s final=%s", owner_id, total, final
        )

    @property
    def total(self) -> int:
        return self._total

    @property
    def owner_id(self) -> str:
        return self._owner_id

    @property
    def sink(self) -> MetricSink:
        return self._sink

    @property
    def current(self) -> int:
        return self.counting.current

    @property
    def done(self) -> bool:
        return self.counting.done

    @property
    def final(self) -> bool:
        with self.counting.lock:
            return self._final

    @property
    def complete(self) -> bool:
        """True once the final segment has been read to its end."""

        with self.counting.lock:
            return self.counting.done and self._final

    @property
    def percentage(self) -> Optional[float]:
        if self._total == 0:
            return None
        return self._percentage(self.counting.current)

    @property
    def closed(self) -> bool:
        return self.counting.closed

    def _percentage(self, current: int) -> float:
        return min(current / self._total * 100, 100.0)

    def read(self, size: Optional[int] = -1) -> bytes:
        """Read from the current segment and publish the new percentage.

        The result of the progress update is not returned: it only tells the
        timed loop whether to keep running, and readers may keep reading.
        """

        try:
            return self.counting.read(size)
        finally:
            self.update_progress()

    def readinto(self, buffer: Any) -> int:
        try:
            return self.counting.readinto(buffer)
        finally:
            self.update_progress()

    def readable(self) -> bool:
        return True

    def update_progress(self) -> bool:
        """Publish the current percentage; return whether updates should continue."""

        if self._total == 0:
            return False

        with self.counting.lock:
            current, done = self.counting.snapshot()
            final = self._final
            # Sink writes stay ordered with hand-offs and timer ticks.
            self._sink.set(self._owner_id, self._percentage(current))

        if not done:
            return True
        return not final

    def set_next_reader(self, underlying: BinaryIO, is_final: bool) -> None:
        """Continue the transfer from ``underlying``, keeping the byte count."""

        with self.counting.lock:
            if self.counting.done and self._final:
                raise ProgressStateError(
                    "Transfer already completed its final segment",
                    context={"owner_id": self._owner_id, "current": self.counting.current},
                )
            self.counting.reset(underlying)
            self._final = is_final
        logger.debug(
            "Progress reader for %s handed off at %s bytes (final=%s)",
            self._owner_id,
            self.counting.current,
            is_final,
        )

    def start_timed_update(self, interval: float = DEFAULT_UPDATE_INTERVAL) -> TimedUpdate:
        """Publish progress every ``interval`` seconds from a background thread.

        The loop exits on its own once the transfer completes; the returned
        handle cancels it early.
        """

        timer = TimedUpdate(self, interval)
        self._timers.append(timer)
        return timer.start()

    def close(self) -> None:
        for timer in self._timers:
            timer.cancel()
        self.counting.close()

    def __enter__(self) -> "ProgressReader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
