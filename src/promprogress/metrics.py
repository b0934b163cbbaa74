"""Metric sinks receiving transfer percentages keyed by owner ID."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional, Protocol, TextIO

from prometheus_client import REGISTRY, CollectorRegistry, Gauge
from tqdm import tqdm

logger = logging.getLogger(__name__)

DEFAULT_METRIC_NAME = "promprogress_transfer_progress"
DEFAULT_METRIC_HELP = "The transfer progress in percentage"
OWNER_LABEL = "ownerUID"


class MetricSink(Protocol):
    """Anything that can record a percentage for an owner."""

    def set(self, owner_id: str, value: float) -> None:
        ...


class GaugeSink:
    """Prometheus gauge with one labelled series per transfer owner."""

    def __init__(
        self,
        name: str = DEFAULT_METRIC_NAME,
        documentation: str = DEFAULT_METRIC_HELP,
        *,
        registry: Optional[CollectorRegistry] = None,
    ):
        """Register the gauge on ``registry``.

        Args:
            name: Metric name.
            documentation: Metric help text.
            registry: Registry to register on (defaults to the process registry).
        """

        self.registry = registry if registry is not None else REGISTRY
        self.name = name
        self.gauge = Gauge(
            name,
            documentation,
            [OWNER_LABEL],
            registry=self.registry,
        )

    def set(self, owner_id: str, value: float) -> None:
        self.gauge.labels(owner_id).set(value)

    def value(self, owner_id: str) -> Optional[float]:
        """Return the value currently exported for ``owner_id``."""

        return self.registry.get_sample_value(self.name, {OWNER_LABEL: owner_id})

    def remove(self, owner_id: str) -> None:
        """Drop the series for a finished transfer."""

        try:
            self.gauge.remove(owner_id)
        except KeyError:
            logger.debug("No progress series to remove for %s", owner_id)


class TqdmSink:
    """Console progress bars, one per owner, scaled 0-100."""

    def __init__(self, *, file: Optional[TextIO] = None, leave: bool = True):
        self.file = file
        self.leave = leave
        self._bars: Dict[str, tqdm] = {}
        self._lock = threading.Lock()

    def _bar(self, owner_id: str) -> tqdm:
        bar = self._bars.get(owner_id)
        if bar is None:
            bar = tqdm(
                total=100,
                unit="%",
                desc=f"Transferring {owner_id}",
                file=self.file,
                leave=self.leave,
                bar_format="{desc}: {percentage:3.0f}%|{bar}| [{elapsed}<{remaining}]",
            )
            self._bars[owner_id] = bar
        return bar

    def set(self, owner_id: str, value: float) -> None:
        with self._lock:
            bar = self._bar(owner_id)
            bar.update(value - bar.n)

    def value(self, owner_id: str) -> Optional[float]:
        with self._lock:
            bar = self._bars.get(owner_id)
            return None if bar is None else float(bar.n)

    def close(self) -> None:
        with self._lock:
            for bar in self._bars.values():
                bar.close()
            self._bars.clear()


class MultiSink:
    """Forward every value to several sinks."""

    def __init__(self, sinks: Iterable[MetricSink]):
        self.sinks: List[MetricSink] = list(sinks)

    def set(self, owner_id: str, value: float) -> None:
        for sink in self.sinks:
            sink.set(owner_id, value)

    def close(self) -> None:
        for sink in self.sinks:
            close = getattr(sink, "close", None)
            if close is not None:
                close()
