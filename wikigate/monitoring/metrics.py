"""
MetricsCollector - Bounded in-memory metric events with windowed aggregation.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from pydantic import BaseModel, Field


@dataclass
class MetricEvent:
    """A single recorded metric sample."""

    name: str
    value: float
    tags: dict[str, str] = field(default_factory=dict)
    timestamp: float = 0.0


class MetricAggregate(BaseModel):
    """Aggregate of all samples of one metric inside a time window."""

    count: int = 0
    sum: float = 0.0
    min: float = float("inf")
    max: float = float("-inf")
    avg: float = 0.0
    tags: dict[str, str] = Field(default_factory=dict)

    def add(self, value: float) -> None:
        self.count += 1
        self.sum += value
        self.min = min(self.min, value)
        self.max = max(self.max, value)
        self.avg = self.sum / self.count


class MetricsCollector:
    """
    Records metric events into a fixed-size ring buffer.

    Usage:
        metrics = MetricsCollector()
        metrics.increment("cache_hit", {"op": "search"})
        metrics.timing("fetch", 120.5)
        metrics.get_aggregated_metrics(window=60)
    """

    def __init__(
        self,
        max_size: int = 1000,
        clock: Callable[[], float] = time.time,
        enabled: bool = True,
    ):
        self._events: deque[MetricEvent] = deque(maxlen=max_size)
        self._clock = clock
        self.enabled = enabled

    def record(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        if not self.enabled:
            return
        self._events.append(
            MetricEvent(
                name=name,
                value=value,
                tags=dict(tags or {}),
                timestamp=self._clock(),
            )
        )

    def increment(self, name: str, tags: dict[str, str] | None = None) -> None:
        self.record(name, 1, tags)

    def timing(self, name: str, duration_ms: float, tags: dict[str, str] | None = None) -> None:
        self.record(name, duration_ms, {**(tags or {}), "unit": "ms"})

    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self.record(name, value, {**(tags or {}), "type": "gauge"})

    def get_metrics(self, since: float | None = None) -> list[MetricEvent]:
        """Return recorded events, optionally only those at or after ``since``."""
        if since is not None:
            return [e for e in self._events if e.timestamp >= since]
        return list(self._events)

    def get_aggregated_metrics(self, window: float = 300.0) -> dict[str, MetricAggregate]:
        """
        Group events of the trailing ``window`` seconds by name.

        The tags reported for each name are those of its first sample.
        """
        cutoff = self._clock() - window
        aggregated: dict[str, MetricAggregate] = {}

        for event in self._events:
            if event.timestamp < cutoff:
                continue
            agg = aggregated.get(event.name)
            if agg is None:
                agg = aggregated[event.name] = MetricAggregate(tags=event.tags)
            agg.add(event.value)

        return aggregated

    def __len__(self) -> int:
        return len(self._events)
