"""
PerformanceMonitor - Named timers and a monitored-execution wrapper.
"""

import time
import uuid
from typing import Awaitable, Callable, TypeVar

from wikigate.monitoring.logger import StructuredLogger
from wikigate.monitoring.metrics import MetricsCollector
from wikigate.services.errors import error_kind_of

T = TypeVar("T")


class PerformanceMonitor:
    """
    Times operations and records their outcome.

    Usage:
        perf = PerformanceMonitor(metrics, event_log)
        result = await perf.monitor_async("search", lambda: service.search("x"))
    """

    def __init__(
        self,
        metrics: MetricsCollector,
        event_log: StructuredLogger,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._metrics = metrics
        self._log = event_log
        self._clock = clock
        self._timers: dict[str, float] = {}

    def start_timer(self, operation: str, request_id: str | None = None) -> str:
        timer_id = f"{operation}_{uuid.uuid4().hex}"
        self._timers[timer_id] = self._clock()
        self._log.debug(f"Started timer for {operation}", {"operation": operation}, request_id)
        return timer_id

    def end_timer(self, timer_id: str, tags: dict[str, str] | None = None) -> float:
        """Stop a timer and record ``operation_duration``. Returns milliseconds."""
        tags = tags or {}
        start = self._timers.pop(timer_id, None)
        if start is None:
            self._log.warn(f"Timer not found: {timer_id}")
            return 0.0

        duration_ms = (self._clock() - start) * 1000
        operation = tags.get("operation", "unknown")
        self._metrics.timing("operation_duration", duration_ms, tags)
        self._log.debug(f"Completed {operation}", {"duration": duration_ms, **tags})
        return duration_ms

    @property
    def active_timers(self) -> int:
        return len(self._timers)

    async def monitor_async(
        self,
        operation: str,
        fn: Callable[[], Awaitable[T]],
        tags: dict[str, str] | None = None,
        request_id: str | None = None,
    ) -> T:
        """
        Await ``fn()`` and record duration plus success/error counters.

        Exceptions are always re-raised after being recorded.
        """
        tags = tags or {}
        timer_id = self.start_timer(operation, request_id)

        try:
            result = await fn()
        except Exception as e:
            duration = self.end_timer(timer_id, {**tags, "operation": operation, "status": "error"})
            self._metrics.increment("operation_error", {"operation": operation, **tags})
            self._log.error(
                f"{operation} failed",
                {"duration": duration, "error": str(e), "error_kind": error_kind_of(e), **tags},
                request_id,
            )
            raise
        except BaseException:
            # Cancellation: drop the timer without counting an outcome
            self._timers.pop(timer_id, None)
            raise

        duration = self.end_timer(timer_id, {**tags, "operation": operation, "status": "success"})
        self._metrics.increment("operation_success", {"operation": operation, **tags})
        self._log.info(f"{operation} completed successfully", {"duration": duration, **tags}, request_id)
        return result
