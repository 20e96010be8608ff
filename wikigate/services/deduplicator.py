"""
RequestDeduplicator - Prevents duplicate concurrent requests.

When multiple callers request the same resource simultaneously,
only one actual request is made and the result is shared.
"""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


class RequestDeduplicator:
    """
    Deduplicates concurrent async requests.

    When multiple coroutines request the same key simultaneously,
    only one actual request is made. All callers await the same task
    and observe the same result or exception. Cancelling any waiter
    cancels the shared task for everyone.

    Registration and lookup happen without an await in between, so the
    in-flight map needs no lock on a single event loop.

    Usage:
        dedup = RequestDeduplicator()

        async def fetch_page(key: str):
            return await dedup.dedupe(
                key=key,
                request_fn=lambda: manager.fetch("/w/api.php", params)
            )
    """

    def __init__(self, debug: bool = False):
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._debug = debug
        self._stats = DeduplicatorStats()

    async def dedupe(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Execute request with deduplication.

        If a request with the same key is already in flight,
        wait for and return its result instead of making a new request.

        Args:
            key: Fingerprint for this request
            request_fn: Async function to execute if no duplicate exists

        Returns:
            Result from request_fn (either fresh or from in-flight request)
        """
        task = self._in_flight.get(key)
        if task is not None:
            self._stats.deduplicated += 1
            self._log(f"DEDUPE: Waiting for in-flight request: {key[:50]}...")
        else:
            self._stats.total += 1
            self._log(f"NEW: Starting request: {key[:50]}...")
            task = asyncio.create_task(self._execute_and_cleanup(key, request_fn))
            self._in_flight[key] = task
            task.add_done_callback(lambda t: self._discard(key, t))

        return await task

    async def _execute_and_cleanup(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
    ) -> T:
        """Execute request and clean up when done."""
        try:
            return await request_fn()
        finally:
            self._discard(key, asyncio.current_task())
            self._log(f"DONE: Request completed: {key[:50]}...")

    def _discard(self, key: str, task: "asyncio.Task[Any] | None") -> None:
        """Drop the entry for ``key`` only if it still belongs to ``task``."""
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    def cancel(self, key: str) -> bool:
        """Cancel an in-flight request."""
        task = self._in_flight.pop(key, None)
        if task is None:
            return False
        task.cancel()
        self._log(f"CANCEL: Request cancelled: {key[:50]}...")
        return True

    def cancel_all(self) -> int:
        """Cancel all in-flight requests."""
        count = len(self._in_flight)
        for task in self._in_flight.values():
            task.cancel()
        self._in_flight.clear()
        if count:
            self._log(f"CANCEL_ALL: {count} requests cancelled")
        return count

    def get_in_flight_count(self) -> int:
        """Get number of in-flight requests."""
        return len(self._in_flight)

    def get_in_flight_keys(self) -> list[str]:
        """Get keys of all in-flight requests."""
        return list(self._in_flight.keys())

    def get_stats(self) -> "DeduplicatorStats":
        """Get deduplication statistics."""
        self._stats.in_flight = len(self._in_flight)
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Deduplicator] {message}")


class DeduplicatorStats:
    """Statistics for request deduplication."""

    def __init__(self):
        self.total: int = 0  # Total unique requests made
        self.deduplicated: int = 0  # Requests that were deduplicated
        self.in_flight: int = 0  # Current in-flight requests

    @property
    def dedup_rate(self) -> float:
        """Calculate deduplication rate."""
        total = self.total + self.deduplicated
        if total == 0:
            return 0.0
        return self.deduplicated / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_requests": self.total,
            "deduplicated": self.deduplicated,
            "in_flight": self.in_flight,
            "dedup_rate": f"{self.dedup_rate:.2%}",
        }
