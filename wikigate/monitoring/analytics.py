"""
UsageAnalytics - Per-request usage records and derived health figures.
"""

import time
from collections import Counter, deque
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel, Field

MINUTE = 60.0
HOUR = 3600.0


@dataclass
class UsageRecord:
    """One logical request as seen by a front-end."""

    method: str
    params: dict[str, Any]
    request_id: str
    success: bool
    timestamp: float
    duration_ms: float | None = None
    error_kind: str | None = None
    user_agent: str | None = None
    language: str | None = None


class QueryCount(BaseModel):
    query: str
    count: int


class ErrorCount(BaseModel):
    error: str
    count: int


class UsageStats(BaseModel):
    """Usage breakdown over a trailing window."""

    total: int = 0
    by_method: dict[str, int] = Field(default_factory=dict)
    by_language: dict[str, int] = Field(default_factory=dict)
    error_rate: float = 0.0
    avg_duration: float = 0.0
    popular_queries: list[QueryCount] = Field(default_factory=list)


class HealthMetrics(BaseModel):
    """Short-window health figures for a health endpoint."""

    request_rate: int = 0  # requests in the last minute
    error_rate: float = 0.0  # over the last hour
    avg_response_time: float = 0.0  # ms, over the last hour
    top_errors: list[ErrorCount] = Field(default_factory=list)


class UsageAnalytics:
    """Ring buffer of usage records with windowed statistics."""

    def __init__(
        self,
        max_size: int = 2000,
        clock: Callable[[], float] = time.time,
        top_queries: int = 10,
        top_errors: int = 5,
    ):
        self._records: deque[UsageRecord] = deque(maxlen=max_size)
        self._clock = clock
        self._top_queries = top_queries
        self._top_errors = top_errors

    def record_request(
        self,
        method: str,
        params: dict[str, Any] | None,
        request_id: str,
        success: bool,
        duration_ms: float | None = None,
        error_kind: str | None = None,
        user_agent: str | None = None,
        language: str | None = None,
    ) -> None:
        self._records.append(
            UsageRecord(
                method=method,
                params=dict(params or {}),
                request_id=request_id,
                success=success,
                timestamp=self._clock(),
                duration_ms=duration_ms,
                error_kind=error_kind,
                user_agent=user_agent,
                language=language,
            )
        )

    def _since(self, window: float) -> list[UsageRecord]:
        cutoff = self._clock() - window
        return [r for r in self._records if r.timestamp >= cutoff]

    def get_usage_stats(self, window: float = HOUR) -> UsageStats:
        recent = self._since(window)
        if not recent:
            return UsageStats()

        by_method: Counter[str] = Counter()
        by_language: Counter[str] = Counter()
        queries: Counter[str] = Counter()
        total_duration = 0.0
        errors = 0

        for record in recent:
            by_method[record.method] += 1
            by_language[record.language or record.params.get("lang") or "unknown"] += 1
            if not record.success:
                errors += 1
            if record.duration_ms:
                total_duration += record.duration_ms

            query = record.params.get("query")
            if "search" in record.method.lower() and isinstance(query, str) and query:
                queries[query.lower()] += 1

        return UsageStats(
            total=len(recent),
            by_method=dict(by_method),
            by_language=dict(by_language),
            error_rate=errors / len(recent),
            avg_duration=total_duration / len(recent),
            popular_queries=[
                QueryCount(query=q, count=c)
                for q, c in queries.most_common(self._top_queries)
            ],
        )

    def get_health_metrics(self) -> HealthMetrics:
        last_minute = self._since(MINUTE)
        last_hour = self._since(HOUR)

        error_counts: Counter[str] = Counter()
        durations = [r.duration_ms for r in last_hour if r.duration_ms]
        failed = 0
        for record in last_hour:
            if not record.success:
                failed += 1
                if record.error_kind:
                    error_counts[record.error_kind] += 1

        return HealthMetrics(
            request_rate=len(last_minute),
            error_rate=failed / max(len(last_hour), 1),
            avg_response_time=sum(durations) / len(durations) if durations else 0.0,
            top_errors=[
                ErrorCount(error=e, count=c)
                for e, c in error_counts.most_common(self._top_errors)
            ],
        )

    def __len__(self) -> int:
        return len(self._records)
