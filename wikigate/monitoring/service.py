"""
MonitoringService - Binds metrics, event log, timers and usage analytics.
"""

import time
from typing import Any, Awaitable, Callable, Literal, TypeVar

from pydantic import BaseModel, Field

from wikigate.monitoring.analytics import HOUR, HealthMetrics, UsageAnalytics, UsageStats
from wikigate.monitoring.logger import LogEvent, StructuredLogger
from wikigate.monitoring.metrics import MetricAggregate, MetricsCollector
from wikigate.monitoring.performance import PerformanceMonitor
from wikigate.services.errors import error_kind_of

T = TypeVar("T")

HealthStatus = Literal["healthy", "degraded", "unhealthy"]


class DashboardData(BaseModel):
    """Snapshot served by a front-end's metrics endpoint."""

    health: HealthMetrics
    metrics: dict[str, MetricAggregate] = Field(default_factory=dict)
    usage: UsageStats
    recent_errors: list[dict[str, Any]] = Field(default_factory=list)


class MonitoringService:
    """
    Composition root of the telemetry cluster.

    Usage:
        monitoring = MonitoringService()
        result = await monitoring.monitor_request(
            "wikipedia.search", {"query": "python"}, "req-1",
            lambda: service.search("python"),
        )
        snapshot = monitoring.get_dashboard_data()
    """

    def __init__(
        self,
        metrics: MetricsCollector | None = None,
        event_log: StructuredLogger | None = None,
        analytics: UsageAnalytics | None = None,
        clock: Callable[[], float] = time.time,
        default_language: str = "en",
    ):
        self.metrics = metrics or MetricsCollector(clock=clock)
        self.logger = event_log or StructuredLogger(clock=clock)
        self.analytics = analytics or UsageAnalytics(clock=clock)
        self.performance = PerformanceMonitor(self.metrics, self.logger)
        self._clock = clock
        self._default_language = default_language

    async def monitor_request(
        self,
        method: str,
        params: dict[str, Any] | None,
        request_id: str,
        handler: Callable[[], Awaitable[T]],
        user_agent: str | None = None,
    ) -> T:
        """
        Run ``handler`` under performance monitoring and record usage.

        Errors are recorded and re-raised, never suppressed.
        """
        params = params or {}
        language = str(params.get("lang") or self._default_language)
        start = time.monotonic()

        try:
            result = await self.performance.monitor_async(
                f"rpc_{method}",
                handler,
                {"method": method, "language": language},
                request_id,
            )
        except Exception as e:
            self.analytics.record_request(
                method=method,
                params=params,
                request_id=request_id,
                success=False,
                duration_ms=(time.monotonic() - start) * 1000,
                error_kind=error_kind_of(e),
                user_agent=user_agent,
                language=language,
            )
            raise

        self.analytics.record_request(
            method=method,
            params=params,
            request_id=request_id,
            success=True,
            duration_ms=(time.monotonic() - start) * 1000,
            user_agent=user_agent,
            language=language,
        )
        return result

    def get_dashboard_data(self) -> DashboardData:
        return DashboardData(
            health=self.analytics.get_health_metrics(),
            metrics=self.metrics.get_aggregated_metrics(),
            usage=self.analytics.get_usage_stats(),
            recent_errors=[e.to_dict() for e in self.recent_errors()],
        )

    def recent_errors(self) -> list[LogEvent]:
        """Error events of the last hour."""
        return self.logger.get_logs("error", since=self._clock() - HOUR)

    def overall_status(self, upstream_status: HealthStatus) -> HealthStatus:
        """Combine upstream health with the last-hour error rate."""
        error_rate = self.analytics.get_health_metrics().error_rate
        if upstream_status == "healthy" and error_rate < 0.1:
            return "healthy"
        if upstream_status == "unhealthy" or error_rate > 0.5:
            return "unhealthy"
        return "degraded"
