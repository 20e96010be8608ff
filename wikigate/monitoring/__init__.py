"""
Telemetry - bounded recorders for metrics, logs and usage.

Provides:
- MetricsCollector: Metric events with windowed aggregation
- StructuredLogger: Leveled event log echoed to loguru
- PerformanceMonitor: Timers and monitored execution
- UsageAnalytics: Request usage and health figures
- MonitoringService: Composition root and dashboard snapshot
"""

from wikigate.monitoring.metrics import MetricAggregate, MetricEvent, MetricsCollector
from wikigate.monitoring.logger import LogEvent, StructuredLogger
from wikigate.monitoring.performance import PerformanceMonitor
from wikigate.monitoring.analytics import (
    HealthMetrics,
    UsageAnalytics,
    UsageRecord,
    UsageStats,
)
from wikigate.monitoring.service import DashboardData, MonitoringService

__all__ = [
    "MetricAggregate",
    "MetricEvent",
    "MetricsCollector",
    "LogEvent",
    "StructuredLogger",
    "PerformanceMonitor",
    "HealthMetrics",
    "UsageAnalytics",
    "UsageRecord",
    "UsageStats",
    "DashboardData",
    "MonitoringService",
]
