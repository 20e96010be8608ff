"""Tests for metrics, the event log, timers, usage analytics and the dashboard."""

import pytest

from tests.helpers import FakeTime
from wikigate.monitoring.analytics import UsageAnalytics
from wikigate.monitoring.logger import StructuredLogger, normalize_level
from wikigate.monitoring.metrics import MetricsCollector
from wikigate.monitoring.performance import PerformanceMonitor
from wikigate.monitoring.service import MonitoringService
from wikigate.services.errors import NetworkError


@pytest.fixture
def clock() -> FakeTime:
    return FakeTime()


@pytest.fixture
def monitoring(clock) -> MonitoringService:
    return MonitoringService(
        metrics=MetricsCollector(clock=clock),
        event_log=StructuredLogger(clock=clock, echo=False),
        analytics=UsageAnalytics(clock=clock),
        clock=clock,
    )


class TestMetricsCollector:
    def test_ring_buffer_is_bounded(self, clock):
        metrics = MetricsCollector(max_size=3, clock=clock)
        for i in range(5):
            metrics.record("m", i)
        assert len(metrics) == 3
        assert [e.value for e in metrics.get_metrics()] == [2, 3, 4]

    def test_helpers_tag_events(self, clock):
        metrics = MetricsCollector(clock=clock)
        metrics.increment("hit", {"op": "search"})
        metrics.timing("fetch", 12.5)
        metrics.gauge("in_flight", 3)
        hit, fetch, gauge = metrics.get_metrics()
        assert hit.value == 1 and hit.tags == {"op": "search"}
        assert fetch.tags == {"unit": "ms"}
        assert gauge.tags == {"type": "gauge"}

    def test_since_filter(self, clock):
        metrics = MetricsCollector(clock=clock)
        metrics.record("old", 1)
        clock.advance(10)
        metrics.record("new", 1)
        assert [e.name for e in metrics.get_metrics(since=clock() - 5)] == ["new"]

    def test_aggregation_over_window(self, clock):
        metrics = MetricsCollector(clock=clock)
        metrics.record("latency", 100, {"op": "a"})
        clock.advance(400)
        metrics.record("latency", 10, {"op": "b"})
        metrics.record("latency", 30)

        agg = metrics.get_aggregated_metrics(window=300)["latency"]
        assert agg.count == 2
        assert agg.sum == 40
        assert agg.min == 10
        assert agg.max == 30
        assert agg.avg == 20
        assert agg.tags == {"op": "b"}

    def test_disabled_collector_records_nothing(self, clock):
        metrics = MetricsCollector(clock=clock, enabled=False)
        metrics.increment("hit")
        assert len(metrics) == 0


class TestStructuredLogger:
    def test_filters_by_level_and_time(self, clock):
        log = StructuredLogger(clock=clock, echo=False)
        log.info("first")
        clock.advance(5)
        log.error("boom", {"op": "x"}, request_id="req_1")

        errors = log.get_logs("error")
        assert len(errors) == 1
        assert errors[0].context == {"op": "x"}
        assert errors[0].request_id == "req_1"
        assert [e.message for e in log.get_logs(since=clock())] == ["boom"]

    def test_min_level_drops_events(self, clock):
        log = StructuredLogger(clock=clock, min_level="WARNING", echo=False)
        log.debug("d")
        log.info("i")
        log.warn("w")
        assert [e.level for e in log.get_logs()] == ["warn"]

    def test_ring_buffer_is_bounded(self, clock):
        log = StructuredLogger(max_size=2, clock=clock, echo=False)
        for i in range(4):
            log.info(f"m{i}")
        assert [e.message for e in log.get_logs()] == ["m2", "m3"]

    def test_echo_passes_request_id_in_context(self, clock):
        log = StructuredLogger(clock=clock)
        log.info("with duplicate id", {"request_id": "ignored"}, request_id="req_2")
        assert log.get_logs()[0].request_id == "req_2"

    def test_normalize_level(self):
        assert normalize_level("WARNING") == "warn"
        assert normalize_level("Info") == "info"
        with pytest.raises(ValueError):
            normalize_level("verbose")


class TestPerformanceMonitor:
    def test_timer_records_duration(self, clock):
        metrics = MetricsCollector(clock=clock)
        perf = PerformanceMonitor(metrics, StructuredLogger(clock=clock, echo=False), clock=clock)
        timer = perf.start_timer("op")
        assert perf.active_timers == 1
        clock.advance(0.25)
        assert perf.end_timer(timer, {"operation": "op"}) == pytest.approx(250)
        assert perf.active_timers == 0
        assert metrics.get_metrics()[0].name == "operation_duration"

    def test_unknown_timer_warns(self, clock):
        log = StructuredLogger(clock=clock, echo=False)
        perf = PerformanceMonitor(MetricsCollector(clock=clock), log, clock=clock)
        assert perf.end_timer("missing") == 0.0
        assert log.get_logs("warn")[0].message == "Timer not found: missing"

    async def test_monitor_async_success_and_failure(self, clock):
        metrics = MetricsCollector(clock=clock)
        log = StructuredLogger(clock=clock, echo=False)
        perf = PerformanceMonitor(metrics, log, clock=clock)

        async def ok():
            return 7

        async def broken():
            raise NetworkError("down")

        assert await perf.monitor_async("op", ok) == 7
        with pytest.raises(NetworkError):
            await perf.monitor_async("op", broken)

        names = [e.name for e in metrics.get_metrics()]
        assert names.count("operation_success") == 1
        assert names.count("operation_error") == 1
        assert names.count("operation_duration") == 2
        assert log.get_logs("error")[0].context["error_kind"] == "network"
        assert perf.active_timers == 0


class TestUsageAnalytics:
    def test_usage_stats(self, clock):
        analytics = UsageAnalytics(clock=clock)
        analytics.record_request("wikipedia.search", {"query": "Python"}, "r1", True, 100, language="en")
        analytics.record_request("wikipedia.search", {"query": "python"}, "r2", True, 300, language="de")
        analytics.record_request("wikipedia.page", {"title": "X"}, "r3", False, 200, error_kind="network")

        stats = analytics.get_usage_stats()
        assert stats.total == 3
        assert stats.by_method == {"wikipedia.search": 2, "wikipedia.page": 1}
        assert stats.by_language == {"en": 1, "de": 1, "unknown": 1}
        assert stats.error_rate == pytest.approx(1 / 3)
        assert stats.avg_duration == pytest.approx(200)
        assert stats.popular_queries[0].query == "python"
        assert stats.popular_queries[0].count == 2

    def test_empty_window(self, clock):
        analytics = UsageAnalytics(clock=clock)
        analytics.record_request("m", {}, "r1", True)
        clock.advance(7200)
        assert analytics.get_usage_stats().total == 0

    def test_health_metrics_windows(self, clock):
        analytics = UsageAnalytics(clock=clock)
        analytics.record_request("m", {}, "r1", False, 50, error_kind="timeout")
        clock.advance(120)
        analytics.record_request("m", {}, "r2", True, 150)
        analytics.record_request("m", {}, "r3", False, None, error_kind="timeout")

        health = analytics.get_health_metrics()
        assert health.request_rate == 2
        assert health.error_rate == pytest.approx(2 / 3)
        assert health.avg_response_time == pytest.approx(100)
        assert health.top_errors[0].error == "timeout"
        assert health.top_errors[0].count == 2


class TestMonitoringService:
    async def test_monitor_request_success(self, monitoring):
        async def handler():
            return "result"

        result = await monitoring.monitor_request(
            "wikipedia.search", {"query": "x", "lang": "de"}, "req_1", handler
        )
        assert result == "result"
        stats = monitoring.analytics.get_usage_stats()
        assert stats.by_language == {"de": 1}
        assert stats.error_rate == 0

    async def test_monitor_request_failure_is_recorded_and_raised(self, monitoring):
        async def handler():
            raise NetworkError("down")

        with pytest.raises(NetworkError):
            await monitoring.monitor_request("wikipedia.page", {"title": "X"}, "req_2", handler)

        health = monitoring.analytics.get_health_metrics()
        assert health.top_errors[0].error == "network"
        assert monitoring.recent_errors()[0].message == "rpc_wikipedia.page failed"

    async def test_dashboard_shape(self, monitoring):
        async def handler():
            return None

        await monitoring.monitor_request("wikipedia.random", None, "req_3", handler)
        data = monitoring.get_dashboard_data()
        assert "operation_success" in data.metrics
        assert data.usage.total == 1
        assert data.recent_errors == []
        assert set(data.model_dump()) == {"health", "metrics", "usage", "recent_errors"}

    @pytest.mark.parametrize(
        "upstream, failures, expected",
        [
            ("healthy", 0, "healthy"),
            ("degraded", 0, "degraded"),
            ("unhealthy", 0, "unhealthy"),
            ("healthy", 3, "degraded"),
            ("healthy", 6, "unhealthy"),
        ],
    )
    def test_overall_status(self, monitoring, upstream, failures, expected):
        for i in range(10):
            monitoring.analytics.record_request("m", {}, f"r{i}", i >= failures)
        assert monitoring.overall_status(upstream) == expected
