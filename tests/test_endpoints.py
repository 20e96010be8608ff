"""Tests for EndpointManager failover, error mapping and circuit skipping."""

import httpx
import pytest

from tests.helpers import FakeClock, SleepRecorder, make_manager, mock_client
from wikigate.services.endpoints import EndpointManager
from wikigate.services.errors import (
    AllEndpointsFailedError,
    CircuitOpenError,
    DecodeError,
    ErrorKind,
    NetworkError,
    RequestTimeoutError,
    UpstreamHTTPError,
)


class Upstream:
    """Mock mirrors: hosts in ``down`` answer 503, others return a JSON body."""

    def __init__(self, down: set[str] | None = None, status: int = 503):
        self.down = set(down or ())
        self.status = status
        self.hits: dict[str, int] = {}
        self.order: list[str] = []
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        self.hits[host] = self.hits.get(host, 0) + 1
        self.order.append(host)
        self.requests.append(request)
        if host in self.down:
            return httpx.Response(self.status, text="unavailable")
        return httpx.Response(200, json={"host": host})


class TestSuccessfulFetch:
    async def test_returns_decoded_json_from_first_mirror(self):
        upstream = Upstream()
        manager = make_manager(upstream)
        assert await manager.fetch("/w/api.php", {"action": "query"}) == {"host": "a.test"}
        assert upstream.hits == {"a.test": 1}

    async def test_sends_user_agent_and_params(self):
        upstream = Upstream()
        manager = make_manager(upstream)
        await manager.fetch("/w/api.php", {"action": "query", "format": "json"})
        request = upstream.requests[0]
        assert request.headers["User-Agent"].startswith("wikigate/")
        assert request.url.path == "/w/api.php"
        assert request.url.params["action"] == "query"
        assert request.url.params["format"] == "json"


class TestFailover:
    async def test_moves_to_next_mirror_and_remembers_it(self):
        upstream = Upstream(down={"a.test"})
        manager = make_manager(upstream)

        assert await manager.fetch("/x") == {"host": "b.test"}
        assert manager.preferred_index == 1
        assert manager.preferred_mirror == "https://b.test"

        upstream.order.clear()
        await manager.fetch("/x")
        assert upstream.order == ["b.test"]

    async def test_client_errors_also_fail_over(self):
        upstream = Upstream(down={"a.test"}, status=404)
        manager = make_manager(upstream)
        assert await manager.fetch("/x") == {"host": "b.test"}

    async def test_all_mirrors_failing_raises_aggregate(self):
        upstream = Upstream(down={"a.test", "b.test", "c.test"})
        manager = make_manager(upstream)
        with pytest.raises(AllEndpointsFailedError) as exc_info:
            await manager.fetch("/x")

        error = exc_info.value
        assert error.kind == ErrorKind.ALL_ENDPOINTS_FAILED
        assert error.last_kind == ErrorKind.HTTP
        assert error.retryable
        assert set(error.failures) == {"https://a.test", "https://b.test", "https://c.test"}
        assert upstream.hits == {"a.test": 1, "b.test": 1, "c.test": 1}

    async def test_status_marks_preferred_mirror(self):
        manager = make_manager(Upstream(down={"a.test"}))
        await manager.fetch("/x")
        status = manager.get_endpoint_status()
        assert [s["preferred"] for s in status] == [False, True, False]
        assert status[0]["status"]["failure_count"] == 1


class TestErrorMapping:
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        manager = make_manager(handler, mirrors=["https://a.test"])
        with pytest.raises(AllEndpointsFailedError) as exc_info:
            await manager.fetch("/x")
        assert isinstance(exc_info.value.last_error, RequestTimeoutError)
        assert exc_info.value.last_kind == ErrorKind.TIMEOUT

    async def test_connection_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        manager = make_manager(handler, mirrors=["https://a.test"])
        with pytest.raises(AllEndpointsFailedError) as exc_info:
            await manager.fetch("/x")
        assert isinstance(exc_info.value.last_error, NetworkError)
        assert exc_info.value.retryable

    async def test_http_status(self):
        manager = make_manager(Upstream(down={"a.test"}, status=502), mirrors=["https://a.test"])
        with pytest.raises(AllEndpointsFailedError) as exc_info:
            await manager.fetch("/x")
        last = exc_info.value.last_error
        assert isinstance(last, UpstreamHTTPError)
        assert last.status_code == 502
        assert last.detail == "unavailable"

    async def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, text="<html>not json</html>")

        manager = make_manager(handler, mirrors=["https://a.test"])
        with pytest.raises(AllEndpointsFailedError) as exc_info:
            await manager.fetch("/x")
        assert isinstance(exc_info.value.last_error, DecodeError)
        assert not exc_info.value.retryable


class TestRetries:
    async def test_retryable_failures_repeat_whole_pass(self):
        upstream = Upstream(down={"a.test", "b.test", "c.test"})
        sleep = SleepRecorder()
        manager = make_manager(upstream, max_retries=2, sleep=sleep)
        with pytest.raises(AllEndpointsFailedError):
            await manager.fetch("/x")
        assert upstream.hits == {"a.test": 3, "b.test": 3, "c.test": 3}
        assert sleep.delays == [1.0, 2.0]

    async def test_not_found_everywhere_is_a_single_pass(self):
        upstream = Upstream(down={"a.test", "b.test", "c.test"}, status=404)
        sleep = SleepRecorder()
        manager = make_manager(upstream, max_retries=2, sleep=sleep)
        with pytest.raises(AllEndpointsFailedError) as exc_info:
            await manager.fetch("/x")
        assert not exc_info.value.retryable
        assert sum(upstream.hits.values()) == 3
        assert sleep.delays == []

    async def test_recovers_on_later_pass(self):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            if calls <= 2:
                return httpx.Response(503)
            return httpx.Response(200, json={"ok": True})

        manager = make_manager(
            handler, mirrors=["https://a.test", "https://b.test"], max_retries=1
        )
        assert await manager.fetch("/x") == {"ok": True}
        assert calls == 3


class TestCircuitSkipping:
    async def test_every_circuit_open_fails_fast(self):
        clock = FakeClock()
        upstream = Upstream(down={"a.test", "b.test", "c.test"})
        manager = make_manager(upstream, failure_threshold=1, clock=clock)

        with pytest.raises(AllEndpointsFailedError):
            await manager.fetch("/x")
        assert len(manager.get_open_circuits()) == 3

        clock.advance(5)
        with pytest.raises(CircuitOpenError) as exc_info:
            await manager.fetch("/x")
        assert sum(upstream.hits.values()) == 3
        assert not exc_info.value.retryable
        assert exc_info.value.reset_after_seconds == pytest.approx(25)

    async def test_open_mirror_is_skipped_then_probed(self):
        clock = FakeClock()
        upstream = Upstream(down={"a.test", "b.test", "c.test"})
        manager = make_manager(upstream, clock=clock)

        for _ in range(2):
            with pytest.raises(AllEndpointsFailedError):
                await manager.fetch("/x")

        # Third failure opens a; b answers and becomes preferred.
        upstream.down = {"a.test", "c.test"}
        assert await manager.fetch("/x") == {"host": "b.test"}
        assert manager.get_open_circuits() == ["https://a.test"]
        assert manager.preferred_index == 1
        assert upstream.hits["a.test"] == 3

        upstream.down = {"a.test", "b.test", "c.test"}
        with pytest.raises(AllEndpointsFailedError) as exc_info:
            await manager.fetch("/x")
        assert upstream.hits["a.test"] == 3
        assert isinstance(exc_info.value.failures["https://a.test"], CircuitOpenError)
        assert exc_info.value.last_kind == ErrorKind.HTTP

        clock.advance(31)
        upstream.down = {"b.test", "c.test"}
        assert await manager.fetch("/x") == {"host": "a.test"}
        assert upstream.hits["a.test"] == 4
        assert manager.preferred_index == 0
        assert "https://a.test" not in manager.get_open_circuits()

    async def test_reset_circuits(self):
        upstream = Upstream(down={"a.test", "b.test", "c.test"})
        manager = make_manager(upstream, failure_threshold=1)
        with pytest.raises(AllEndpointsFailedError):
            await manager.fetch("/x")
        manager.reset_circuits()
        assert manager.get_open_circuits() == []


class TestLifecycle:
    def test_requires_a_mirror(self):
        with pytest.raises(ValueError):
            EndpointManager([])

    async def test_shared_client_is_left_open(self):
        client = mock_client(Upstream())
        manager = EndpointManager(["https://a.test/"], http_client=client)
        assert manager.mirrors == ("https://a.test",)
        await manager.close()
        assert not client.is_closed
        await client.aclose()


class TestClientErrorsAndCircuits:
    async def test_not_found_never_opens_circuits(self):
        upstream = Upstream(down={"a.test", "b.test", "c.test"}, status=404)
        manager = make_manager(upstream, failure_threshold=1)

        for _ in range(3):
            with pytest.raises(AllEndpointsFailedError) as exc_info:
                await manager.fetch("/x")
            assert exc_info.value.not_found

        assert manager.get_open_circuits() == []
        assert upstream.hits == {"a.test": 3, "b.test": 3, "c.test": 3}

    async def test_mixed_failures_are_not_not_found(self):
        upstream = Upstream(down={"a.test", "b.test", "c.test"})
        manager = make_manager(upstream)
        with pytest.raises(AllEndpointsFailedError) as exc_info:
            await manager.fetch("/x")
        assert not exc_info.value.not_found
