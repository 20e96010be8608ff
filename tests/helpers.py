"""Shared test doubles: fake clocks, a sleep recorder and mock upstreams."""

from datetime import datetime, timedelta
from typing import Callable

import httpx

from wikigate.monitoring.logger import StructuredLogger
from wikigate.monitoring.service import MonitoringService
from wikigate.services.cache import TTLCache
from wikigate.services.circuit_breaker import CircuitBreakerConfig
from wikigate.services.deduplicator import RequestDeduplicator
from wikigate.services.endpoints import EndpointManager
from wikigate.services.retry import RetryExecutor, RetryPolicy
from wikigate.wikipedia.service import WikipediaService


class FakeClock:
    """Datetime clock advanced by hand."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeTime:
    """Epoch-seconds clock advanced by hand."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Stands in for asyncio.sleep and remembers requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def mock_client(handler: Callable) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def make_manager(
    handler: Callable,
    mirrors: list[str] | None = None,
    failure_threshold: int = 3,
    max_retries: int = 0,
    clock: FakeClock | None = None,
    sleep: SleepRecorder | None = None,
) -> EndpointManager:
    return EndpointManager(
        mirrors or ["https://a.test", "https://b.test", "https://c.test"],
        http_client=mock_client(handler),
        breaker_config=CircuitBreakerConfig(
            failure_threshold=failure_threshold,
            reset_timeout=timedelta(seconds=30),
        ),
        retry_executor=RetryExecutor(
            RetryPolicy(max_retries=max_retries, base_delay=1.0, max_delay=8.0),
            sleep=sleep or SleepRecorder(),
        ),
        clock=clock or FakeClock(),
        name="test",
    )


def make_service(
    handler: Callable,
    deduplicate: bool = True,
    monitoring: MonitoringService | None = None,
    failure_threshold: int = 3,
) -> WikipediaService:
    """WikipediaService wired to a mock upstream with retries disabled."""
    client = mock_client(handler)

    def factory(mirrors: list[str], name: str) -> EndpointManager:
        return EndpointManager(
            mirrors,
            http_client=client,
            breaker_config=CircuitBreakerConfig(failure_threshold=failure_threshold),
            retry_executor=RetryExecutor(RetryPolicy(max_retries=0), sleep=SleepRecorder()),
            name=name,
        )

    return WikipediaService(
        cache=TTLCache(max_size=50),
        deduplicator=RequestDeduplicator() if deduplicate else None,
        endpoint_factory=factory,
        monitoring=monitoring,
    )


def quiet_monitoring() -> MonitoringService:
    return MonitoringService(event_log=StructuredLogger(echo=False))
