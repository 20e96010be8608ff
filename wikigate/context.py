"""
ServiceContext - Every shared resource of one running service.

Built once at startup and handed to front-ends by reference. Tests build
their own isolated contexts.
"""

from dataclasses import dataclass
from datetime import timedelta

import httpx
from loguru import logger

from wikigate.monitoring.logger import StructuredLogger
from wikigate.monitoring.metrics import MetricsCollector
from wikigate.monitoring.service import MonitoringService
from wikigate.services.cache import TTLCache
from wikigate.services.circuit_breaker import CircuitBreakerConfig
from wikigate.services.deduplicator import RequestDeduplicator
from wikigate.services.endpoints import EndpointManager
from wikigate.services.retry import RetryPolicy
from wikigate.settings import Settings
from wikigate.wikipedia.features import WikipediaExtendedFeatures
from wikigate.wikipedia.service import WikipediaService


@dataclass
class ServiceContext:
    settings: Settings
    http_client: httpx.AsyncClient
    cache: TTLCache
    deduplicator: RequestDeduplicator | None
    monitoring: MonitoringService
    wikipedia: WikipediaService
    features: WikipediaExtendedFeatures
    owns_http_client: bool = True

    def get_health_status(self) -> dict:
        """Health payload for a front-end's health endpoint."""
        upstream = self.wikipedia.health_check()
        return {
            "status": self.monitoring.overall_status(upstream.status),
            "wikipedia": upstream.model_dump(),
            "monitoring": self.monitoring.analytics.get_health_metrics().model_dump(),
        }

    async def close(self) -> None:
        """Cancel in-flight work and close the HTTP client if this context created it."""
        await self.wikipedia.close()
        if self.owns_http_client:
            await self.http_client.aclose()
        logger.debug("ServiceContext closed")

    async def __aenter__(self) -> "ServiceContext":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def create_context(
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ServiceContext:
    """Wire cache, deduplicator, monitoring and Wikipedia services together."""
    settings = settings or Settings.from_env()

    client = http_client or httpx.AsyncClient(
        timeout=httpx.Timeout(settings.request_timeout),
        follow_redirects=True,
    )

    breaker_config = CircuitBreakerConfig(
        failure_threshold=settings.circuit_failure_threshold,
        reset_timeout=timedelta(seconds=settings.circuit_reset_timeout),
    )
    retry_policy = RetryPolicy(
        max_retries=settings.retry_max_retries,
        base_delay=settings.retry_base_delay,
        max_delay=settings.retry_max_delay,
        backoff_multiplier=settings.retry_backoff_multiplier,
    )

    def endpoint_factory(mirrors: list[str], name: str) -> EndpointManager:
        return EndpointManager(
            mirrors,
            http_client=client,
            breaker_config=breaker_config,
            retry_policy=retry_policy,
            timeout=settings.request_timeout,
            user_agent=settings.user_agent,
            name=name,
        )

    cache_ttl = timedelta(seconds=settings.cache_ttl_seconds)
    cache = TTLCache(max_size=settings.cache_max, default_ttl=cache_ttl)
    deduplicator = RequestDeduplicator() if settings.enable_deduplication else None
    monitoring = MonitoringService(
        metrics=MetricsCollector(enabled=settings.enable_metrics),
        event_log=StructuredLogger(min_level=settings.log_level),
        default_language=settings.default_language,
    )

    wikipedia = WikipediaService(
        cache=cache,
        deduplicator=deduplicator,
        endpoint_factory=endpoint_factory,
        monitoring=monitoring,
        default_language=settings.default_language,
        mirror_templates=settings.mirror_templates,
        cache_ttl=cache_ttl,
    )
    features = WikipediaExtendedFeatures(
        wikipedia, default_concurrency=settings.batch_concurrency
    )

    logger.info(
        f"Service context ready (cache_max={settings.cache_max}, "
        f"dedup={settings.enable_deduplication}, lang={settings.default_language})"
    )

    return ServiceContext(
        settings=settings,
        http_client=client,
        cache=cache,
        deduplicator=deduplicator,
        monitoring=monitoring,
        wikipedia=wikipedia,
        features=features,
        owns_http_client=http_client is None,
    )
