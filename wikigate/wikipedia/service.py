"""
WikipediaService - Cache-or-fetch read operations against Wikipedia mirrors.

Combines:
- TTLCache for decoded results
- RequestDeduplicator keyed by the same fingerprint as the cache
- One EndpointManager per language (mirror failover, retries, breakers)
- Optional MonitoringService instrumentation per operation
"""

import uuid
from datetime import timedelta
from typing import Any, Awaitable, Callable, TypeVar
from urllib.parse import quote

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from wikigate.monitoring.service import MonitoringService
from wikigate.services.cache import TTLCache
from wikigate.services.deduplicator import RequestDeduplicator
from wikigate.services.endpoints import EndpointManager
from wikigate.services.errors import AllEndpointsFailedError, DecodeError, ValidationError
from wikigate.wikipedia.models import (
    PageSummary,
    ParsedPage,
    RandomPage,
    SearchResponse,
    ServiceHealth,
)
from wikigate.wikipedia.validation import validate_language, validate_range, validate_text

T = TypeVar("T")

API_PATH = "/w/api.php"
SUMMARY_PATH = "/api/rest_v1/page/summary/{title}"

DEFAULT_MIRROR_TEMPLATES = (
    "https://{lang}.wikipedia.org",
    "https://{lang}.m.wikipedia.org",
)

# MediaWiki error codes meaning "no such page" rather than a bad request
MISSING_PAGE_CODES = frozenset({"missingtitle", "nosuchpageid", "invalidtitle"})

EndpointFactory = Callable[[list[str], str], EndpointManager]


def _default_endpoint_factory(mirrors: list[str], name: str) -> EndpointManager:
    return EndpointManager(mirrors, name=name)


def check_api_error(data: Any, service_id: str) -> bool:
    """
    Inspect a MediaWiki body for an ``error`` block.

    Returns True when the error means the page does not exist; raises
    ValidationError for any other upstream-reported error.
    """
    if not isinstance(data, dict) or "error" not in data:
        return False
    error = data["error"] or {}
    code = error.get("code", "unknown")
    if code in MISSING_PAGE_CODES:
        return True
    raise ValidationError(f"{code}: {error.get('info', '')}", service_id=service_id)


def decode_body(parse: Callable[[Any], T], data: Any, service_id: str) -> T:
    """Run ``parse`` on a JSON body, reporting a malformed shape as DecodeError."""
    try:
        return parse(data)
    except (PydanticValidationError, KeyError, AttributeError, TypeError) as e:
        raise DecodeError(
            f"Unexpected response shape from '{service_id}': {type(e).__name__}: {e}",
            service_id=service_id,
        ) from e


class WikipediaService:
    """
    Read access to Wikipedia with caching and resilience.

    Usage:
        service = WikipediaService(cache=TTLCache(), deduplicator=RequestDeduplicator())
        response = await service.search("python", lang="en", limit=5)
        page = await service.get_page("Python (programming language)")
    """

    def __init__(
        self,
        cache: TTLCache,
        deduplicator: RequestDeduplicator | None = None,
        endpoint_factory: EndpointFactory = _default_endpoint_factory,
        monitoring: MonitoringService | None = None,
        default_language: str = "en",
        mirror_templates: tuple[str, ...] | list[str] = DEFAULT_MIRROR_TEMPLATES,
        cache_ttl: timedelta | None = None,
    ):
        self._cache = cache
        self._deduplicator = deduplicator
        self._endpoint_factory = endpoint_factory
        self._monitoring = monitoring
        self.default_language = validate_language(default_language)
        self._mirror_templates = tuple(mirror_templates)
        self._cache_ttl = cache_ttl
        self._endpoints: dict[str, EndpointManager] = {}

    # Endpoint managers

    def get_manager(self, name: str, mirrors: list[str]) -> EndpointManager:
        """Get or create the EndpointManager registered under ``name``."""
        manager = self._endpoints.get(name)
        if manager is None:
            manager = self._endpoint_factory(mirrors, name)
            self._endpoints[name] = manager
            logger.debug(f"Created endpoint manager '{name}' for {len(mirrors)} mirrors")
        return manager

    def get_endpoint_manager(self, lang: str) -> EndpointManager:
        """Get the EndpointManager for a Wikipedia language edition."""
        lang = validate_language(lang)
        mirrors = [template.format(lang=lang) for template in self._mirror_templates]
        return self.get_manager(lang, mirrors)

    # Shared cache-or-fetch path

    async def cached_fetch(
        self,
        key: str,
        manager: EndpointManager,
        path: str,
        params: dict[str, Any] | None,
        parse: Callable[[Any], T | None],
        ttl: timedelta | None = None,
        missing_on_404: bool = False,
    ) -> T | None:
        """
        Return the cached result for ``key`` or fetch, decode and store it.

        Concurrent misses for the same key share one upstream call.
        ``None`` results (missing pages) are not cached. With
        ``missing_on_404`` a 404 from every answering mirror also yields None.

        Raises:
            DecodeError: If the body does not have the expected shape
        """
        cached = self._cache.get(key)
        if cached is not None:
            self._count("cache_hit", key)
            return cached
        self._count("cache_miss", key)

        async def load() -> T | None:
            try:
                data = await manager.fetch(path, params)
            except AllEndpointsFailedError as e:
                if missing_on_404 and e.not_found:
                    return None
                raise

            result = decode_body(parse, data, manager.name)

            if result is not None:
                self._cache.set(key, result, self._cache_ttl if ttl is None else ttl)
            return result

        if self._deduplicator is None:
            return await load()
        return await self._deduplicator.dedupe(key, load)

    def _count(self, metric: str, key: str) -> None:
        if self._monitoring is not None:
            self._monitoring.metrics.increment(metric, {"op": key.split(":", 1)[0]})

    async def instrumented(
        self,
        method: str,
        params: dict[str, Any],
        handler: Callable[[], Awaitable[T]],
    ) -> T:
        """Run ``handler`` through MonitoringService when one is attached."""
        if self._monitoring is None:
            return await handler()
        request_id = f"req_{uuid.uuid4().hex[:12]}"
        return await self._monitoring.monitor_request(method, params, request_id, handler)

    # Read operations

    async def search(
        self,
        query: str,
        lang: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> SearchResponse:
        """Full-text search returning titles, snippets and page ids."""
        lang = validate_language(lang or self.default_language)
        query = validate_text(query, "query")
        validate_range(limit, "limit", 1, 50)
        validate_range(offset, "offset", 0, 10_000)

        manager = self.get_endpoint_manager(lang)
        key = TTLCache.generate_key(
            f"search:{lang}", {"q": query, "limit": limit, "offset": offset}
        )
        params = {
            "action": "query",
            "format": "json",
            "list": "search",
            "srsearch": query,
            "srlimit": limit,
            "sroffset": offset,
            "srinfo": "totalhits",
        }

        def parse(data: Any) -> SearchResponse:
            check_api_error(data, manager.name)
            return SearchResponse.from_api(query, offset, data)

        return await self.instrumented(
            "wikipedia.search",
            {"query": query, "lang": lang, "limit": limit, "offset": offset},
            lambda: self.cached_fetch(key, manager, API_PATH, params, parse),
        )

    async def get_page(
        self,
        title: str,
        lang: str | None = None,
        sections: bool = True,
        images: bool = False,
        links: bool = False,
        categories: bool = False,
    ) -> ParsedPage | None:
        """Rendered page by title, or None when the page does not exist."""
        title = validate_text(title, "title")
        return await self._parse_page(
            "wikipedia.page", "page", title, lang, sections, images, links, categories
        )

    async def get_page_by_id(
        self,
        page_id: int,
        lang: str | None = None,
        sections: bool = True,
        images: bool = False,
        links: bool = False,
        categories: bool = False,
    ) -> ParsedPage | None:
        """Rendered page by numeric id, or None when the id is unknown."""
        validate_range(page_id, "page_id", 1, 2**31 - 1)
        return await self._parse_page(
            "wikipedia.pageById", "pageid", page_id, lang, sections, images, links, categories
        )

    async def _parse_page(
        self,
        method: str,
        selector_name: str,
        selector_value: str | int,
        lang: str | None,
        sections: bool,
        images: bool,
        links: bool,
        categories: bool,
    ) -> ParsedPage | None:
        lang = validate_language(lang or self.default_language)
        manager = self.get_endpoint_manager(lang)

        props = ["text"]
        if sections:
            props.append("sections")
        if images:
            props.append("images")
        if links:
            props.append("links")
        if categories:
            props.append("categories")
        prop = "|".join(props)

        key = TTLCache.generate_key(
            f"page:{lang}", {selector_name: selector_value, "prop": prop}
        )
        params = {"action": "parse", "format": "json", "prop": prop, selector_name: selector_value}

        def parse(data: Any) -> ParsedPage | None:
            if check_api_error(data, manager.name):
                return None
            return ParsedPage.from_api(data)

        return await self.instrumented(
            method,
            {selector_name: selector_value, "lang": lang, "prop": prop},
            lambda: self.cached_fetch(key, manager, API_PATH, params, parse),
        )

    async def get_page_summary(self, title: str, lang: str | None = None) -> PageSummary | None:
        """Lead-section summary via the REST API, or None when missing."""
        lang = validate_language(lang or self.default_language)
        title = validate_text(title, "title")
        manager = self.get_endpoint_manager(lang)
        key = TTLCache.generate_key(f"summary:{lang}", {"title": title})
        path = SUMMARY_PATH.format(title=quote(title.replace(" ", "_"), safe=""))

        return await self.instrumented(
            "wikipedia.summary",
            {"title": title, "lang": lang},
            lambda: self.cached_fetch(
                key, manager, path, None, PageSummary.from_api, missing_on_404=True
            ),
        )

    async def get_random_page(self, lang: str | None = None) -> RandomPage | None:
        """A random main-namespace article. Never cached."""
        lang = validate_language(lang or self.default_language)
        manager = self.get_endpoint_manager(lang)
        params = {
            "action": "query",
            "format": "json",
            "list": "random",
            "rnnamespace": 0,
            "rnlimit": 1,
        }

        async def fetch() -> RandomPage | None:
            data = await manager.fetch(API_PATH, params)
            return decode_body(RandomPage.from_api, data, manager.name)

        return await self.instrumented("wikipedia.random", {"lang": lang}, fetch)

    # Health

    def health_check(self) -> ServiceHealth:
        """Summarize mirror circuits, cache and deduplication state."""
        endpoints = {name: m.get_endpoint_status() for name, m in self._endpoints.items()}
        total = sum(len(m.mirrors) for m in self._endpoints.values())
        open_count = sum(len(m.get_open_circuits()) for m in self._endpoints.values())

        if open_count == 0:
            status = "healthy"
        elif open_count == total:
            status = "unhealthy"
        else:
            status = "degraded"

        return ServiceHealth(
            status=status,
            endpoints=endpoints,
            cache=self._cache.get_stats().to_dict(),
            deduplication=(
                self._deduplicator.get_stats().to_dict()
                if self._deduplicator is not None
                else {"enabled": False}
            ),
        )

    async def close(self) -> None:
        if self._deduplicator is not None:
            self._deduplicator.cancel_all()
        for manager in self._endpoints.values():
            await manager.close()
