"""
Extended Wikipedia operations built on WikipediaService.

Batch variants run their items in windows of ``concurrency`` and report
per-item failures instead of failing the whole batch.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, TypeVar

from wikigate.services.cache import TTLCache
from wikigate.services.errors import ValidationError
from wikigate.wikipedia.models import (
    BatchItemError,
    CategoryMembers,
    GeoSearchResult,
    PageCategories,
    PageExtract,
    PageImages,
    PageLanguages,
    ParsedPage,
    RelatedArticles,
    SearchResponse,
    TrendingArticle,
)
from wikigate.wikipedia.service import API_PATH, WikipediaService, check_api_error
from wikigate.wikipedia.validation import (
    validate_choice,
    validate_coordinates,
    validate_date,
    validate_language,
    validate_range,
    validate_text,
)

T = TypeVar("T")

WIKIMEDIA_MIRRORS = ["https://wikimedia.org"]
PAGEVIEWS_PATH = "/api/rest_v1/metrics/pageviews/top/{lang}.wikipedia/all-access/{date}"

RELATED_METHODS = ("links", "categories", "backlinks")
CATEGORY_MEMBER_TYPES = ("page", "subcat", "file")

# Checked in order; first script match wins
SCRIPT_PATTERNS: tuple[tuple[str, tuple[tuple[int, int], ...]], ...] = (
    ("ja", ((0x3040, 0x309F), (0x30A0, 0x30FF))),
    ("zh", ((0x4E00, 0x9FFF),)),
    ("ko", ((0xAC00, 0xD7AF),)),
    ("ar", ((0x0600, 0x06FF),)),
    ("ru", ((0x0400, 0x04FF),)),
    ("th", ((0x0E00, 0x0E7F),)),
    ("hi", ((0x0900, 0x097F),)),
)


def detect_language(text: str) -> str:
    """Guess a Wikipedia language code from the script used in ``text``."""
    for lang, ranges in SCRIPT_PATTERNS:
        for char in text:
            code = ord(char)
            if any(low <= code <= high for low, high in ranges):
                return lang
    return "en"


class WikipediaExtendedFeatures:
    """
    Batch and secondary read operations.

    Usage:
        features = WikipediaExtendedFeatures(service)
        results = await features.batch_search(["x", "y", "z"], concurrency=2)
    """

    def __init__(self, service: WikipediaService, default_concurrency: int = 5):
        self._service = service
        self._default_concurrency = default_concurrency

    # Batch operations

    async def _run_batch(
        self,
        items: list[str],
        concurrency: int,
        fn: Callable[[str], Awaitable[T]],
    ) -> dict[str, T | BatchItemError]:
        validate_range(concurrency, "concurrency", 1, 50)
        results: dict[str, T | BatchItemError] = {}

        for start in range(0, len(items), concurrency):
            window = items[start : start + concurrency]
            outcomes = await asyncio.gather(*(fn(item) for item in window), return_exceptions=True)

            for item, outcome in zip(window, outcomes):
                if isinstance(outcome, Exception):
                    results[item] = BatchItemError.from_exception(outcome)
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    results[item] = outcome

        return results

    async def batch_search(
        self,
        queries: list[str],
        lang: str | None = None,
        limit: int = 5,
        concurrency: int | None = None,
    ) -> dict[str, SearchResponse | BatchItemError]:
        lang = validate_language(lang or self._service.default_language)
        return await self._service.instrumented(
            "wikipedia.batchSearch",
            {"queries": list(queries), "lang": lang, "limit": limit},
            lambda: self._run_batch(
                list(queries),
                self._default_concurrency if concurrency is None else concurrency,
                lambda q: self._service.search(q, lang=lang, limit=limit),
            ),
        )

    async def batch_get_pages(
        self,
        titles: list[str],
        lang: str | None = None,
        sections: bool = True,
        concurrency: int | None = None,
    ) -> dict[str, ParsedPage | None | BatchItemError]:
        lang = validate_language(lang or self._service.default_language)
        return await self._service.instrumented(
            "wikipedia.batchPages",
            {"titles": list(titles), "lang": lang},
            lambda: self._run_batch(
                list(titles),
                self._default_concurrency if concurrency is None else concurrency,
                lambda t: self._service.get_page(t, lang=lang, sections=sections),
            ),
        )

    # Query helpers

    async def _query(
        self,
        op: str,
        lang: str | None,
        params: dict[str, Any],
        parse: Callable[[dict[str, Any]], T],
    ) -> T:
        lang = validate_language(lang or self._service.default_language)
        manager = self._service.get_endpoint_manager(lang)
        full_params = {"action": "query", "format": "json", **params}
        key = TTLCache.generate_key(f"{op}:{lang}", params)

        def decode(data: Any) -> T:
            check_api_error(data, manager.name)
            return parse(data)

        return await self._service.instrumented(
            f"wikipedia.{op}",
            {**params, "lang": lang},
            lambda: self._service.cached_fetch(key, manager, API_PATH, full_params, decode),
        )

    async def get_related_articles(
        self,
        title: str,
        lang: str | None = None,
        limit: int = 10,
        method: str = "links",
    ) -> RelatedArticles:
        title = validate_text(title, "title")
        validate_range(limit, "limit", 1, 500)
        validate_choice(method, "method", RELATED_METHODS)

        if method == "links":
            params = {"prop": "links", "titles": title, "pllimit": limit, "plnamespace": 0}
        elif method == "categories":
            params = {"prop": "categories", "titles": title, "cllimit": limit}
        else:
            params = {"list": "backlinks", "bltitle": title, "bllimit": limit, "blnamespace": 0}

        return await self._query(
            "related", lang, params, lambda data: RelatedArticles.from_api(title, method, data)
        )

    async def get_page_categories(self, title: str, lang: str | None = None) -> PageCategories | None:
        title = validate_text(title, "title")
        return await self._query(
            "categories",
            lang,
            {"prop": "categories", "titles": title, "cllimit": 500},
            lambda data: PageCategories.from_api(title, data),
        )

    async def get_pages_in_category(
        self,
        category: str,
        lang: str | None = None,
        limit: int = 50,
        member_type: str = "page",
    ) -> CategoryMembers:
        category = validate_text(category, "category")
        validate_range(limit, "limit", 1, 500)
        validate_choice(member_type, "member_type", CATEGORY_MEMBER_TYPES)
        if not category.startswith("Category:"):
            category = f"Category:{category}"

        return await self._query(
            "categoryMembers",
            lang,
            {
                "list": "categorymembers",
                "cmtitle": category,
                "cmlimit": limit,
                "cmtype": member_type,
            },
            lambda data: CategoryMembers.from_api(category, data),
        )

    async def get_page_images(
        self,
        title: str,
        lang: str | None = None,
        limit: int = 10,
        image_width: int = 300,
    ) -> PageImages | None:
        title = validate_text(title, "title")
        validate_range(limit, "limit", 1, 500)
        validate_range(image_width, "image_width", 1, 4000)
        return await self._query(
            "images",
            lang,
            {
                "titles": title,
                "prop": "images|pageimages",
                "imlimit": limit,
                "piprop": "thumbnail",
                "pithumbsize": image_width,
            },
            lambda data: PageImages.from_api(title, data),
        )

    async def search_nearby(
        self,
        lat: float,
        lon: float,
        radius: int = 10_000,
        lang: str | None = None,
        limit: int = 10,
    ) -> list[GeoSearchResult]:
        """Articles within ``radius`` metres of a coordinate."""
        validate_coordinates(lat, lon)
        validate_range(radius, "radius", 10, 10_000)
        validate_range(limit, "limit", 1, 500)
        return await self._query(
            "searchNearby",
            lang,
            {
                "list": "geosearch",
                "gscoord": f"{lat}|{lon}",
                "gsradius": radius,
                "gslimit": limit,
                "gsnamespace": 0,
            },
            GeoSearchResult.list_from_api,
        )

    async def get_page_extracts(
        self,
        titles: list[str],
        lang: str | None = None,
        sentences: int = 3,
        chars: int = 500,
        plaintext: bool = True,
    ) -> list[PageExtract]:
        if not titles:
            raise ValidationError("'titles' must not be empty")
        titles = [validate_text(t, "titles") for t in titles]
        validate_range(sentences, "sentences", 1, 10)
        validate_range(chars, "chars", 1, 1200)

        params: dict[str, Any] = {
            "prop": "extracts",
            "titles": "|".join(titles),
            "exsentences": sentences,
            "exchars": chars,
            "exsectionformat": "plain",
        }
        if plaintext:
            params["explaintext"] = 1

        return await self._query("extracts", lang, params, PageExtract.list_from_api)

    async def full_text_search(
        self,
        query: str,
        lang: str | None = None,
        limit: int = 10,
        namespace: int = 0,
        snippet: bool = True,
    ) -> SearchResponse:
        query = validate_text(query, "query")
        validate_range(limit, "limit", 1, 500)
        return await self._query(
            "fullTextSearch",
            lang,
            {
                "list": "search",
                "srsearch": query,
                "srlimit": limit,
                "srnamespace": namespace,
                "srprop": "snippet|size|timestamp" if snippet else "size|timestamp",
                "srinfo": "totalhits",
            },
            lambda data: SearchResponse.from_api(query, 0, data),
        )

    async def get_page_languages(self, title: str, lang: str | None = None) -> PageLanguages | None:
        title = validate_text(title, "title")
        return await self._query(
            "languages",
            lang,
            {"prop": "langlinks", "titles": title, "lllimit": 500},
            lambda data: PageLanguages.from_api(title, data),
        )

    async def get_trending_articles(
        self,
        lang: str | None = None,
        date: str | None = None,
        limit: int = 20,
    ) -> list[TrendingArticle]:
        """
        Most viewed articles of one day from the Wikimedia pageviews API.

        ``date`` is ``YYYY/MM/DD``; it defaults to yesterday (UTC), the most
        recent day with complete data.
        """
        lang = validate_language(lang or self._service.default_language)
        if date is None:
            date = (datetime.now(timezone.utc) - timedelta(days=1)).strftime("%Y/%m/%d")
        date = validate_date(date)
        validate_range(limit, "limit", 1, 1000)

        manager = self._service.get_manager("wikimedia", WIKIMEDIA_MIRRORS)
        path = PAGEVIEWS_PATH.format(lang=lang, date=date)
        key = f"trending:{lang}:{date}:{limit}"

        async def fetch() -> list[TrendingArticle]:
            # Pageviews answers 404 for days without published data yet
            articles = await self._service.cached_fetch(
                key,
                manager,
                path,
                None,
                lambda data: TrendingArticle.list_from_api(data, limit),
                missing_on_404=True,
            )
            return articles or []

        return await self._service.instrumented(
            "wikipedia.trending", {"lang": lang, "date": date}, fetch
        )
