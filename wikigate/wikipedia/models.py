"""
Typed results decoded from MediaWiki / Wikimedia REST payloads.

Every ``from_api`` constructor takes the raw JSON body of one upstream call.
"""

from typing import Any

from pydantic import BaseModel, Field

from wikigate.services.errors import ServiceError


def _query_pages(data: dict[str, Any]) -> list[dict[str, Any]]:
    """Existing pages of a ``action=query`` response, in upstream order."""
    pages = data.get("query", {}).get("pages", {})
    if isinstance(pages, dict):
        pages = list(pages.values())
    return [p for p in pages if "missing" not in p and "invalid" not in p]


def _first_page(data: dict[str, Any]) -> dict[str, Any] | None:
    pages = _query_pages(data)
    return pages[0] if pages else None


def _names(items: list[dict[str, Any]] | None, key: str = "title") -> list[str]:
    """Pull names out of MediaWiki lists (``*`` in formatversion 1)."""
    names = []
    for item in items or []:
        name = item.get(key, item.get("*"))
        if name:
            names.append(name)
    return names


class SearchResult(BaseModel):
    """One full-text search hit."""

    title: str
    pageid: int
    snippet: str = ""
    size: int | None = None
    wordcount: int | None = None
    timestamp: str | None = None


class SearchResponse(BaseModel):
    query: str
    results: list[SearchResult] = Field(default_factory=list)
    total_hits: int | None = None
    offset: int = 0

    @classmethod
    def from_api(cls, query: str, offset: int, data: dict[str, Any]) -> "SearchResponse":
        block = data.get("query", {})
        return cls(
            query=query,
            results=[SearchResult.model_validate(hit) for hit in block.get("search", [])],
            total_hits=block.get("searchinfo", {}).get("totalhits"),
            offset=offset,
        )


class Section(BaseModel):
    index: str = ""
    line: str = ""
    level: str = ""
    anchor: str = ""


class ParsedPage(BaseModel):
    """Rendered page from ``action=parse``."""

    title: str
    pageid: int
    text: str = ""
    sections: list[Section] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
    links: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "ParsedPage | None":
        parse = data.get("parse")
        if not parse:
            return None
        text = parse.get("text", "")
        if isinstance(text, dict):
            text = text.get("*", "")
        return cls(
            title=parse.get("title", ""),
            pageid=parse.get("pageid", 0),
            text=text,
            sections=[Section.model_validate(s) for s in parse.get("sections", [])],
            images=list(parse.get("images", [])),
            links=_names(parse.get("links")),
            categories=_names(parse.get("categories"), key="category"),
        )


class PageSummary(BaseModel):
    """Lead-section summary from the REST ``page/summary`` endpoint."""

    title: str
    extract: str = ""
    description: str | None = None
    pageid: int | None = None
    thumbnail_url: str | None = None
    content_url: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "PageSummary | None":
        if not data.get("title"):
            return None
        return cls(
            title=data["title"],
            extract=data.get("extract", ""),
            description=data.get("description"),
            pageid=data.get("pageid"),
            thumbnail_url=(data.get("thumbnail") or {}).get("source"),
            content_url=(
                (data.get("content_urls") or {}).get("desktop", {}).get("page")
            ),
        )


class RandomPage(BaseModel):
    id: int
    title: str
    ns: int = 0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RandomPage | None":
        pages = data.get("query", {}).get("random", [])
        return cls.model_validate(pages[0]) if pages else None


class RelatedArticles(BaseModel):
    title: str
    method: str
    articles: list[str] = Field(default_factory=list)

    @classmethod
    def from_api(cls, title: str, method: str, data: dict[str, Any]) -> "RelatedArticles":
        if method == "backlinks":
            articles = _names(data.get("query", {}).get("backlinks"))
        else:
            page = _first_page(data) or {}
            articles = _names(page.get(method))
        return cls(title=title, method=method, articles=articles)


class PageCategories(BaseModel):
    title: str
    categories: list[str] = Field(default_factory=list)

    @classmethod
    def from_api(cls, title: str, data: dict[str, Any]) -> "PageCategories | None":
        page = _first_page(data)
        if page is None:
            return None
        return cls(title=page.get("title", title), categories=_names(page.get("categories")))


class CategoryMember(BaseModel):
    pageid: int
    title: str
    ns: int = 0


class CategoryMembers(BaseModel):
    category: str
    members: list[CategoryMember] = Field(default_factory=list)

    @classmethod
    def from_api(cls, category: str, data: dict[str, Any]) -> "CategoryMembers":
        members = data.get("query", {}).get("categorymembers", [])
        return cls(
            category=category,
            members=[CategoryMember.model_validate(m) for m in members],
        )


class PageImages(BaseModel):
    title: str
    images: list[str] = Field(default_factory=list)
    thumbnail: str | None = None

    @classmethod
    def from_api(cls, title: str, data: dict[str, Any]) -> "PageImages | None":
        page = _first_page(data)
        if page is None:
            return None
        return cls(
            title=page.get("title", title),
            images=_names(page.get("images")),
            thumbnail=(page.get("thumbnail") or {}).get("source"),
        )


class GeoSearchResult(BaseModel):
    pageid: int
    title: str
    lat: float
    lon: float
    dist: float = 0.0

    @classmethod
    def list_from_api(cls, data: dict[str, Any]) -> list["GeoSearchResult"]:
        return [cls.model_validate(hit) for hit in data.get("query", {}).get("geosearch", [])]


class PageExtract(BaseModel):
    title: str
    pageid: int | None = None
    extract: str = ""

    @classmethod
    def list_from_api(cls, data: dict[str, Any]) -> list["PageExtract"]:
        return [
            cls(title=p.get("title", ""), pageid=p.get("pageid"), extract=p.get("extract", ""))
            for p in _query_pages(data)
        ]


class LanguageLink(BaseModel):
    lang: str
    title: str


class PageLanguages(BaseModel):
    title: str
    languages: list[LanguageLink] = Field(default_factory=list)

    @classmethod
    def from_api(cls, title: str, data: dict[str, Any]) -> "PageLanguages | None":
        page = _first_page(data)
        if page is None:
            return None
        return cls(
            title=page.get("title", title),
            languages=[
                LanguageLink(lang=link["lang"], title=link.get("title", link.get("*", "")))
                for link in page.get("langlinks", [])
            ],
        )


class TrendingArticle(BaseModel):
    article: str
    views: int
    rank: int

    @classmethod
    def list_from_api(cls, data: dict[str, Any], limit: int) -> list["TrendingArticle"]:
        items = data.get("items") or [{}]
        articles = items[0].get("articles", [])
        return [cls.model_validate(a) for a in articles[:limit]]


class BatchItemError(BaseModel):
    """Per-item failure inside a batch result map."""

    error: str
    kind: str = "unknown"

    @classmethod
    def from_exception(cls, exc: Exception) -> "BatchItemError":
        kind = exc.kind.value if isinstance(exc, ServiceError) else type(exc).__name__
        return cls(error=str(exc), kind=kind)


class ServiceHealth(BaseModel):
    status: str
    endpoints: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    cache: dict[str, Any] = Field(default_factory=dict)
    deduplication: dict[str, Any] = Field(default_factory=dict)
