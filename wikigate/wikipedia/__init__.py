"""
Wikipedia read operations on top of the resilience layer.
"""

from wikigate.wikipedia.models import (
    BatchItemError,
    PageSummary,
    ParsedPage,
    RandomPage,
    SearchResponse,
    SearchResult,
    ServiceHealth,
)
from wikigate.wikipedia.service import WikipediaService
from wikigate.wikipedia.features import WikipediaExtendedFeatures, detect_language

__all__ = [
    "BatchItemError",
    "PageSummary",
    "ParsedPage",
    "RandomPage",
    "SearchResponse",
    "SearchResult",
    "ServiceHealth",
    "WikipediaService",
    "WikipediaExtendedFeatures",
    "detect_language",
]
