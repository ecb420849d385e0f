"""
Top-level package for the catalog search engine.

This package contains the retrieval-and-ranking core behind a
conversational product-search assistant: text normalization, query
intent analysis, inverted-index construction from catalog snapshots,
candidate retrieval with tiered fallback, lexical or heuristic scoring
and brand diversification.  There are no side-effects on import; the
engine is wired together explicitly through :class:`SearchEngine`.
"""
from __future__ import annotations

from .engine import SearchEngine
from .errors import (
    CatalogSearchError,
    ConfigurationError,
    IndexBuildError,
    PartialIndexError,
    SearchTimeout,
    StoreError,
)
from .models import CatalogSnapshot, Product, QueryAnalysis, SearchOptions, SearchResponse

__all__ = [
    "CatalogSearchError",
    "CatalogSnapshot",
    "ConfigurationError",
    "IndexBuildError",
    "PartialIndexError",
    "Product",
    "QueryAnalysis",
    "SearchEngine",
    "SearchOptions",
    "SearchResponse",
    "SearchTimeout",
    "StoreError",
]
