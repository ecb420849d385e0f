"""
Exception types raised by the search engine.

Only ``ConfigurationError`` is meant to reach callers of a search; the
others are raised inside the engine and handled at the layer that can
degrade gracefully (a failed term lookup, a rebuild, a deadline).
"""


class CatalogSearchError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(CatalogSearchError):
    """Backing store is unconfigured or unreachable."""


class StoreError(CatalogSearchError):
    """A backing-store call failed or timed out."""


class PartialIndexError(StoreError):
    """A single index lookup (term, category, brand) failed or was corrupt."""

    def __init__(self, key: str, field: str, reason: str = "") -> None:
        self.key = key
        self.field = field
        super().__init__(f"lookup {key}[{field}] failed: {reason}" if reason else f"lookup {key}[{field}] failed")


class IndexBuildError(CatalogSearchError):
    """An index rebuild failed; the previously published index stays live."""


class SearchTimeout(CatalogSearchError):
    """The request deadline passed or the request was cancelled."""
