"""
Engine facade: the operations exposed to the chat assistant, the HTTP
API and the CLI.

A :class:`SearchEngine` owns one backing-store client, one index reader
and one snapshot cache.  It is cheap to call concurrently: searches only
read immutable snapshots and published index entries.
"""
from __future__ import annotations

import random
import time
from collections import Counter
from threading import Event
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)

from loguru import logger

from .analyzer import analyze_query
from .catalog_build import snapshot_from_records
from .config import (
    DEFAULT_LIMIT,
    INDEX_BUILD_STRATEGY,
    SCORING_MODE,
    SCORING_MODES,
    SEARCH_TIMEOUT_SECONDS,
    SNAPSHOT_CACHE_TTL_SECONDS,
    STATS_TOP_N,
)
from .cache import SnapshotCache
from .diversify import diversify_by_brand
from .errors import ConfigurationError, PartialIndexError, StoreError
from .index_build import (
    IndexReader,
    build_index,
    document_tokens,
    load_snapshot,
    publish_index,
)
from .models import (
    CatalogSnapshot,
    CategoryCount,
    Product,
    QueryAnalysis,
    ScoredProduct,
    SearchOptions,
    SearchResponse,
    StatsResponse,
    SyncReport,
)
from .retrieval import Deadline, Retriever
from .scoring import ScoredCandidate, rank_candidates
from .store import KeyValueStore, get_store


class _SnapshotViews(NamedTuple):
    snapshot: CatalogSnapshot
    retriever: Retriever
    doc_terms: Dict[str, FrozenSet[str]]
    known_brands: Tuple[str, ...]


def _top_counts(counter: Mapping[str, int], n: Optional[int] = None) -> List[CategoryCount]:
    ordered = sorted(counter.items(), key=lambda kv: (-kv[1], kv[0]))
    if n is not None:
        ordered = ordered[:n]
    return [CategoryCount(name=k, count=v) for k, v in ordered]


def to_scored_product(candidate: ScoredCandidate, tier: str) -> ScoredProduct:
    """Convert an internal candidate into the API response item."""
    data = candidate.product.model_dump()
    return ScoredProduct(
        **data,
        score=round(candidate.score, 4),
        match_tier=tier,
        exact_title=candidate.exact_title,
        explanation=candidate.explanation,
    )


class SearchEngine:
    def __init__(
        self,
        store: KeyValueStore,
        cache_ttl: float = SNAPSHOT_CACHE_TTL_SECONDS,
        search_timeout: Optional[float] = SEARCH_TIMEOUT_SECONDS,
        mode: str = SCORING_MODE,
        clock: Callable[[], float] = time.monotonic,
    ):
        if mode not in SCORING_MODES:
            raise ConfigurationError(f"Unknown scoring mode {mode!r}; expected one of {SCORING_MODES}")
        self.store = store
        self.reader = IndexReader(store)
        self.search_timeout = search_timeout
        self.mode = mode
        self._cache: SnapshotCache[CatalogSnapshot] = SnapshotCache(
            lambda: load_snapshot(self.store), ttl_seconds=cache_ttl, clock=clock
        )
        self._views: Optional[_SnapshotViews] = None

    @classmethod
    def from_env(cls, **kwargs: Any) -> "SearchEngine":
        """Engine over the store configured by REDIS_URL / KV_URL."""
        return cls(get_store(), **kwargs)

    # ------------------------------------------------------------------
    # Snapshot access
    # ------------------------------------------------------------------

    def snapshot(self) -> Optional[CatalogSnapshot]:
        """Current snapshot, or None when nothing is synced or the store fails."""
        try:
            return self._cache.get()
        except StoreError as e:
            logger.warning("Snapshot unavailable: {}", e)
            return None

    def _views_for(self, snapshot: CatalogSnapshot) -> _SnapshotViews:
        # Per-snapshot derived data, swapped as one reference.
        views = self._views
        if views is not None and views.snapshot is snapshot:
            return views
        views = _SnapshotViews(
            snapshot=snapshot,
            retriever=Retriever(self.reader, snapshot),
            doc_terms={p.id: frozenset(document_tokens(p)) for p in snapshot.products},
            known_brands=tuple(snapshot.brand_names()),
        )
        self._views = views
        return views

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search_products(
        self,
        query: str,
        options: Optional[SearchOptions] = None,
        cancel_event: Optional[Event] = None,
    ) -> SearchResponse:
        """
        Ranked products for a free-text query.

        Returns an empty response (never raises) when the query needs
        clarification, nothing matches or no index has been published.
        """
        options = options or SearchOptions()
        mode = options.mode or self.mode
        snapshot = self.snapshot()
        views = self._views_for(snapshot) if snapshot is not None else None
        analysis = analyze_query(query, known_brands=views.known_brands if views else ())

        response = SearchResponse(
            query=query,
            analysis=analysis,
            detected_brands=analysis.brands,
            mode=mode,
        )
        try:
            meta = self.reader.metadata()
        except StoreError as e:
            logger.warning("Index metadata unavailable: {}", e)
            meta = {"published": False}
        if snapshot is None or not meta.get("published"):
            logger.warning("Search for '{}' with no published index", analysis.normalized)
            response.source_available = False
            return self._with_clarification(response, analysis)

        exact_ids = list(snapshot.ids_by_title.get(analysis.normalized, ()))
        if analysis.needs_clarification and not exact_ids:
            return self._with_clarification(response, analysis)

        deadline = Deadline(self.search_timeout, cancel_event)
        retriever = views.retriever
        result = retriever.retrieve(analysis.expanded_tokens, options.category, options.brand, deadline)

        candidate_ids = list(result.candidate_ids)
        if exact_ids:
            allowed = retriever.filter_ids(options.category, options.brand)
            for pid in exact_ids:
                if pid not in candidate_ids and (allowed is None or pid in allowed):
                    candidate_ids.append(pid)

        products = [p for p in (snapshot.get(pid) for pid in candidate_ids) if p is not None]
        doc_lengths: Dict[str, int] = {}
        if mode == "bm25" and products:
            try:
                doc_lengths = self.reader.doc_lengths([p.id for p in products])
            except StoreError as e:
                logger.warning("Doc lengths unavailable, assuming average length: {}", e)

        ranked = rank_candidates(
            products,
            analysis,
            mode,
            result.postings,
            doc_lengths=doc_lengths,
            doc_count=int(meta.get("count") or snapshot.doc_count),
            avg_doc_len=float(meta.get("avg_doc_len") or 0.0),
            only_available=options.only_available,
            doc_terms=views.doc_terms,
        )
        final = diversify_by_brand(ranked, analysis.brands, options.limit)

        tier = result.tier
        if tier == "none" and final and all(c.exact_title for c in final):
            tier = "exact"
        response.products = [to_scored_product(c, "exact" if c.exact_title else tier) for c in final]
        response.total = len(ranked)
        response.recognized_terms = result.recognized_terms
        response.match_tier = tier if final else "none"
        response.timed_out = result.timed_out
        logger.info(
            "Search '{}' -> {} results (tier={}, total={}, timed_out={})",
            analysis.normalized,
            len(final),
            response.match_tier,
            response.total,
            response.timed_out,
        )
        return response

    @staticmethod
    def _with_clarification(response: SearchResponse, analysis: QueryAnalysis) -> SearchResponse:
        response.needs_clarification = analysis.needs_clarification
        response.clarification_question = analysis.clarification_question
        return response

    # ------------------------------------------------------------------
    # Catalog browsing
    # ------------------------------------------------------------------

    def get_product_by_id(self, product_id: str) -> Optional[Product]:
        snapshot = self.snapshot()
        return snapshot.get(product_id) if snapshot is not None else None

    def get_discounted_products(self, limit: int = DEFAULT_LIMIT) -> List[Product]:
        """Available discounted products, highest discount first."""
        snapshot = self.snapshot()
        if snapshot is None:
            return []
        discounted = [p for p in snapshot.products if p.available and p.has_discount]
        discounted.sort(key=lambda p: (-p.discount_percent, p.id))
        return discounted[:max(0, limit)]

    def _member_products(self, ids: Iterable[str], only_available: bool = True) -> List[Product]:
        snapshot = self.snapshot()
        if snapshot is None:
            return []
        wanted = set(ids)
        return [p for p in snapshot.products if p.id in wanted and (p.available or not only_available)]

    def _lookup(self, lookup: Callable[[str], Set[str]], name: str) -> Set[str]:
        try:
            return lookup(name)
        except PartialIndexError as e:
            logger.warning("Lookup failed: {}", e)
            return set()

    def search_by_category(self, category: str, limit: int = DEFAULT_LIMIT) -> List[Product]:
        """Available products under ``category`` (any path level), feed order."""
        ids = self._lookup(self.reader.category_ids, category)
        return self._member_products(ids)[:max(0, limit)]

    def search_by_brand(self, brand: str, limit: int = DEFAULT_LIMIT) -> List[Product]:
        ids = self._lookup(self.reader.brand_ids, brand)
        return self._member_products(ids)[:max(0, limit)]

    def get_random_from_category(
        self,
        category: str,
        limit: int = 3,
        rng: Optional[random.Random] = None,
    ) -> List[Product]:
        members = self._member_products(self._lookup(self.reader.category_ids, category))
        if not members:
            return []
        rng = rng or random.Random()
        return rng.sample(members, min(max(0, limit), len(members)))

    def get_categories(self) -> List[CategoryCount]:
        """Main categories with product counts, count desc then name."""
        snapshot = self.snapshot()
        if snapshot is not None:
            return _top_counts(Counter(p.category_main for p in snapshot.products if p.category_main))
        try:
            return _top_counts(self.reader.category_counts())
        except StoreError as e:
            logger.warning("Category counts unavailable: {}", e)
            return []

    def get_brands(self) -> List[CategoryCount]:
        snapshot = self.snapshot()
        if snapshot is not None:
            return _top_counts(Counter(p.brand for p in snapshot.products if p.brand))
        try:
            return _top_counts(self.reader.brand_counts())
        except StoreError as e:
            logger.warning("Brand counts unavailable: {}", e)
            return []

    def get_stats(self) -> StatsResponse:
        try:
            meta = self.reader.metadata()
        except StoreError as e:
            logger.warning("Index metadata unavailable: {}", e)
            return StatsResponse()
        categories = self.get_categories()
        brands = self.get_brands()
        return StatsResponse(
            product_count=int(meta["count"]),
            last_update=str(meta["last_update"] or "unknown"),
            avg_doc_length=round(float(meta["avg_doc_len"]) if meta["published"] else 0.0, 2),
            category_count=len(categories),
            brand_count=len(brands),
            top_categories=categories[:STATS_TOP_N],
            top_brands=brands[:STATS_TOP_N],
        )

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def sync_catalog(
        self,
        source: Union[CatalogSnapshot, Sequence[Mapping[str, Any]]],
        strategy: str = INDEX_BUILD_STRATEGY,
    ) -> SyncReport:
        """
        Replace the catalog: rebuild the index, publish it together with
        the snapshot, then drop the cached snapshot.

        Raises IndexBuildError if publication fails; the previous snapshot
        and index metadata then stay live.
        """
        started = time.perf_counter()
        snapshot = source if isinstance(source, CatalogSnapshot) else snapshot_from_records(source)
        logger.info("Syncing catalog with {} products ({} strategy)", snapshot.doc_count, strategy)
        index = build_index(snapshot)
        publish_index(self.store, index, strategy=strategy, snapshot=snapshot)
        self._cache.invalidate()
        report = SyncReport(
            product_count=index.doc_count,
            term_count=index.term_count,
            category_count=len({p.category_main for p in snapshot.products if p.category_main}),
            brand_count=len({p.brand for p in snapshot.products if p.brand}),
            avg_doc_length=round(index.avg_doc_length, 2),
            strategy=strategy,
            last_update=index.built_at,
            duration_seconds=round(time.perf_counter() - started, 3),
        )
        logger.info("Sync complete: {}", report.model_dump())
        return report
