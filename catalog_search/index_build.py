"""
Inverted-index construction, publication and read access.

The index is a deterministic function of a catalog snapshot: term →
{product id → term frequency} postings, per-document token counts,
category and brand membership lists and three metadata keys.  It lives
in the key-value store under the key names in :mod:`config` so several
processes can share it.

Publication writes the new index over the live keys (``in_place``) or
under staging keys that are then renamed over the live ones
(``staged``).  Metadata is always written last; a reader that sees new
metadata therefore sees a complete index.
"""
from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set

from loguru import logger

from .config import (
    DEFAULT_AVG_DOC_LEN,
    INDEX_BUILD_STRATEGY,
    INDEX_DELETE_BATCH,
    INDEX_WRITE_BATCH,
    KEY_AVG_DOC_LEN,
    KEY_BRANDS,
    KEY_CATEGORIES,
    KEY_COUNT,
    KEY_DOC_LENGTHS,
    KEY_LAST_UPDATE,
    KEY_SNAPSHOT,
    KEY_WORDS,
    STAGING_SUFFIX,
)
from .errors import IndexBuildError, PartialIndexError, StoreError
from .lexicon import expand_tokens
from .models import CatalogSnapshot, Product
from .normalize import normalize_text, tokenize
from .store import KeyValueStore

# Composite documents can be long (description + path); do not clamp them
# to the query input cap.
_DOC_MAX_CHARS = 50_000

BUILD_STRATEGIES = ("in_place", "staged")


# -----------------------------------------------------------------------------
# Documents
# -----------------------------------------------------------------------------

def composite_text(product: Product) -> str:
    """
    Searchable text of a product.  Title and brand are repeated so they
    weigh twice as much in term frequency as description words.
    """
    parts = [
        product.title,
        product.title,
        product.brand,
        product.brand,
        product.description,
        " ".join(product.category_path),
    ]
    return " ".join(p for p in parts if p)


def document_tokens(product: Product) -> List[str]:
    """Indexed tokens of a product (synonym-expanded, order kept)."""
    tokens = tokenize(composite_text(product), max_chars=_DOC_MAX_CHARS)
    seen = set(tokens)
    # Frequencies come from the raw tokens; expansion adds each variant once.
    extras = [t for t in expand_tokens(sorted(seen)) if t not in seen]
    return tokens + extras


def category_keys(category_path: Sequence[str]) -> List[str]:
    """Every normalized path level plus the normalized full path."""
    keys: List[str] = []
    for level in category_path:
        k = normalize_text(level)
        if k and k not in keys:
            keys.append(k)
    full = normalize_text(" ".join(category_path))
    if full and full not in keys:
        keys.append(full)
    return keys


@dataclass
class IndexData:
    postings: Dict[str, Dict[str, int]] = field(default_factory=dict)
    doc_lengths: Dict[str, int] = field(default_factory=dict)
    categories: Dict[str, Set[str]] = field(default_factory=dict)
    brands: Dict[str, Set[str]] = field(default_factory=dict)
    doc_count: int = 0
    avg_doc_length: float = 0.0
    built_at: str = ""

    @property
    def term_count(self) -> int:
        return len(self.postings)


def build_index(snapshot: CatalogSnapshot) -> IndexData:
    """
    Aggregate postings, lengths and membership lists for ``snapshot``.

    Pure: no store access.  The same snapshot always produces the same
    postings regardless of product order.
    """
    logger.info("Building inverted index over {} products", snapshot.doc_count)
    index = IndexData(built_at=snapshot.created_at.isoformat())
    total_len = 0
    for product in snapshot.products:
        tokens = document_tokens(product)
        index.doc_lengths[product.id] = len(tokens)
        total_len += len(tokens)
        for term, tf in Counter(tokens).items():
            index.postings.setdefault(term, {})[product.id] = tf
        for key in category_keys(product.category_path):
            index.categories.setdefault(key, set()).add(product.id)
        brand_key = normalize_text(product.brand)
        if brand_key:
            index.brands.setdefault(brand_key, set()).add(product.id)

    index.doc_count = snapshot.doc_count
    index.avg_doc_length = (total_len / index.doc_count) if index.doc_count else 0.0
    logger.info(
        "Index built: {} terms, {} categories, {} brands, avg doc length {:.2f}",
        index.term_count,
        len(index.categories),
        len(index.brands),
        index.avg_doc_length,
    )
    return index


# -----------------------------------------------------------------------------
# Serialisation
# -----------------------------------------------------------------------------

def _dump_posting(posting: Dict[str, int]) -> str:
    return json.dumps(posting, sort_keys=True, separators=(",", ":"))


def _dump_ids(ids: Iterable[str]) -> str:
    return json.dumps(sorted(ids), separators=(",", ":"))


def serialise_index(index: IndexData) -> Dict[str, Dict[str, str]]:
    """Hash key → {field → value} exactly as written to the store."""
    return {
        KEY_WORDS: {term: _dump_posting(p) for term, p in index.postings.items()},
        KEY_DOC_LENGTHS: {pid: str(n) for pid, n in index.doc_lengths.items()},
        KEY_CATEGORIES: {k: _dump_ids(v) for k, v in index.categories.items()},
        KEY_BRANDS: {k: _dump_ids(v) for k, v in index.brands.items()},
    }


# -----------------------------------------------------------------------------
# Publication
# -----------------------------------------------------------------------------

def _publish_in_place(store: KeyValueStore, hashes: Dict[str, Dict[str, str]], batch_size: int) -> None:
    for key, mapping in hashes.items():
        stale = sorted(set(store.hkeys(key)) - set(mapping))
        if stale:
            logger.info("Deleting {} stale fields from {}", len(stale), key)
            store.hdel_many(key, stale, batch_size=INDEX_DELETE_BATCH)
        store.hset_many(key, mapping, batch_size=batch_size)


def _publish_staged(store: KeyValueStore, hashes: Dict[str, Dict[str, str]], batch_size: int) -> None:
    for key, mapping in hashes.items():
        staging = key + STAGING_SUFFIX
        store.delete(staging)
        if mapping:
            store.hset_many(staging, mapping, batch_size=batch_size)
    # Swap only after every staging hash is complete.
    for key, mapping in hashes.items():
        if mapping:
            store.rename(key + STAGING_SUFFIX, key)
        else:
            store.delete(key)


def publish_index(
    store: KeyValueStore,
    index: IndexData,
    strategy: str = INDEX_BUILD_STRATEGY,
    batch_size: int = INDEX_WRITE_BATCH,
    snapshot: Optional[CatalogSnapshot] = None,
) -> None:
    """
    Write ``index`` to ``store`` and commit its metadata.

    When ``snapshot`` is given it is written under a staging key first
    and renamed over the live snapshot key only once every index hash is
    in place, right before the metadata.  Raises IndexBuildError on any
    store failure; the live snapshot and the metadata are then left
    untouched so readers keep using the previous catalog.
    """
    if strategy not in BUILD_STRATEGIES:
        raise IndexBuildError(f"Unknown index build strategy: {strategy}")
    hashes = serialise_index(index)
    staged_snapshot = KEY_SNAPSHOT + STAGING_SUFFIX
    logger.info("Publishing index ({} strategy, batch size {})", strategy, batch_size)
    try:
        if snapshot is not None:
            save_snapshot(store, snapshot, key=staged_snapshot)
        if strategy == "staged":
            _publish_staged(store, hashes, batch_size)
        else:
            _publish_in_place(store, hashes, batch_size)
        if snapshot is not None:
            store.rename(staged_snapshot, KEY_SNAPSHOT)
        store.set(KEY_COUNT, str(index.doc_count))
        store.set(KEY_AVG_DOC_LEN, repr(float(index.avg_doc_length)))
        store.set(KEY_LAST_UPDATE, index.built_at)
    except StoreError as e:
        logger.exception("Index publication failed: {}", e)
        raise IndexBuildError(f"Index publication failed: {e}") from e
    logger.info("Index published: {} documents, {} terms", index.doc_count, index.term_count)


def save_snapshot(store: KeyValueStore, snapshot: CatalogSnapshot, key: str = KEY_SNAPSHOT) -> None:
    store.set(key, json.dumps(snapshot.to_dict(), ensure_ascii=False))


def load_snapshot(store: KeyValueStore) -> Optional[CatalogSnapshot]:
    """Return the stored snapshot, or None when none has been synced."""
    raw = store.get(KEY_SNAPSHOT)
    if not raw:
        return None
    try:
        return CatalogSnapshot.from_dict(json.loads(raw))
    except (ValueError, TypeError) as e:
        raise StoreError(f"Stored snapshot is corrupt: {e}") from e


# -----------------------------------------------------------------------------
# Read side
# -----------------------------------------------------------------------------

class IndexReader:
    """Typed read access to a published index."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def metadata(self) -> Dict[str, object]:
        count_raw = self.store.get(KEY_COUNT)
        avg_raw = self.store.get(KEY_AVG_DOC_LEN)
        try:
            count = int(count_raw) if count_raw else 0
        except ValueError:
            count = 0
        try:
            avg = float(avg_raw) if avg_raw else 0.0
        except ValueError:
            avg = 0.0
        return {
            "count": count,
            "avg_doc_len": avg if avg > 0 else DEFAULT_AVG_DOC_LEN,
            "last_update": self.store.get(KEY_LAST_UPDATE),
            "published": count_raw is not None,
        }

    def postings(self, term: str) -> Dict[str, int]:
        try:
            raw = self.store.hget(KEY_WORDS, term)
        except StoreError as e:
            raise PartialIndexError(KEY_WORDS, term, str(e)) from e
        if raw is None:
            return {}
        try:
            data = json.loads(raw)
            return {str(pid): int(tf) for pid, tf in data.items()}
        except (ValueError, TypeError, AttributeError) as e:
            raise PartialIndexError(KEY_WORDS, term, f"corrupt posting: {e}") from e

    def doc_lengths(self, ids: Sequence[str]) -> Dict[str, int]:
        ids = list(ids)
        values = self.store.hmget(KEY_DOC_LENGTHS, ids)
        out: Dict[str, int] = {}
        for pid, raw in zip(ids, values):
            if raw is None:
                continue
            try:
                out[pid] = int(raw)
            except ValueError:
                logger.warning("Corrupt doc length for {}: {!r}", pid, raw)
        return out

    def _ids(self, key: str, name: str) -> Set[str]:
        field_name = normalize_text(name)
        if not field_name:
            return set()
        try:
            raw = self.store.hget(key, field_name)
        except StoreError as e:
            raise PartialIndexError(key, field_name, str(e)) from e
        if raw is None:
            return set()
        try:
            return {str(pid) for pid in json.loads(raw)}
        except (ValueError, TypeError) as e:
            raise PartialIndexError(key, field_name, f"corrupt id list: {e}") from e

    def category_ids(self, category: str) -> Set[str]:
        return self._ids(KEY_CATEGORIES, category)

    def brand_ids(self, brand: str) -> Set[str]:
        return self._ids(KEY_BRANDS, brand)

    def vocabulary(self) -> List[str]:
        return sorted(self.store.hkeys(KEY_WORDS))

    def _counts(self, key: str) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for name, raw in self.store.hgetall(key).items():
            try:
                out[name] = len(json.loads(raw))
            except (ValueError, TypeError):
                logger.warning("Corrupt id list in {} for {}", key, name)
        return out

    def category_counts(self) -> Dict[str, int]:
        return self._counts(KEY_CATEGORIES)

    def brand_counts(self) -> Dict[str, int]:
        return self._counts(KEY_BRANDS)
