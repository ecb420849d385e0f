"""
Candidate retrieval over the published inverted index.

Retrieval is a union of posting lists for the expanded query terms,
intersected with optional category / brand filters.  When nothing
matches exactly the retriever falls back through three progressively
looser tiers and stops at the first that yields candidates:

* ``fuzzy``  – substring containment between query token and index term
* ``prefix`` – long shared prefix (inflected Slovak word forms)
* ``scan``   – bounded linear scan of snapshot documents for a token stem

The tier that satisfied the query is reported so callers can tell an
exact hit from a best-effort one.  A :class:`Deadline` is checked
between steps; on expiry whatever has been found so far is returned.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from threading import Event
from typing import Callable, Dict, List, Optional, Sequence, Set

from loguru import logger

from .config import (
    FUZZY_MIN_TOKEN_LEN,
    MIN_SUBSTRING_MATCH,
    PREFIX_MIN_LENGTH,
    PREFIX_MIN_RATIO,
    SCAN_SAMPLE_LIMIT,
    SCAN_STEM_TRIM,
)
from .errors import PartialIndexError, SearchTimeout, StoreError
from .index_build import IndexReader, composite_text
from .models import CatalogSnapshot
from .normalize import normalize_text, split_tokens


class Deadline:
    """Request time budget plus an optional cooperative cancel flag."""

    def __init__(
        self,
        timeout: Optional[float],
        cancel_event: Optional[Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self._at = None if timeout is None else clock() + timeout
        self.cancel_event = cancel_event

    def expired(self) -> bool:
        if self.cancel_event is not None and self.cancel_event.is_set():
            return True
        return self._at is not None and self._clock() >= self._at

    def check(self, step: str) -> None:
        if self.expired():
            raise SearchTimeout(f"deadline reached before {step}")


@dataclass
class RetrievalResult:
    candidate_ids: List[str] = field(default_factory=list)
    tier: str = "none"
    recognized_terms: List[str] = field(default_factory=list)
    postings: Dict[str, Dict[str, int]] = field(default_factory=dict)
    tiers_tried: List[str] = field(default_factory=list)
    timed_out: bool = False


def _shared_prefix_len(a: str, b: str) -> int:
    n = 0
    for x, y in zip(a, b):
        if x != y:
            break
        n += 1
    return n


def fuzzy_match(token: str, term: str) -> bool:
    if token == term:
        return False
    if len(token) >= FUZZY_MIN_TOKEN_LEN and token in term:
        return True
    return len(term) >= MIN_SUBSTRING_MATCH and term in token


def prefix_match(token: str, term: str) -> bool:
    if token == term:
        return False
    shared = _shared_prefix_len(token, term)
    return shared >= PREFIX_MIN_LENGTH and shared >= PREFIX_MIN_RATIO * len(token)


def scan_stem(token: str) -> str:
    """Token minus up to ``SCAN_STEM_TRIM`` trailing chars, never below 3."""
    keep = max(FUZZY_MIN_TOKEN_LEN, len(token) - SCAN_STEM_TRIM)
    return token[:keep]


class Retriever:
    def __init__(self, reader: IndexReader, snapshot: Optional[CatalogSnapshot] = None):
        self.reader = reader
        self.snapshot = snapshot
        self._scan_docs: Optional[List[tuple]] = None

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def filter_ids(self, category: Optional[str], brand: Optional[str]) -> Optional[Set[str]]:
        """
        Id set allowed by the filters, or None when no filter is given.
        An unknown (or unreadable) key yields the empty set.
        """
        allowed: Optional[Set[str]] = None
        for name, lookup in ((category, self.reader.category_ids), (brand, self.reader.brand_ids)):
            if not name:
                continue
            try:
                ids = lookup(name)
            except PartialIndexError as e:
                logger.warning("Filter lookup failed, treating as empty: {}", e)
                ids = set()
            allowed = ids if allowed is None else allowed & ids
        return allowed

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    def _collect(
        self,
        terms: Sequence[str],
        result: RetrievalResult,
        deadline: Optional[Deadline],
    ) -> None:
        for term in terms:
            if term in result.postings:
                continue
            if deadline is not None:
                deadline.check(f"lookup of {term}")
            try:
                posting = self.reader.postings(term)
            except PartialIndexError as e:
                logger.warning("Skipping term after failed lookup: {}", e)
                continue
            if posting:
                result.postings[term] = posting
                result.recognized_terms.append(term)

    def _vocabulary_matches(
        self,
        tokens: Sequence[str],
        vocabulary: Sequence[str],
        match: Callable[[str, str], bool],
    ) -> List[str]:
        out: List[str] = []
        for token in tokens:
            for term in vocabulary:
                if term not in out and match(token, term):
                    out.append(term)
        return out

    def _scan_documents(self) -> List[tuple]:
        if self._scan_docs is None:
            products = self.snapshot.products[:SCAN_SAMPLE_LIMIT] if self.snapshot else ()
            self._scan_docs = [(p.id, split_tokens(normalize_text(composite_text(p)))) for p in products]
        return self._scan_docs

    def _scan(self, tokens: Sequence[str], result: RetrievalResult, deadline: Optional[Deadline]) -> None:
        docs = self._scan_documents()
        for token in tokens:
            if deadline is not None:
                deadline.check("scan")
            stem = scan_stem(token)
            if len(stem) < FUZZY_MIN_TOKEN_LEN:
                continue
            posting: Dict[str, int] = {}
            for pid, words in docs:
                tf = sum(1 for w in words if stem in w)
                if tf:
                    posting[pid] = tf
            if posting and stem not in result.postings:
                result.postings[stem] = posting
                result.recognized_terms.append(stem)

    @staticmethod
    def _union(result: RetrievalResult, allowed: Optional[Set[str]]) -> List[str]:
        ids: Set[str] = set()
        for posting in result.postings.values():
            ids.update(posting)
        if allowed is not None:
            ids &= allowed
        return sorted(ids)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def retrieve(
        self,
        tokens: Sequence[str],
        category: Optional[str] = None,
        brand: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> RetrievalResult:
        """
        Return candidate ids for ``tokens`` (already expanded).

        Never raises on a deadline: ``timed_out`` is set and the partial
        result is returned.  The scan tier is never started late.
        """
        result = RetrievalResult()
        tokens = [t for t in dict.fromkeys(tokens) if t]
        if not tokens:
            return result
        allowed: Optional[Set[str]] = None
        try:
            if deadline is not None:
                deadline.check("filters")
            allowed = self.filter_ids(category, brand)

            result.tiers_tried.append("exact")
            self._collect(tokens, result, deadline)
            result.candidate_ids = self._union(result, allowed)
            if result.candidate_ids:
                result.tier = "exact"
                return result

            vocabulary: Optional[List[str]] = None
            for tier, match in (("fuzzy", fuzzy_match), ("prefix", prefix_match)):
                if deadline is not None:
                    deadline.check(tier)
                if vocabulary is None:
                    try:
                        vocabulary = self.reader.vocabulary()
                    except StoreError as e:
                        logger.warning("Index vocabulary unavailable, skipping fuzzy and prefix tiers: {}", e)
                        break
                result.tiers_tried.append(tier)
                terms = self._vocabulary_matches(tokens, vocabulary, match)
                result.postings.clear()
                result.recognized_terms.clear()
                self._collect(terms, result, deadline)
                result.candidate_ids = self._union(result, allowed)
                if result.candidate_ids:
                    logger.warning("No exact match; {} tier matched terms {}", tier, result.recognized_terms)
                    result.tier = tier
                    return result

            if deadline is not None:
                deadline.check("scan")
            result.tiers_tried.append("scan")
            result.postings.clear()
            result.recognized_terms.clear()
            self._scan(tokens, result, deadline)
            result.candidate_ids = self._union(result, allowed)
            if result.candidate_ids:
                logger.warning("Fell back to document scan; stems {}", result.recognized_terms)
                result.tier = "scan"
            else:
                result.postings.clear()
                result.recognized_terms.clear()
        except SearchTimeout as e:
            logger.warning("Retrieval stopped early: {}", e)
            result.timed_out = True
            result.candidate_ids = self._union(result, allowed)
            if result.candidate_ids and result.tiers_tried:
                result.tier = result.tiers_tried[-1]
        return result
