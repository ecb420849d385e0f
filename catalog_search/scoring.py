"""
Candidate scoring.

Two interchangeable strategies rank the retrieved candidates:

* ``bm25`` – Okapi BM25 over the matched (expanded) query terms,
  vectorised with numpy across all candidates at once.
* ``heuristic`` – a sum of independently capped intent components
  (product type, product line, audience, problems, brand, discount,
  availability, term overlap) minus a penalty per violated preference.

Hard filters (availability, explicit opposite gender) run before either
strategy.  Products whose normalized title equals the normalized query
are flagged ``exact_title`` and always sort ahead of everything else.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from .analyzer import problem_patterns, product_type_patterns, violates_preference
from .config import (
    AGE_GROUP_POINTS,
    AVAILABILITY_POINTS,
    BM25_B,
    BM25_K1,
    BRAND_CAP,
    BRAND_FIELD_POINTS,
    BRAND_PARTIAL_POINTS,
    BRAND_TITLE_POINTS,
    DEFAULT_AVG_DOC_LEN,
    DISCOUNT_INTENT_POINTS,
    DISCOUNT_PASSIVE_POINTS,
    GENDER_EXACT_POINTS,
    GENDER_UNISEX_POINTS,
    LINE_CAP,
    LINE_FULL_POINTS,
    LINE_PARTIAL_POINTS,
    MIN_SCORE_WITH_TYPE,
    MIN_SCORE_WITHOUT_TYPE,
    PREFERENCE_VIOLATION_PENALTY,
    PROBLEM_CAP,
    PROBLEM_POINTS,
    TARGET_CAP,
    TERM_OVERLAP_CAP,
    TERM_OVERLAP_POINTS,
    TYPE_CAP,
    TYPE_CATEGORY_POINTS,
    TYPE_DESCRIPTION_POINTS,
    TYPE_TITLE_POINTS,
)
from .models import Product, QueryAnalysis
from .normalize import contains_phrase, normalize_text

_OPPOSITE_GENDER = {"male": "female", "female": "male"}


@dataclass
class ScoredCandidate:
    product: Product
    score: float
    explanation: Dict[str, float] = field(default_factory=dict)
    exact_title: bool = False

    @property
    def id(self) -> str:
        return self.product.id


def rank_key(c: ScoredCandidate) -> Tuple[bool, float, str]:
    """Sort key: exact-title first, then score desc, then id asc."""
    return (not c.exact_title, -c.score, c.product.id)


def is_exact_title(product: Product, analysis: QueryAnalysis) -> bool:
    return bool(analysis.normalized) and normalize_text(product.title) == analysis.normalized


# -----------------------------------------------------------------------------
# Hard filters
# -----------------------------------------------------------------------------

def apply_hard_filters(
    products: Iterable[Product],
    analysis: QueryAnalysis,
    only_available: bool = True,
) -> List[Product]:
    """Drop unavailable products and products tagged for the opposite gender."""
    excluded_gender = _OPPOSITE_GENDER.get(analysis.gender or "") if analysis.gender_explicit else None
    kept: List[Product] = []
    for p in products:
        if only_available and not p.available:
            continue
        if excluded_gender and p.target_gender == excluded_gender:
            continue
        kept.append(p)
    return kept


# -----------------------------------------------------------------------------
# BM25
# -----------------------------------------------------------------------------

def bm25_idf(doc_count: int, doc_freq: int) -> float:
    return math.log((doc_count - doc_freq + 0.5) / (doc_freq + 0.5) + 1.0)


def bm25_term_weight(
    tf: float,
    doc_len: float,
    avg_doc_len: float,
    k1: float = BM25_K1,
    b: float = BM25_B,
) -> float:
    """Length-normalised term frequency component of BM25."""
    if tf <= 0:
        return 0.0
    avg = avg_doc_len if avg_doc_len > 0 else DEFAULT_AVG_DOC_LEN
    return tf * (k1 + 1) / (tf + k1 * (1 - b + b * doc_len / avg))


def score_bm25(
    products: Sequence[Product],
    postings: Mapping[str, Mapping[str, int]],
    doc_lengths: Mapping[str, int],
    doc_count: int,
    avg_doc_len: float,
) -> List[Tuple[float, Dict[str, float]]]:
    """
    BM25 score and per-term contributions for each product, in input order.
    Documents with no stored length are treated as average length.
    """
    if not products:
        return []
    terms = sorted(postings)
    if not terms:
        return [(0.0, {}) for _ in products]
    avg = avg_doc_len if avg_doc_len > 0 else DEFAULT_AVG_DOC_LEN
    n_docs = max(doc_count, 1)

    tf = np.array(
        [[postings[t].get(p.id, 0) for t in terms] for p in products],
        dtype=float,
    )
    dl = np.array([doc_lengths.get(p.id, avg) for p in products], dtype=float)[:, None]
    df = np.array([len(postings[t]) for t in terms], dtype=float)
    idf = np.log((n_docs - df + 0.5) / (df + 0.5) + 1.0)

    denom = tf + BM25_K1 * (1 - BM25_B + BM25_B * dl / avg)
    contrib = np.where(tf > 0, idf * tf * (BM25_K1 + 1) / denom, 0.0)
    totals = contrib.sum(axis=1)

    out: List[Tuple[float, Dict[str, float]]] = []
    for row, total in zip(contrib, totals):
        explanation = {t: round(float(v), 4) for t, v in zip(terms, row) if v > 0}
        out.append((float(total), explanation))
    return out


# -----------------------------------------------------------------------------
# Heuristic
# -----------------------------------------------------------------------------

def _any_phrase(text: str, patterns: Iterable[str]) -> bool:
    return any(contains_phrase(text, p) for p in patterns)


def _type_points(tag: Optional[str], title: str, category: str, description: str) -> float:
    if not tag:
        return 0.0
    patterns = product_type_patterns(tag)
    if _any_phrase(title, patterns):
        return min(TYPE_TITLE_POINTS, TYPE_CAP)
    if _any_phrase(category, patterns):
        return min(TYPE_CATEGORY_POINTS, TYPE_CAP)
    if _any_phrase(description, patterns):
        return min(TYPE_DESCRIPTION_POINTS, TYPE_CAP)
    return 0.0


def _line_points(line: Optional[str], doc: str) -> float:
    if not line:
        return 0.0
    if contains_phrase(doc, line):
        return LINE_FULL_POINTS
    words = line.split()
    doc_words = set(doc.split())
    overlap = sum(1 for w in words if w in doc_words) / len(words)
    return min(LINE_PARTIAL_POINTS * overlap, LINE_CAP)


def _target_points(product: Product, analysis: QueryAnalysis) -> float:
    points = 0.0
    if analysis.gender:
        if product.target_gender == analysis.gender:
            points += GENDER_EXACT_POINTS
        elif product.target_gender == "unisex":
            points += GENDER_UNISEX_POINTS
    if analysis.age_group and product.target_age_group == analysis.age_group:
        points += AGE_GROUP_POINTS
    return min(points, TARGET_CAP)


def _problem_points(problems: Sequence[str], doc: str) -> float:
    hits = sum(1 for tag in problems if _any_phrase(doc, problem_patterns(tag)))
    return min(hits * PROBLEM_POINTS, PROBLEM_CAP)


def _brand_points(brands: Sequence[str], product_brand: str, title: str) -> float:
    best = 0.0
    brand_words = set(product_brand.split())
    for brand in brands:
        if product_brand and (product_brand == brand or contains_phrase(product_brand, brand)):
            best = max(best, BRAND_FIELD_POINTS)
        elif contains_phrase(title, brand):
            best = max(best, BRAND_TITLE_POINTS)
        elif brand_words & set(brand.split()):
            best = max(best, BRAND_PARTIAL_POINTS)
    return min(best, BRAND_CAP)


def score_heuristic(
    product: Product,
    analysis: QueryAnalysis,
    doc_terms: Optional[Iterable[str]] = None,
) -> Tuple[float, Dict[str, float]]:
    """
    Intent-driven score for one product.

    ``doc_terms`` is the product's indexed token set; it defaults to the
    normalized words of its composite text.
    """
    title = normalize_text(product.title)
    category = normalize_text(" ".join(product.category_path))
    description = normalize_text(product.description)
    brand = normalize_text(product.brand)
    doc = " ".join(p for p in (title, brand, category, description) if p)
    terms = set(doc_terms) if doc_terms is not None else set(doc.split())

    parts: Dict[str, float] = {
        "type": _type_points(analysis.product_type, title, category, description),
        "line": _line_points(analysis.product_line, doc),
        "target": _target_points(product, analysis),
        "problems": _problem_points(analysis.problems, doc),
        "brand": _brand_points(analysis.brands, brand, title),
        "discount": 0.0,
        "availability": AVAILABILITY_POINTS if product.available else 0.0,
        "terms": min(
            TERM_OVERLAP_POINTS * sum(1 for t in analysis.tokens if t in terms),
            TERM_OVERLAP_CAP,
        ),
    }
    if product.has_discount:
        parts["discount"] = DISCOUNT_INTENT_POINTS if analysis.wants_discount else DISCOUNT_PASSIVE_POINTS
    violations = sum(1 for tag in analysis.preferences if violates_preference(tag, doc))
    if violations:
        parts["preferences"] = -PREFERENCE_VIOLATION_PENALTY * violations

    explanation = {k: float(v) for k, v in parts.items() if v}
    return float(sum(parts.values())), explanation


def passes_gate(candidate: ScoredCandidate, analysis: QueryAnalysis, mode: str) -> bool:
    if candidate.exact_title:
        return True
    if mode == "bm25":
        return candidate.score > 0
    if analysis.product_type:
        # A recognised type must show up somewhere on the product.
        return candidate.explanation.get("type", 0.0) > 0 and candidate.score >= MIN_SCORE_WITH_TYPE
    return candidate.score >= MIN_SCORE_WITHOUT_TYPE


# -----------------------------------------------------------------------------
# Ranking
# -----------------------------------------------------------------------------

def rank_candidates(
    products: Sequence[Product],
    analysis: QueryAnalysis,
    mode: str,
    postings: Mapping[str, Mapping[str, int]],
    doc_lengths: Optional[Mapping[str, int]] = None,
    doc_count: int = 0,
    avg_doc_len: float = 0.0,
    only_available: bool = True,
    doc_terms: Optional[Mapping[str, Iterable[str]]] = None,
) -> List[ScoredCandidate]:
    """
    Filter, score, gate and sort ``products``.  Returns the full ranked
    list; truncation and diversification happen downstream.
    """
    kept = apply_hard_filters(products, analysis, only_available)
    scored: List[ScoredCandidate] = []
    if mode == "bm25":
        results = score_bm25(kept, postings, doc_lengths or {}, doc_count, avg_doc_len)
        for product, (score, explanation) in zip(kept, results):
            scored.append(ScoredCandidate(product, score, explanation, is_exact_title(product, analysis)))
    else:
        for product in kept:
            terms = doc_terms.get(product.id) if doc_terms is not None else None
            score, explanation = score_heuristic(product, analysis, terms)
            scored.append(ScoredCandidate(product, score, explanation, is_exact_title(product, analysis)))

    passed = [c for c in scored if passes_gate(c, analysis, mode)]
    passed.sort(key=rank_key)
    logger.info(
        "Scored {} candidates ({} mode): {} filtered out, {} below threshold",
        len(products),
        mode,
        len(products) - len(kept),
        len(kept) - len(passed),
    )
    return passed
