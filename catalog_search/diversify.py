"""
Brand balancing for comparison queries.

When a query names more than one brand ("nivea alebo dove") the ranked
list would otherwise be dominated by whichever brand scores highest.
:func:`diversify_by_brand` reserves a per-brand quota, keeps the
relevance order inside the result and backfills any unused slots from
the remaining ranked candidates.
"""
from __future__ import annotations

import math
from typing import Dict, List, Sequence, Set

from loguru import logger

from .config import DIVERSIFY_MIN_QUOTA
from .models import Product
from .normalize import contains_phrase, normalize_text
from .scoring import ScoredCandidate, rank_key


def product_matches_brand(product: Product, brand: str) -> bool:
    """Brand field equals or contains the phrase, or the title contains it."""
    if not brand:
        return False
    product_brand = normalize_text(product.brand)
    if product_brand and (product_brand == brand or contains_phrase(product_brand, brand)):
        return True
    return contains_phrase(normalize_text(product.title), brand)


def diversify_by_brand(
    ranked: Sequence[ScoredCandidate],
    brands: Sequence[str],
    limit: int,
) -> List[ScoredCandidate]:
    """
    Select up to ``limit`` candidates from ``ranked`` with a fair share
    per detected brand.

    Each brand contributes up to ``max(2, ceil(limit / n))`` of its best
    candidates.  Truncation to ``limit`` never takes a brand below
    ``min(picked, limit // n)``.  With a single brand (or none) this is
    plain truncation.
    """
    if limit <= 0:
        return []
    if len(brands) <= 1:
        return list(ranked[:limit])

    n = len(brands)
    quota = max(DIVERSIFY_MIN_QUOTA, math.ceil(limit / n))
    floor_share = limit // n

    per_brand: Dict[str, List[ScoredCandidate]] = {b: [] for b in brands}
    picked_ids: Set[str] = set()
    for brand in brands:
        for c in ranked:
            if len(per_brand[brand]) >= quota:
                break
            if c.id in picked_ids or not product_matches_brand(c.product, brand):
                continue
            per_brand[brand].append(c)
            picked_ids.add(c.id)

    # Guaranteed share first, then the rest of the picks by relevance.
    selected: List[ScoredCandidate] = []
    selected_ids: Set[str] = set()
    for brand in brands:
        for c in per_brand[brand][:min(len(per_brand[brand]), floor_share)]:
            selected.append(c)
            selected_ids.add(c.id)
    leftovers = sorted(
        (c for group in per_brand.values() for c in group if c.id not in selected_ids),
        key=rank_key,
    )
    for c in leftovers:
        if len(selected) >= limit:
            break
        selected.append(c)
        selected_ids.add(c.id)

    if len(selected) < limit:
        for c in ranked:
            if len(selected) >= limit:
                break
            if c.id not in selected_ids:
                selected.append(c)
                selected_ids.add(c.id)

    selected = sorted(selected[:limit], key=rank_key)
    logger.info(
        "Diversified across {} brands (quota {}): {}",
        n,
        quota,
        {b: len(v) for b, v in per_brand.items()},
    )
    return selected
