"""
Tests for brand diversification.
"""
import math
from collections import Counter

import pytest

from catalog_search.diversify import diversify_by_brand, product_matches_brand
from catalog_search.normalize import normalize_text
from catalog_search.scoring import ScoredCandidate


@pytest.fixture
def ranked(make_product):
    """Nivea dominates the top of the ranking; Dove trails."""
    out = []
    for i in range(6):
        out.append(ScoredCandidate(make_product(f"n{i}", f"Nivea krem {i}", brand="Nivea"), 90.0 - i))
    for i in range(4):
        out.append(ScoredCandidate(make_product(f"d{i}", f"Dove krem {i}", brand="Dove"), 50.0 - i))
    out.append(ScoredCandidate(make_product("x0", "Ziaja krem", brand="Ziaja"), 70.0))
    return sorted(out, key=lambda c: (-c.score, c.id))


def _brands(selected):
    return Counter(normalize_text(c.product.brand) for c in selected)


class TestDiversify:
    def test_single_brand_is_plain_truncation(self, ranked):
        assert diversify_by_brand(ranked, ["nivea"], 3) == ranked[:3]

    @pytest.mark.parametrize("limit", [2, 4, 6, 8])
    def test_each_brand_gets_fair_share(self, ranked, limit):
        brands = ["nivea", "dove"]
        selected = diversify_by_brand(ranked, brands, limit)
        counts = _brands(selected)
        share = math.ceil(limit / len(brands))
        assert len(selected) == limit
        assert counts["nivea"] >= min(6, share)
        assert counts["dove"] >= min(4, share)

    def test_short_brand_is_backfilled(self, ranked):
        ranked = [c for c in ranked if c.id != "d1" and c.id != "d2" and c.id != "d3"]
        selected = diversify_by_brand(ranked, ["nivea", "dove"], 6)
        counts = _brands(selected)
        assert len(selected) == 6
        assert counts["dove"] == 1

    def test_result_is_in_rank_order(self, ranked):
        selected = diversify_by_brand(ranked, ["dove", "nivea"], 4)
        scores = [c.score for c in selected]
        assert scores == sorted(scores, reverse=True)

    def test_no_duplicates(self, ranked, make_product):
        both = ScoredCandidate(make_product("nd", "Nivea a Dove set", brand="Nivea"), 95.0)
        selected = diversify_by_brand([both] + ranked, ["nivea", "dove"], 4)
        ids = [c.id for c in selected]
        assert len(ids) == len(set(ids))

    def test_zero_limit(self, ranked):
        assert diversify_by_brand(ranked, ["nivea", "dove"], 0) == []


class TestProductMatchesBrand:
    def test_brand_field_or_title(self, make_product):
        assert product_matches_brand(make_product("a", "Krem", brand="Nivea Men"), "nivea")
        assert product_matches_brand(make_product("b", "Old Spice Captain", brand=""), "old spice")
        assert not product_matches_brand(make_product("c", "Dovezeny krem", brand=""), "dove")
