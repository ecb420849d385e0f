"""
Tests for query intent analysis.
"""
import pytest

from catalog_search.analyzer import (
    PRODUCT_TYPES,
    analyze_query,
    detect_gender,
    detect_product_type,
    violates_preference,
)
from catalog_search.normalize import normalize_text


class TestGender:
    @pytest.mark.parametrize(
        "query,expected",
        [
            ("dezodorant pre muzov", "male"),
            ("pansky parfum", "male"),
            ("damsky dezodorant", "female"),
            ("sprchovy gel pre zeny", "female"),
        ],
    )
    def test_explicit(self, query, expected):
        gender, explicit, _ = detect_gender(normalize_text(query))
        assert gender == expected
        assert explicit is True

    def test_inferred_from_relative(self):
        gender, explicit, _ = detect_gender("parfum pre manzelku")
        assert gender == "female"
        assert explicit is False

    def test_kids_phrase(self):
        analysis = analyze_query("sampon pre deti")
        assert analysis.gender == "unisex"
        assert analysis.age_group == "kids"

    def test_gendered_kids_phrase(self):
        analysis = analyze_query("dezodorant pre chlapca")
        assert analysis.gender == "male"
        assert analysis.age_group == "kids"
        assert not analysis.needs_clarification

    def test_both_genders_is_unisex(self):
        gender, explicit, _ = detect_gender("darcek pre muzov aj pre zeny")
        assert gender == "unisex"
        assert explicit is True


class TestProductType:
    def test_first_match_wins(self):
        tag, sensitive = detect_product_type("sprchovy gel a dezodorant")
        assert tag == "deodorant"
        assert sensitive is True

    def test_not_gender_sensitive(self):
        assert detect_product_type("sampon proti lupinam") == ("shampoo", False)

    def test_unknown(self):
        assert detect_product_type("nieco pekne") == (None, False)

    def test_patterns_are_normalized(self):
        for _, patterns, _ in PRODUCT_TYPES:
            assert all(p == normalize_text(p) for p in patterns)


class TestAnalyzeQuery:
    def test_men_deodorant(self):
        a = analyze_query("Dezodorant pre mužov")
        assert a.product_type == "deodorant"
        assert a.gender == "male"
        assert a.gender_explicit
        assert a.tokens == ["dezodorant", "muzov"]
        assert "deodorant" in a.expanded_tokens
        assert not a.needs_clarification

    def test_problems_and_preferences(self):
        a = analyze_query("krem na suchu plet bez parfumu")
        assert "dry_skin" in a.problems
        assert "fragrance_free" in a.preferences

    def test_discount_intent(self):
        assert analyze_query("sampon v akcii").wants_discount
        assert not analyze_query("sampon").wants_discount

    def test_brand_and_product_line(self):
        a = analyze_query("nivea pearl beauty")
        assert a.brands == ["nivea"]
        assert a.product_line == "pearl beauty"

    def test_known_brands_extend_dictionary(self):
        a = analyze_query("balea", known_brands=["Balea"])
        assert a.brands == ["balea"]
        assert not a.needs_clarification

    def test_gender_sensitive_type_without_gender_asks(self):
        a = analyze_query("dezodorant")
        assert a.needs_clarification
        assert "dezodorant" in a.clarification_question

    def test_vague_query_asks(self):
        a = analyze_query("ahoj, mate nieco?")
        assert a.tokens == []
        assert a.needs_clarification
        assert a.clarification_question

    def test_two_tokens_do_not_ask(self):
        a = analyze_query("zelena vec")
        assert not a.needs_clarification


class TestPreferences:
    def test_violation(self):
        assert violates_preference("fragrance_free", "sprchovy gel s parfum kompoziciou")
        assert not violates_preference("fragrance_free", "gel bez parfumu")
        assert not violates_preference("vegan", "cokolvek")
