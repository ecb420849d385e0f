"""
Tests for synonym expansion and brand detection.
"""
from catalog_search.lexicon import BRANDS, SYNONYMS, detect_brands, expand_tokens, synonym_group
from catalog_search.normalize import normalize_text


class TestSynonyms:
    def test_table_is_normalized(self):
        for key, variants in SYNONYMS.items():
            assert key == normalize_text(key)
            assert all(v == normalize_text(v) for v in variants)

    def test_expansion_is_superset_with_originals_first(self):
        out = expand_tokens(["dezodoranty", "nivea"])
        assert out[:2] == ["dezodoranty", "nivea"]
        assert "dezodorant" in out
        assert "deo" in out
        assert len(out) == len(set(out))

    def test_bidirectional(self):
        assert "dezodorant" in expand_tokens(["deodorant"])
        assert "deodorant" in expand_tokens(["dezodorant"])

    def test_substring_needs_four_chars(self):
        # "deo" is an exact variant, but three chars never match as a substring
        assert synonym_group("de") == []
        assert "sampon" in synonym_group("samponom")

    def test_unrelated_token_unchanged(self):
        assert expand_tokens(["whitewater"]) == ["whitewater"]


class TestDetectBrands:
    def test_two_word_brand_is_one_unit(self):
        assert detect_brands("old spice dezodorant") == ["old spice"]

    def test_two_word_brand_beats_extra_single_word(self):
        assert detect_brands("old spice", extra_brands=("spice",)) == ["old spice"]

    def test_short_brand_needs_word_boundary(self):
        assert detect_brands("farba na vlasy") == []
        assert detect_brands("sprchovy gel fa") == ["fa"]
        assert detect_brands("jarny vypredaj") == []

    def test_order_follows_query(self):
        assert detect_brands("nivea alebo dove") == ["nivea", "dove"]
        assert detect_brands("dove alebo nivea") == ["dove", "nivea"]

    def test_extra_brands_are_normalized(self):
        assert detect_brands("mam rad ziaja", extra_brands=("Žiaja",)) == ["ziaja"]
        assert detect_brands("balea sampon", extra_brands=("Balea",)) == ["balea"]

    def test_empty_query(self):
        assert detect_brands("") == []

    def test_dictionary_is_normalized(self):
        assert all(b == normalize_text(b) for b in BRANDS)
