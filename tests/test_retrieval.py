"""
Tests for candidate retrieval and its fallback tiers.
"""
import threading

import pytest

from catalog_search.config import KEY_WORDS
from catalog_search.errors import SearchTimeout, StoreError
from catalog_search.index_build import IndexReader, build_index, publish_index
from catalog_search.retrieval import Deadline, Retriever, fuzzy_match, prefix_match, scan_stem
from catalog_search.store import InMemoryStore


@pytest.fixture
def retriever(deodorant_catalog) -> Retriever:
    store = InMemoryStore()
    publish_index(store, build_index(deodorant_catalog))
    return Retriever(IndexReader(store), deodorant_catalog)


class TestMatchers:
    def test_fuzzy(self):
        assert fuzzy_match("dezodor", "dezodorant")
        assert fuzzy_match("niveamen", "nivea")
        assert not fuzzy_match("de", "dezodorant")
        assert not fuzzy_match("nivea", "nivea")

    def test_prefix(self):
        assert prefix_match("beautie", "beauty")
        assert not prefix_match("bea", "beauty")
        assert not prefix_match("beautifulness", "beauty")

    def test_scan_stem(self):
        assert scan_stem("oldxy") == "old"
        assert scan_stem("dezodorantu") == "dezodoran"
        assert scan_stem("abc") == "abc"


class TestRetrieve:
    def test_exact(self, retriever):
        result = retriever.retrieve(["whitewater"])
        assert result.tier == "exact"
        assert result.candidate_ids == ["1"]
        assert result.recognized_terms == ["whitewater"]
        assert result.tiers_tried == ["exact"]

    def test_union_of_terms(self, retriever):
        result = retriever.retrieve(["whitewater", "pearl"])
        assert result.candidate_ids == ["1", "3"]

    def test_category_and_brand_filters(self, retriever):
        assert retriever.retrieve(["dezodorant"], brand="Nivea").candidate_ids == ["2", "3"]
        assert retriever.retrieve(["dezodorant"], category="Dezodoranty").candidate_ids == ["1", "2", "3"]

    def test_unknown_filter_is_empty(self, retriever):
        result = retriever.retrieve(["dezodorant"], brand="Dove")
        assert result.candidate_ids == []
        assert result.tier == "none"

    def test_fuzzy_tier(self, retriever):
        result = retriever.retrieve(["dezodor"])
        assert result.tier == "fuzzy"
        assert "dezodorant" in result.recognized_terms
        assert set(result.candidate_ids) == {"1", "2", "3"}

    def test_prefix_tier(self, retriever):
        result = retriever.retrieve(["beautie"])
        assert result.tier == "prefix"
        assert result.candidate_ids == ["3"]
        assert result.tiers_tried == ["exact", "fuzzy", "prefix"]

    def test_scan_tier(self, retriever):
        result = retriever.retrieve(["oldxy"])
        assert result.tier == "scan"
        assert result.candidate_ids == ["1"]
        assert result.recognized_terms == ["old"]

    def test_nothing_found(self, retriever):
        result = retriever.retrieve(["qqqqqq"])
        assert result.tier == "none"
        assert result.candidate_ids == []
        assert result.tiers_tried == ["exact", "fuzzy", "prefix", "scan"]

    def test_empty_tokens(self, retriever):
        assert retriever.retrieve([]).tiers_tried == []

    def test_corrupt_posting_is_skipped(self, retriever):
        retriever.reader.store.hset_many(KEY_WORDS, {"broken": "{oops"})
        result = retriever.retrieve(["broken", "whitewater"])
        assert result.candidate_ids == ["1"]
        assert result.recognized_terms == ["whitewater"]

    def test_vocabulary_failure_skips_to_scan(self, retriever, monkeypatch):
        def timeout(*args, **kwargs):
            raise StoreError("HKEYS timed out")

        monkeypatch.setattr(retriever.reader.store, "hkeys", timeout)
        result = retriever.retrieve(["oldxy"])
        assert result.tiers_tried == ["exact", "scan"]
        assert result.tier == "scan"
        assert result.candidate_ids == ["1"]


class TestDeadline:
    def test_expired_by_clock(self):
        now = [100.0]
        deadline = Deadline(1.0, clock=lambda: now[0])
        assert not deadline.expired()
        now[0] = 101.0
        assert deadline.expired()
        with pytest.raises(SearchTimeout):
            deadline.check("scan")

    def test_no_timeout_never_expires(self):
        assert not Deadline(None).expired()

    def test_cancelled_request_never_scans(self, retriever):
        cancel = threading.Event()
        cancel.set()
        result = retriever.retrieve(["oldxy"], deadline=Deadline(None, cancel_event=cancel))
        assert result.timed_out
        assert result.candidate_ids == []
        assert "scan" not in result.tiers_tried
