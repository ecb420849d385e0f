"""
Tests for index construction, publication and read access.
"""
import importlib
import json

import pytest

from catalog_search.config import (
    KEY_AVG_DOC_LEN,
    KEY_BRANDS,
    KEY_CATEGORIES,
    KEY_COUNT,
    KEY_LAST_UPDATE,
    KEY_SNAPSHOT,
    KEY_WORDS,
    STAGING_SUFFIX,
)
from catalog_search.errors import IndexBuildError, PartialIndexError, StoreError
from catalog_search.index_build import (
    IndexReader,
    build_index,
    category_keys,
    composite_text,
    document_tokens,
    load_snapshot,
    publish_index,
    save_snapshot,
    serialise_index,
)
from catalog_search.models import CatalogSnapshot
from catalog_search.store import InMemoryStore


class FailingWriteStore(InMemoryStore):
    def hset_many(self, key, mapping, batch_size=500):
        raise StoreError("write refused")


class TestDocuments:
    def test_composite_repeats_title_and_brand(self, deodorant_products):
        text = composite_text(deodorant_products[0])
        assert text.count("Old Spice Whitewater deodorant") == 2
        assert text.count("Old Spice") == 4
        assert text.endswith("Kozmetika Dezodoranty")

    def test_document_tokens_keep_frequency_and_add_synonyms(self, deodorant_products):
        tokens = document_tokens(deodorant_products[0])
        assert tokens.count("whitewater") == 2
        assert tokens.count("spice") == 4
        assert "dezodorant" in tokens

    def test_category_keys(self):
        assert category_keys(["Kozmetika", "Dezodoranty"]) == ["kozmetika", "dezodoranty", "kozmetika dezodoranty"]
        assert category_keys([]) == []


class TestBuildIndex:
    def test_postings_and_lengths(self, deodorant_catalog):
        index = build_index(deodorant_catalog)
        assert index.doc_count == 3
        assert index.postings["whitewater"] == {"1": 2}
        assert set(index.postings["nivea"]) == {"2", "3"}
        assert index.categories["dezodoranty"] == {"1", "2", "3"}
        assert index.brands["old spice"] == {"1"}
        lengths = [index.doc_lengths[pid] for pid in ("1", "2", "3")]
        assert index.avg_doc_length == pytest.approx(sum(lengths) / 3)

    def test_rebuild_is_deterministic(self, deodorant_products):
        forward = build_index(CatalogSnapshot(products=tuple(deodorant_products)))
        backward = build_index(CatalogSnapshot(products=tuple(reversed(deodorant_products))))
        assert forward.postings == backward.postings
        assert serialise_index(forward) == serialise_index(backward)

    def test_empty_snapshot(self):
        index = build_index(CatalogSnapshot(products=()))
        assert index.doc_count == 0
        assert index.avg_doc_length == 0.0
        assert index.postings == {}


class TestPublish:
    @pytest.mark.parametrize("strategy", ["in_place", "staged"])
    def test_publish_and_read_back(self, deodorant_catalog, strategy):
        store = InMemoryStore()
        index = build_index(deodorant_catalog)
        publish_index(store, index, strategy=strategy, batch_size=2)
        reader = IndexReader(store)
        meta = reader.metadata()
        assert meta["count"] == 3
        assert meta["published"] is True
        assert meta["avg_doc_len"] == pytest.approx(index.avg_doc_length)
        assert reader.postings("whitewater") == {"1": 2}
        assert reader.category_ids("Dezodoranty") == {"1", "2", "3"}
        assert reader.brand_ids("Old Spice") == {"1"}
        assert reader.postings("neexistuje") == {}
        assert store.hkeys(KEY_WORDS + STAGING_SUFFIX) == []

    @pytest.mark.parametrize("strategy", ["in_place", "staged"])
    def test_republish_removes_stale_fields(self, deodorant_products, strategy):
        store = InMemoryStore()
        publish_index(store, build_index(CatalogSnapshot(products=tuple(deodorant_products))), strategy=strategy)
        publish_index(store, build_index(CatalogSnapshot(products=tuple(deodorant_products[1:]))), strategy=strategy)
        reader = IndexReader(store)
        assert reader.postings("whitewater") == {}
        assert reader.brand_ids("old spice") == set()
        assert reader.metadata()["count"] == 2

    def test_failure_leaves_metadata_untouched(self, deodorant_catalog):
        store = FailingWriteStore()
        store.set(KEY_COUNT, "7")
        with pytest.raises(IndexBuildError):
            publish_index(store, build_index(deodorant_catalog))
        assert store.get(KEY_COUNT) == "7"
        assert store.get(KEY_AVG_DOC_LEN) is None
        assert store.get(KEY_LAST_UPDATE) is None

    @pytest.mark.parametrize("strategy", ["in_place", "staged"])
    def test_snapshot_committed_with_index(self, deodorant_catalog, strategy):
        store = InMemoryStore()
        publish_index(store, build_index(deodorant_catalog), strategy=strategy, snapshot=deodorant_catalog)
        assert [p.id for p in load_snapshot(store).products] == ["1", "2", "3"]
        assert store.get(KEY_SNAPSHOT + STAGING_SUFFIX) is None

    def test_failure_keeps_previous_snapshot(self, deodorant_products):
        store = FailingWriteStore()
        save_snapshot(store, CatalogSnapshot(products=tuple(deodorant_products)))
        with pytest.raises(IndexBuildError):
            publish_index(
                store,
                build_index(CatalogSnapshot(products=tuple(deodorant_products[:1]))),
                snapshot=CatalogSnapshot(products=tuple(deodorant_products[:1])),
            )
        assert [p.id for p in load_snapshot(store).products] == ["1", "2", "3"]

    def test_unknown_strategy(self, deodorant_catalog):
        with pytest.raises(IndexBuildError):
            publish_index(InMemoryStore(), build_index(deodorant_catalog), strategy="blue_green")


class TestReader:
    def test_corrupt_posting_raises_partial_error(self):
        store = InMemoryStore()
        store.hset_many(KEY_WORDS, {"broken": "{not json"})
        with pytest.raises(PartialIndexError) as exc:
            IndexReader(store).postings("broken")
        assert exc.value.field == "broken"

    def test_unpublished_metadata(self):
        meta = IndexReader(InMemoryStore()).metadata()
        assert meta["published"] is False
        assert meta["count"] == 0

    def test_counts(self, deodorant_catalog):
        store = InMemoryStore()
        publish_index(store, build_index(deodorant_catalog))
        reader = IndexReader(store)
        assert reader.brand_counts() == {"old spice": 1, "nivea": 2}
        assert reader.category_counts()["kozmetika"] == 3
        assert json.loads(store.hget(KEY_CATEGORIES, "dezodoranty")) == ["1", "2", "3"]
        assert json.loads(store.hget(KEY_BRANDS, "nivea")) == ["2", "3"]


class TestSnapshotStorage:
    def test_round_trip(self, deodorant_catalog):
        store = InMemoryStore()
        save_snapshot(store, deodorant_catalog)
        loaded = load_snapshot(store)
        assert [p.id for p in loaded.products] == ["1", "2", "3"]
        assert loaded.get("2").has_discount
        assert loaded.created_at == deodorant_catalog.created_at

    def test_missing_snapshot(self):
        assert load_snapshot(InMemoryStore()) is None


@pytest.mark.parametrize("module", ["index_build", "retrieval", "scoring", "diversify", "catalog_build", "api"])
def test_module_docstring_is_first_statement(module):
    assert importlib.import_module(f"catalog_search.{module}").__doc__
