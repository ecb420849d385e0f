"""
Pytest configuration and shared fixtures for the catalog search tests.
"""
from typing import Callable, List

import pytest

from catalog_search.engine import SearchEngine
from catalog_search.models import CatalogSnapshot, Product
from catalog_search.store import InMemoryStore


# ============================================================================
# Fixtures: Test Data Factories
# ============================================================================

@pytest.fixture
def make_product() -> Callable[..., Product]:
    """Factory for products with sensible defaults."""
    def _make(pid: str, title: str, **overrides) -> Product:
        base = {
            "id": pid,
            "title": title,
            "brand": "",
            "category_path": ["Kozmetika"],
            "price": 5.0,
            "available": True,
        }
        base.update(overrides)
        return Product(**base)

    return _make


@pytest.fixture
def deodorant_products(make_product) -> List[Product]:
    """Two male-tagged deodorants and one female-tagged one."""
    return [
        make_product(
            "1",
            "Old Spice Whitewater deodorant",
            brand="Old Spice",
            category_path=["Kozmetika", "Dezodoranty"],
            price=4.99,
            target_gender="male",
        ),
        make_product(
            "2",
            "Nivea Men Deep dezodorant",
            brand="Nivea",
            category_path=["Kozmetika", "Dezodoranty"],
            price=3.49,
            sale_price=2.79,
            target_gender="male",
        ),
        make_product(
            "3",
            "Nivea Pearl & Beauty dezodorant",
            brand="Nivea",
            category_path=["Kozmetika", "Dezodoranty"],
            price=3.49,
            target_gender="female",
        ),
    ]


@pytest.fixture
def deodorant_catalog(deodorant_products) -> CatalogSnapshot:
    return CatalogSnapshot(products=tuple(deodorant_products))


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def engine(store, deodorant_catalog) -> SearchEngine:
    """Engine over an in-memory store with the deodorant catalog synced."""
    eng = SearchEngine(store, cache_ttl=60, search_timeout=None, mode="heuristic")
    eng.sync_catalog(deodorant_catalog)
    return eng


@pytest.fixture
def empty_engine(store) -> SearchEngine:
    return SearchEngine(store, cache_ttl=60, search_timeout=None, mode="heuristic")
