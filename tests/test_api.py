"""
Tests for the FastAPI surface, run against an in-memory engine.
"""
import pytest
from fastapi.testclient import TestClient

from catalog_search import api


@pytest.fixture
def client(engine):
    api.set_engine(engine)
    yield TestClient(api.app)
    api.set_engine(None)


class TestRoutes:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    def test_post_search(self, client):
        resp = client.post("/search", json={"query": "dezodorant pre muzov", "limit": 5})
        assert resp.status_code == 200
        body = resp.json()
        assert {p["id"] for p in body["products"]} == {"1", "2"}
        assert body["analysis"]["gender"] == "male"

    def test_post_search_rejects_blank_query(self, client):
        assert client.post("/search", json={"query": "   "}).status_code == 422
        assert client.post("/search", json={"query": "mydlo", "limit": 0}).status_code == 422

    def test_get_search(self, client):
        body = client.get("/search", params={"q": "old spice", "limit": 3}).json()
        assert body["type"] == "search"
        assert body["products"][0]["id"] == "1"
        assert "score" in body["products"][0]

    def test_get_search_clarification(self, client):
        body = client.get("/search", params={"q": "dezodorant"}).json()
        assert body["needs_clarification"]
        assert body["products"] == []

    def test_get_search_requires_query(self, client):
        assert client.get("/search").status_code == 400
        assert client.get("/search", params={"type": "brand"}).status_code == 400

    def test_get_search_stats(self, client):
        body = client.get("/search", params={"type": "stats"}).json()
        assert body["product_count"] == 3
        assert {b["name"] for b in body["brands"]} == {"Nivea", "Old Spice"}

    def test_get_search_category_and_brand(self, client):
        body = client.get("/search", params={"q": "Dezodoranty", "type": "category"}).json()
        assert body["count"] == 3
        body = client.get("/search", params={"q": "Nivea", "type": "brand"}).json()
        assert [p["id"] for p in body["products"]] == ["2", "3"]
        assert body["products"][0]["discount"] == "20%"

    def test_unknown_type_rejected(self, client):
        assert client.get("/search", params={"q": "x", "type": "semantic"}).status_code == 422

    def test_browse_routes(self, client):
        assert client.get("/stats").json()["brand_count"] == 2
        assert client.get("/categories").json() == [{"name": "Kozmetika", "count": 3}]
        assert [b["name"] for b in client.get("/brands").json()] == ["Nivea", "Old Spice"]
        assert [p["id"] for p in client.get("/discounts").json()] == ["2"]

    def test_product_by_id(self, client):
        assert client.get("/products/1").json()["brand"] == "Old Spice"
        assert client.get("/products/404").status_code == 404

    def test_sync(self, client):
        payload = {
            "products": [{"id": "9", "title": "Jar citron na riad", "brand": "Jar", "price": "2,49"}],
            "strategy": "staged",
        }
        resp = client.post("/sync", json=payload)
        assert resp.status_code == 200
        assert resp.json()["product_count"] == 1
        assert client.get("/products/1").status_code == 404

    def test_sync_unknown_strategy(self, client):
        resp = client.post("/sync", json={"products": [], "strategy": "swap"})
        assert resp.status_code == 400


class TestUnconfigured:
    def test_search_without_engine_is_503(self):
        api.set_engine(None)
        client = TestClient(api.app)
        assert client.get("/health").status_code == 200
        assert client.post("/search", json={"query": "mydlo"}).status_code == 503
        assert client.get("/stats").status_code == 503
