"""
Tests for the key-value store backends.
"""
import pytest
import redis

from catalog_search import store as store_module
from catalog_search.errors import ConfigurationError, StoreError
from catalog_search.store import InMemoryStore, RedisStore, get_store


class FakeRedis:
    """Stands in for a redis client whose server is down."""

    def __init__(self, ping_ok: bool = True):
        self.ping_ok = ping_ok

    def ping(self):
        if not self.ping_ok:
            raise redis.exceptions.ConnectionError("connection refused")
        return True

    def get(self, key):
        raise redis.exceptions.TimeoutError("timed out")


class TestInMemoryStore:
    def test_strings_and_hashes(self):
        s = InMemoryStore()
        s.set("k", "v")
        s.hset_many("h", {"a": "1", "b": "2", "c": "3"}, batch_size=2)
        assert s.get("k") == "v"
        assert s.hget("h", "b") == "2"
        assert s.hmget("h", ["a", "zz"]) == ["1", None]
        assert sorted(s.hkeys("h")) == ["a", "b", "c"]

    def test_hdel_many_removes_empty_hash(self):
        s = InMemoryStore()
        s.hset_many("h", {"a": "1"})
        s.hdel_many("h", ["a"])
        assert s.hgetall("h") == {}
        assert s.hkeys("h") == []

    def test_rename_replaces_destination(self):
        s = InMemoryStore()
        s.hset_many("live", {"old": "1"})
        s.hset_many("live:staging", {"new": "2"})
        s.rename("live:staging", "live")
        assert s.hgetall("live") == {"new": "2"}
        assert s.hgetall("live:staging") == {}

    def test_rename_missing_source(self):
        with pytest.raises(StoreError):
            InMemoryStore().rename("nope", "live")

    def test_delete(self):
        s = InMemoryStore()
        s.set("k", "v")
        s.hset_many("h", {"a": "1"})
        s.delete("k", "h", "missing")
        assert s.get("k") is None
        assert s.hgetall("h") == {}


class TestRedisStore:
    def test_memory_url_selects_in_memory(self):
        assert isinstance(get_store("memory://"), InMemoryStore)

    def test_empty_url_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            get_store("")

    def test_unreachable_server_is_configuration_error(self, monkeypatch):
        monkeypatch.setattr(store_module.redis, "from_url", lambda *a, **kw: FakeRedis(ping_ok=False))
        with pytest.raises(ConfigurationError):
            RedisStore("redis://localhost:6399/0")

    def test_call_failures_become_store_errors(self, monkeypatch):
        monkeypatch.setattr(store_module.redis, "from_url", lambda *a, **kw: FakeRedis())
        s = RedisStore("redis://localhost:6399/0")
        with pytest.raises(StoreError):
            s.get("products:count")
