"""
Tests for the snapshot TTL cache.
"""
import pytest

from catalog_search.cache import SnapshotCache
from catalog_search.errors import StoreError


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingLoader:
    def __init__(self):
        self.calls = 0
        self.fail = False

    def __call__(self):
        self.calls += 1
        if self.fail:
            raise StoreError("store down")
        return {"version": self.calls}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def loader():
    return CountingLoader()


@pytest.fixture
def cache(loader, clock):
    return SnapshotCache(loader, ttl_seconds=10, clock=clock)


class TestSnapshotCache:
    def test_reads_within_ttl_share_reference(self, cache, loader, clock):
        first = cache.get()
        clock.now = 9.9
        assert cache.get() is first
        assert loader.calls == 1

    def test_reload_after_ttl(self, cache, loader, clock):
        cache.get()
        clock.now = 10.0
        assert cache.get() == {"version": 2}

    def test_invalidate_forces_reload(self, cache, loader):
        cache.get()
        cache.invalidate()
        assert cache.get() == {"version": 2}

    def test_failed_reload_keeps_old_snapshot(self, cache, loader, clock):
        first = cache.get()
        loader.fail = True
        clock.now = 20.0
        assert cache.get() is first
        loader.fail = False
        assert cache.get() == {"version": 3}

    def test_first_load_failure_propagates(self, cache, loader):
        loader.fail = True
        with pytest.raises(StoreError):
            cache.get()
        assert cache.peek() is None

    def test_concurrent_reader_gets_old_reference(self, cache, loader, clock):
        first = cache.get()
        clock.now = 30.0
        cache._lock.acquire()  # simulate another thread mid-reload
        try:
            assert cache.get() is first
        finally:
            cache._lock.release()
        assert loader.calls == 1

    def test_peek_does_not_load(self, cache, loader):
        assert cache.peek() is None
        assert loader.calls == 0
