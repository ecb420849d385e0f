"""
Key-value backing store for the search index and catalog snapshot.

Supports two backends:
1. InMemory: for tests and local runs (dict-backed, single lock)
2. Redis: for production (Upstash/Vercel KV or any redis:// URL)

Both expose the same small surface: plain string keys, hashes of
string fields, pipelined multi-field writes and an atomic rename used
by the staged index build.
"""
from __future__ import annotations

from threading import Lock
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

import redis
from loguru import logger

from .config import REDIS_URL, STORE_CONNECT_TIMEOUT, STORE_SOCKET_TIMEOUT
from .errors import ConfigurationError, StoreError


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, *keys: str) -> None: ...

    def hget(self, key: str, field: str) -> Optional[str]: ...

    def hmget(self, key: str, fields: Sequence[str]) -> List[Optional[str]]: ...

    def hgetall(self, key: str) -> Dict[str, str]: ...

    def hkeys(self, key: str) -> List[str]: ...

    def hset_many(self, key: str, mapping: Mapping[str, str], batch_size: int = 500) -> None: ...

    def hdel_many(self, key: str, fields: Sequence[str], batch_size: int = 500) -> None: ...

    def rename(self, src: str, dst: str) -> None: ...

    def ping(self) -> bool: ...


def _batches(items: Sequence, size: int) -> Iterable[Sequence]:
    size = max(1, size)
    for start in range(0, len(items), size):
        yield items[start:start + size]


# =============================================================================
# In-memory backend
# =============================================================================

class InMemoryStore:
    """Dict-backed store. Thread-safe through one lock; no expiry."""

    def __init__(self) -> None:
        self._strings: Dict[str, str] = {}
        self._hashes: Dict[str, Dict[str, str]] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._strings.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._strings[key] = str(value)

    def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._strings.pop(key, None)
                self._hashes.pop(key, None)

    def hget(self, key: str, field: str) -> Optional[str]:
        with self._lock:
            return self._hashes.get(key, {}).get(field)

    def hmget(self, key: str, fields: Sequence[str]) -> List[Optional[str]]:
        with self._lock:
            h = self._hashes.get(key, {})
            return [h.get(f) for f in fields]

    def hgetall(self, key: str) -> Dict[str, str]:
        with self._lock:
            return dict(self._hashes.get(key, {}))

    def hkeys(self, key: str) -> List[str]:
        with self._lock:
            return list(self._hashes.get(key, {}).keys())

    def hset_many(self, key: str, mapping: Mapping[str, str], batch_size: int = 500) -> None:
        items = list(mapping.items())
        for batch in _batches(items, batch_size):
            with self._lock:
                h = self._hashes.setdefault(key, {})
                for f, v in batch:
                    h[f] = str(v)

    def hdel_many(self, key: str, fields: Sequence[str], batch_size: int = 500) -> None:
        for batch in _batches(list(fields), batch_size):
            with self._lock:
                h = self._hashes.get(key)
                if h is None:
                    return
                for f in batch:
                    h.pop(f, None)
                if not h:
                    del self._hashes[key]

    def rename(self, src: str, dst: str) -> None:
        with self._lock:
            if src in self._hashes:
                self._hashes[dst] = self._hashes.pop(src)
                self._strings.pop(dst, None)
            elif src in self._strings:
                self._strings[dst] = self._strings.pop(src)
                self._hashes.pop(dst, None)
            else:
                raise StoreError(f"rename: no such key {src}")

    def ping(self) -> bool:
        return True


# =============================================================================
# Redis backend
# =============================================================================

class RedisStore:
    """
    redis-py backed store.  Every RedisError is re-raised as
    :class:`StoreError` so callers only deal with one failure type.
    """

    def __init__(
        self,
        redis_url: str,
        socket_timeout: float = STORE_SOCKET_TIMEOUT,
        connect_timeout: float = STORE_CONNECT_TIMEOUT,
    ) -> None:
        if not redis_url:
            raise ConfigurationError("No Redis URL configured (set REDIS_URL or KV_URL)")
        self._redis = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=connect_timeout,
        )
        try:
            self._redis.ping()
        except redis.exceptions.RedisError as e:
            raise ConfigurationError(f"Redis unreachable: {e}") from e
        logger.info("Connected to Redis: {}", redis_url.split("@")[-1])

    def get(self, key: str) -> Optional[str]:
        try:
            return self._redis.get(key)
        except redis.exceptions.RedisError as e:
            raise StoreError(f"GET {key} failed: {e}") from e

    def set(self, key: str, value: str) -> None:
        try:
            self._redis.set(key, value)
        except redis.exceptions.RedisError as e:
            raise StoreError(f"SET {key} failed: {e}") from e

    def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            self._redis.delete(*keys)
        except redis.exceptions.RedisError as e:
            raise StoreError(f"DEL {keys} failed: {e}") from e

    def hget(self, key: str, field: str) -> Optional[str]:
        try:
            return self._redis.hget(key, field)
        except redis.exceptions.RedisError as e:
            raise StoreError(f"HGET {key} {field} failed: {e}") from e

    def hmget(self, key: str, fields: Sequence[str]) -> List[Optional[str]]:
        if not fields:
            return []
        try:
            return list(self._redis.hmget(key, list(fields)))
        except redis.exceptions.RedisError as e:
            raise StoreError(f"HMGET {key} failed: {e}") from e

    def hgetall(self, key: str) -> Dict[str, str]:
        try:
            return dict(self._redis.hgetall(key))
        except redis.exceptions.RedisError as e:
            raise StoreError(f"HGETALL {key} failed: {e}") from e

    def hkeys(self, key: str) -> List[str]:
        try:
            return list(self._redis.hkeys(key))
        except redis.exceptions.RedisError as e:
            raise StoreError(f"HKEYS {key} failed: {e}") from e

    def hset_many(self, key: str, mapping: Mapping[str, str], batch_size: int = 500) -> None:
        items = list(mapping.items())
        try:
            for batch in _batches(items, batch_size):
                pipe = self._redis.pipeline(transaction=False)
                pipe.hset(key, mapping=dict(batch))
                pipe.execute()
        except redis.exceptions.RedisError as e:
            raise StoreError(f"HSET {key} failed: {e}") from e

    def hdel_many(self, key: str, fields: Sequence[str], batch_size: int = 500) -> None:
        try:
            for batch in _batches(list(fields), batch_size):
                self._redis.hdel(key, *batch)
        except redis.exceptions.RedisError as e:
            raise StoreError(f"HDEL {key} failed: {e}") from e

    def rename(self, src: str, dst: str) -> None:
        try:
            self._redis.rename(src, dst)
        except redis.exceptions.RedisError as e:
            raise StoreError(f"RENAME {src} {dst} failed: {e}") from e

    def ping(self) -> bool:
        try:
            return bool(self._redis.ping())
        except redis.exceptions.RedisError as e:
            raise StoreError(f"PING failed: {e}") from e


def get_store(redis_url: Optional[str] = None) -> KeyValueStore:
    """
    Return the configured backing store.

    ``"memory://"`` selects the in-memory backend; anything else is
    treated as a Redis URL.  An empty URL raises ConfigurationError.
    """
    url = REDIS_URL if redis_url is None else redis_url
    if url.startswith("memory://"):
        logger.info("Using in-memory store")
        return InMemoryStore()
    return RedisStore(url)
