"""
TTL cache for the catalog snapshot.

One cache object per engine.  Reads inside the TTL return the cached
reference.  After expiry the first caller reloads; callers that arrive
while a reload is running get the previous reference immediately.
"""
from __future__ import annotations

import time
from threading import Lock
from typing import Callable, Generic, Optional, TypeVar

from loguru import logger

from .config import SNAPSHOT_CACHE_TTL_SECONDS

T = TypeVar("T")


class SnapshotCache(Generic[T]):
    def __init__(
        self,
        loader: Callable[[], Optional[T]],
        ttl_seconds: float = SNAPSHOT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._ttl = ttl_seconds
        self._clock = clock
        self._value: Optional[T] = None
        self._loaded_at: Optional[float] = None
        self._lock = Lock()

    def _fresh(self) -> bool:
        return self._loaded_at is not None and (self._clock() - self._loaded_at) < self._ttl

    def peek(self) -> Optional[T]:
        return self._value

    def invalidate(self) -> None:
        self._loaded_at = None

    def get(self) -> Optional[T]:
        """
        Return the cached value, reloading when stale.

        A failed reload keeps the old value (and retries on the next
        call); with nothing cached yet the loader's error propagates.
        """
        if self._fresh():
            return self._value
        if not self._lock.acquire(blocking=self._value is None):
            # Someone else is reloading; serve what we have.
            return self._value
        try:
            if self._fresh():
                return self._value
            try:
                value = self._loader()
            except Exception as e:
                if self._value is None:
                    raise
                logger.warning("Snapshot reload failed, keeping cached copy: {}", e)
                return self._value
            self._value = value
            self._loaded_at = self._clock()
            logger.info("Snapshot cache reloaded")
            return self._value
        finally:
            self._lock.release()
