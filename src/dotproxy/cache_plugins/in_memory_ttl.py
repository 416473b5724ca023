from __future__ import annotations

import threading
import time
from typing import Optional, Tuple

from cachetools import TLRUCache

from .base import CacheStore, cache_aliases


def _expires_at(_key: str, value: Tuple[float, bytes], now: float) -> float:
    return now + value[0]


@cache_aliases("in_memory_ttl", "memory", "ttl")
class InMemoryTTLCache(CacheStore):
    """In-process TTL store.

    Brief:
      CacheStore backed by a cachetools TLRUCache where every entry carries
      its own TTL. Entries vanish with the process; useful for tests and for
      running without a Redis service.

    Inputs:
      - **config:
          - maxsize (int): Maximum number of entries (default 10000).

    Outputs:
      - InMemoryTTLCache instance.

    Example:
      cache:
        module: memory
        config:
          maxsize: 5000
    """

    def __init__(self, **config: object) -> None:
        maxsize = max(1, int(config.get("maxsize", 10000) or 10000))
        self._cache: TLRUCache = TLRUCache(
            maxsize=maxsize, ttu=_expires_at, timer=time.monotonic
        )
        self._lock = threading.RLock()

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._cache.get(key)
        if entry is None:
            return None
        return entry[1]

    async def set(self, key: str, value: bytes, ttl: int) -> None:
        ttl_int = int(ttl)
        if ttl_int <= 0:
            return
        with self._lock:
            self._cache[key] = (float(ttl_int), bytes(value))

    def __len__(self) -> int:
        with self._lock:
            self._cache.expire()
            return len(self._cache)
