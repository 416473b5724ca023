from __future__ import annotations

from typing import Optional


def cache_aliases(*aliases: str):
    """Brief: Decorator to set aliases on a cache store class for lookup.

    Inputs:
      - *aliases: Variable number of alias strings.

    Outputs:
      - Callable that applies the aliases to a CacheStore subclass and returns it.

    Example:
      >>> from dotproxy.cache_plugins.base import CacheStore, cache_aliases
      >>> @cache_aliases('memory', 'ttl')
      ... class MemoryStore(CacheStore):
      ...     pass
      >>> MemoryStore.aliases
      ('memory', 'ttl')
    """

    def _wrap(cls: type) -> type:
        cls.aliases = tuple(aliases)
        return cls

    return _wrap


class CacheStore:
    """Base class for the external key-value store holding DNS responses.

    Brief:
      CacheStore is the get/set/ping contract the response cache relies on.
      Values are opaque bytes; expiry is the store's responsibility. Any
      networked key-value service satisfying this contract is substitutable.
      Implementations must be safe for concurrent use from many request tasks
      and raise dotproxy.errors.CacheError on store failures.

    Inputs:
      - None.

    Outputs:
      - CacheStore instance.
    """

    aliases: tuple[str, ...] = ()

    async def ping(self) -> bool:
        """Brief: Check that the store is reachable.

        Inputs:
          - None.

        Outputs:
          - bool: True when the store answered.
        """

        raise NotImplementedError("CacheStore.ping() must be implemented by a subclass")

    async def get(self, key: str) -> Optional[bytes]:
        """Brief: Lookup a stored value.

        Inputs:
          - key: Cache key string.

        Outputs:
          - bytes | None: Stored value, or None when absent or expired.
        """

        raise NotImplementedError("CacheStore.get() must be implemented by a subclass")

    async def set(self, key: str, value: bytes, ttl: int) -> None:
        """Brief: Store a value under key with a TTL.

        Inputs:
          - key: Cache key string.
          - value: Bytes to store.
          - ttl: int time-to-live in seconds.

        Outputs:
          - None.
        """

        raise NotImplementedError("CacheStore.set() must be implemented by a subclass")

    async def close(self) -> None:
        """Brief: Release connections held by the store.

        Inputs:
          - None.

        Outputs:
          - None.
        """

        return None
