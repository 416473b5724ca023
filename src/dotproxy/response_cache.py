from __future__ import annotations

import logging
from typing import Optional

from dnslib import DNSRecord

from .cache_plugins.base import CacheStore
from .errors import CacheError, CodecError

logger = logging.getLogger("dotproxy.response_cache")

DEFAULT_TTL = 30 * 60


def rewrite_id(wire: bytes, req_id: int) -> bytes:
    """
    Re-encode a packed DNS message with a different transaction ID.

    Inputs:
      - wire: Packed DNS message.
      - req_id: 16-bit transaction ID to install.
    Outputs:
      - bytes: Message unpacked, re-identified and packed again.

    The message is fully parsed rather than patched in place, so corrupt
    bytes surface as CodecError instead of being passed on to a client.
    """
    try:
        record = DNSRecord.parse(wire)
        record.header.id = int(req_id) & 0xFFFF
        return record.pack()
    except Exception as exc:
        raise CodecError(f"cannot re-encode DNS message: {exc}") from exc


class ResponseCache:
    """
    Cache-aside wrapper over a CacheStore.

    Inputs:
      - store: CacheStore holding raw upstream responses.
      - ttl: Seconds each entry lives; default 30 minutes.
    Outputs:
      - Instance with lookup(key, request_id) and store(key, packed).

    Brief: Holds no mutable state; the store handles concurrency and expiry.

    Example:
      >>> cache = ResponseCache(InMemoryTTLCache())
      >>> await cache.store(key, response_bytes)
      >>> await cache.lookup(key, 0x1234)
    """

    def __init__(self, store: CacheStore, ttl: int = DEFAULT_TTL) -> None:
        self._store = store
        self.ttl = int(ttl)

    async def ping(self) -> bool:
        return await self._store.ping()

    async def lookup(self, key: str, request_id: int) -> Optional[bytes]:
        """
        Return the cached response for key with its ID set to request_id.

        Inputs:
          - key: Cache key from dotproxy.cache_key.derive_key.
          - request_id: Transaction ID of the query being answered.
        Outputs:
          - bytes | None: Packed response, or None on a miss.

        Raises CacheError when the store fails and CodecError when the stored
        bytes do not parse.
        """
        cached = await self._store.get(key)
        if cached is None:
            logger.debug("Cache miss for %s", key)
            return None
        logger.debug("Cache hit for %s", key)
        return rewrite_id(cached, request_id)

    async def store(self, key: str, packed: bytes) -> None:
        """
        Best-effort write of a packed upstream response.

        Inputs:
          - key: Cache key.
          - packed: Raw upstream response bytes.
        Outputs:
          - None; store failures are logged and swallowed.
        """
        try:
            await self._store.set(key, packed, self.ttl)
        except CacheError as e:
            logger.warning("Error caching response: %s", e)

    async def close(self) -> None:
        await self._store.close()
