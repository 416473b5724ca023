from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable, Optional

from dnslib import CLASS, QTYPE, DNSHeader, DNSQuestion, DNSRecord

from ..cache_key import try_derive_key
from ..errors import CacheError, CodecError
from ..response_cache import ResponseCache
from ..transports.dot import UpstreamTransport

logger = logging.getLogger("dotproxy.server")


def parse_message(data: bytes) -> DNSRecord:
    """
    Parse wire bytes into a DNSRecord.

    Inputs:
      - data: Wire-format DNS message.
    Outputs:
      - DNSRecord.

    Raises CodecError for anything dnslib cannot decode.
    """
    try:
        return DNSRecord.parse(data)
    except Exception as exc:
        raise CodecError(f"cannot parse DNS message: {exc}") from exc


def build_upstream_request(query: DNSRecord) -> DNSRecord:
    """
    Build the message sent upstream for a client query.

    Inputs:
      - query: Parsed client query.
    Outputs:
      - DNSRecord carrying a copy of the question section with RD set.

    The transaction ID is left at 0; ForwardingEngine installs the client's
    ID only after the cache lookup.
    """
    return DNSRecord(DNSHeader(id=0, rd=1), questions=list(query.questions))


class ForwardingEngine:
    """
    Answers a client query from the cache or by forwarding it upstream.

    Inputs:
      - transport: UpstreamTransport used on cache misses.
      - cache: Optional ResponseCache; None forwards every query.
      - key_func: Maps a question section to a cache key or None.
    Outputs:
      - Instance whose forward(query, cancel) returns packed response bytes
        whose ID always equals the query's ID.

    Example:
      >>> engine = ForwardingEngine(transport, ResponseCache(store))
      >>> wire = await engine.forward(DNSRecord.parse(data), cancel=shutdown)
    """

    def __init__(
        self,
        transport: UpstreamTransport,
        cache: Optional[ResponseCache] = None,
        key_func: Callable[[Iterable[DNSQuestion]], Optional[str]] = try_derive_key,
    ) -> None:
        self.transport = transport
        self.cache = cache
        self.key_func = key_func

    async def _cached(self, key: str, req_id: int) -> Optional[bytes]:
        try:
            return await self.cache.lookup(key, req_id)
        except CacheError as e:
            logger.warning("Error getting cached message: %s", e)
            return None

    async def forward(
        self, query: DNSRecord, cancel: Optional[asyncio.Event] = None
    ) -> bytes:
        """
        Resolve one client query.

        Inputs:
          - query: Parsed client query.
          - cancel: Shared shutdown event passed to the upstream exchange.
        Outputs:
          - bytes: Packed response with header.id == query.header.id.

        Raises CodecError, UpstreamError, ConfigurationError or Cancelled;
        cache failures never escape.
        """
        upstream_req = build_upstream_request(query)
        req_id = query.header.id

        key = self.key_func(query.questions) if self.cache is not None else None

        if key is not None:
            cached = await self._cached(key, req_id)
            if cached is not None:
                logger.info("Cache hit for query: %s", _describe(query))
                return cached

        upstream_req.header.id = req_id
        try:
            payload = upstream_req.pack()
        except Exception as exc:
            raise CodecError(f"cannot pack upstream request: {exc}") from exc

        logger.debug(
            "Forwarding %s to %s", _describe(query), self.transport.address
        )
        raw = await self.transport.exchange(payload, cancel=cancel)

        response = parse_message(raw)
        response.header.id = req_id
        try:
            wire = response.pack()
        except Exception as exc:
            raise CodecError(f"cannot pack upstream response: {exc}") from exc

        if key is not None:
            await self.cache.store(key, raw)
        return wire


def _describe(query: DNSRecord) -> str:
    if not query.questions:
        return "<no question>"
    q = query.questions[0]
    return f"{q.qname} {QTYPE.get(q.qtype)} {CLASS.get(q.qclass)}"
