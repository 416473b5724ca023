"""
Brief: Tests for the forwarding engine: cache-aside resolution and ID handling.

Inputs:
  - None

Outputs:
  - None
"""

import asyncio
import logging

import pytest
from dnslib import RR, DNSRecord

from dotproxy.cache_key import derive_key
from dotproxy.cache_plugins.in_memory_ttl import InMemoryTTLCache
from dotproxy.errors import CacheError, CodecError, UpstreamError
from dotproxy.response_cache import ResponseCache
from dotproxy.servers.forwarder import (
    ForwardingEngine,
    build_upstream_request,
    parse_message,
)


class FakeTransport:
    """Answers every exchange with example.com A 93.184.216.34."""

    address = "192.0.2.53:853"

    def __init__(self, raw=None, exc=None):
        self.calls = []
        self.raw = raw
        self.exc = exc

    async def exchange(self, payload, cancel=None):
        self.calls.append((payload, cancel))
        if self.exc is not None:
            raise self.exc
        if self.raw is not None:
            return self.raw
        req = DNSRecord.parse(payload)
        reply = req.reply()
        reply.add_answer(*RR.fromZone(f"{req.q.qname} 300 IN A 93.184.216.34"))
        return reply.pack()


class _BrokenSetStore(InMemoryTTLCache):
    async def set(self, key, value, ttl):
        raise CacheError("redis set failed: connection refused")


class _BrokenGetStore(InMemoryTTLCache):
    async def get(self, key):
        raise CacheError("redis get failed: connection refused")


def _query(name="example.com", qtype="A", qid=0x1234, rd=1) -> DNSRecord:
    q = DNSRecord.question(name, qtype)
    q.header.id = qid
    q.header.rd = rd
    return q


def test_parse_message_wraps_errors() -> None:
    with pytest.raises(CodecError):
        parse_message(b"\x01")


def test_build_upstream_request_copies_questions_and_sets_rd() -> None:
    q = _query(qid=0x4242, rd=0)
    req = build_upstream_request(q)
    assert req.header.id == 0
    assert req.header.rd == 1
    assert req.questions == q.questions
    assert req.questions is not q.questions


def test_cache_miss_forwards_and_stores() -> None:
    """
    Brief: Empty cache: one upstream exchange, answer returned with the client ID.

    Inputs:
      - None

    Outputs:
      - None: Asserts exchange count, response ID, answer and stored entry
    """
    store = InMemoryTTLCache()
    transport = FakeTransport()
    engine = ForwardingEngine(transport, ResponseCache(store))
    query = _query(qid=0x1234)

    wire = asyncio.run(engine.forward(query))
    resp = DNSRecord.parse(wire)
    assert len(transport.calls) == 1
    assert resp.header.id == 0x1234
    assert str(resp.rr[0].rdata) == "93.184.216.34"
    assert len(store) == 1
    assert asyncio.run(store.get(derive_key(query.questions))) is not None


def test_cache_hit_skips_upstream_and_uses_new_id() -> None:
    """
    Brief: Second query for the same question is served from cache with its own ID.

    Inputs:
      - None

    Outputs:
      - None: Asserts no second exchange and ID 0xABCD
    """
    transport = FakeTransport()
    engine = ForwardingEngine(transport, ResponseCache(InMemoryTTLCache()))

    async def run():
        first = await engine.forward(_query(qid=0x1234))
        second = await engine.forward(_query(qid=0xABCD, rd=0))
        return first, second

    first, second = asyncio.run(run())
    assert len(transport.calls) == 1
    assert DNSRecord.parse(first).header.id == 0x1234
    hit = DNSRecord.parse(second)
    assert hit.header.id == 0xABCD
    assert str(hit.rr[0].rdata) == "93.184.216.34"


def test_cache_write_failure_still_answers(caplog) -> None:
    caplog.set_level(logging.WARNING)
    transport = FakeTransport()
    engine = ForwardingEngine(transport, ResponseCache(_BrokenSetStore()))
    wire = asyncio.run(engine.forward(_query(qid=0x0101)))
    assert DNSRecord.parse(wire).header.id == 0x0101
    assert "Error caching response" in caplog.text


def test_cache_read_failure_falls_through_to_upstream(caplog) -> None:
    caplog.set_level(logging.WARNING)
    transport = FakeTransport()
    engine = ForwardingEngine(transport, ResponseCache(_BrokenGetStore()))
    wire = asyncio.run(engine.forward(_query(qid=0x0202)))
    assert DNSRecord.parse(wire).header.id == 0x0202
    assert len(transport.calls) == 1
    assert "Error getting cached message" in caplog.text


def test_repeated_forwarding_is_idempotent() -> None:
    transport = FakeTransport()
    engine = ForwardingEngine(transport, ResponseCache(InMemoryTTLCache()))

    async def run():
        return [await engine.forward(_query(qid=0x0A0A)) for _ in range(3)]

    answers = asyncio.run(run())
    assert answers[0] == answers[1] == answers[2]
    assert len(transport.calls) == 1


def test_upstream_request_forces_rd_and_client_id() -> None:
    transport = FakeTransport()
    engine = ForwardingEngine(transport)
    asyncio.run(engine.forward(_query(qid=0x7777, rd=0)))
    sent = DNSRecord.parse(transport.calls[0][0])
    assert sent.header.id == 0x7777
    assert sent.header.rd == 1
    assert str(sent.q.qname) == "example.com."


def test_no_cache_forwards_every_time() -> None:
    transport = FakeTransport()
    engine = ForwardingEngine(transport, cache=None)

    async def run():
        await engine.forward(_query())
        await engine.forward(_query())

    asyncio.run(run())
    assert len(transport.calls) == 2


def test_key_failure_skips_cache_entirely() -> None:
    store = InMemoryTTLCache()
    transport = FakeTransport()
    engine = ForwardingEngine(
        transport, ResponseCache(store), key_func=lambda questions: None
    )

    async def run():
        await engine.forward(_query())
        await engine.forward(_query())

    asyncio.run(run())
    assert len(transport.calls) == 2
    assert len(store) == 0


def test_corrupt_cache_entry_is_codec_error() -> None:
    store = InMemoryTTLCache()
    query = _query()
    asyncio.run(store.set(derive_key(query.questions), b"\x00\x01\x02", 60))
    engine = ForwardingEngine(FakeTransport(), ResponseCache(store))
    with pytest.raises(CodecError):
        asyncio.run(engine.forward(query))


def test_undecodable_upstream_response_is_codec_error() -> None:
    store = InMemoryTTLCache()
    engine = ForwardingEngine(FakeTransport(raw=b"\xde\xad"), ResponseCache(store))
    with pytest.raises(CodecError):
        asyncio.run(engine.forward(_query()))
    assert len(store) == 0


def test_upstream_error_propagates_and_nothing_cached() -> None:
    store = InMemoryTTLCache()
    engine = ForwardingEngine(
        FakeTransport(exc=UpstreamError("tls handshake failed")), ResponseCache(store)
    )
    with pytest.raises(UpstreamError):
        asyncio.run(engine.forward(_query()))
    assert len(store) == 0


def test_cancel_event_is_passed_to_transport() -> None:
    transport = FakeTransport()
    engine = ForwardingEngine(transport)

    async def run():
        cancel = asyncio.Event()
        await engine.forward(_query(), cancel=cancel)
        return cancel

    cancel = asyncio.run(run())
    assert transport.calls[0][1] is cancel


@pytest.mark.parametrize("qid", [0x0000, 0x0001, 0x8000, 0xFFFF])
def test_response_id_always_matches_query(qid) -> None:
    engine = ForwardingEngine(FakeTransport(), ResponseCache(InMemoryTTLCache()))

    async def run():
        miss = await engine.forward(_query(qid=qid))
        hit = await engine.forward(_query(qid=qid))
        return miss, hit

    miss, hit = asyncio.run(run())
    assert DNSRecord.parse(miss).header.id == qid
    assert DNSRecord.parse(hit).header.id == qid
