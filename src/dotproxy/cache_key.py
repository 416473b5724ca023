from __future__ import annotations

import base64
import hashlib
import logging
from typing import Iterable, Optional

from dnslib import DNSQuestion
from dnslib.label import DNSBuffer

from .errors import CodecError

logger = logging.getLogger("dotproxy.cache_key")


def serialize_questions(questions: Iterable[DNSQuestion]) -> bytes:
    """
    Serialize a question section into its canonical byte form.

    Inputs:
      - questions: Ordered DNSQuestion records (qname, qtype, qclass).
    Outputs:
      - bytes: Questions in DNS wire form, in the order given.

    Wire form is independent of the message header (ID, RD flag) and of the
    Python version, so keys derived from it stay valid across restarts. Names
    are encoded exactly as received; no case folding is applied.

    Example:
      >>> from dnslib import DNSRecord
      >>> serialize_questions(DNSRecord.question("example.com", "A").questions)
      b'\\x07example\\x03com\\x00\\x00\\x01\\x00\\x01'
    """
    buf = DNSBuffer()
    try:
        for q in questions:
            q.pack(buf)
    except Exception as exc:
        raise CodecError(f"cannot serialize question section: {exc}") from exc
    return bytes(buf.data)


def derive_key(questions: Iterable[DNSQuestion]) -> str:
    """
    Derive the cache key for a question section.

    Inputs:
      - questions: Ordered DNSQuestion records from a query.
    Outputs:
      - str: Base64 (standard alphabet) of the SHA-256 digest of the
        serialized questions.

    Raises CodecError when the questions cannot be serialized; callers treat
    that as "do not cache this request".

    Example:
      >>> from dnslib import DNSRecord
      >>> len(derive_key(DNSRecord.question("example.com").questions))
      44
    """
    digest = hashlib.sha256(serialize_questions(questions)).digest()
    return base64.b64encode(digest).decode("ascii")


def try_derive_key(questions: Iterable[DNSQuestion]) -> Optional[str]:
    """
    Derive a cache key, logging and returning None on serialization failure.

    Inputs:
      - questions: Ordered DNSQuestion records from a query.
    Outputs:
      - str | None: Cache key, or None when caching must be skipped.
    """
    try:
        return derive_key(questions)
    except CodecError as e:
        logger.error("Error hashing DNS question section: %s", e)
        return None
