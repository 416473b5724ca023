from __future__ import annotations

import asyncio
from typing import Optional

MAX_MESSAGE_SIZE = 0xFFFF


async def _read_exact(reader: asyncio.StreamReader, n: int) -> bytes:
    """
    Read exactly n bytes from an asyncio StreamReader.

    Inputs:
      - reader: asyncio.StreamReader
      - n: Number of bytes to read
    Outputs:
      - bytes: Exactly n bytes unless EOF occurs early.

    Short reads are retried; only EOF ends the loop early.

    Example:
      >>> await _read_exact(reader, 2)
    """
    data = b""
    while len(data) < n:
        chunk = await reader.read(n - len(data))
        if not chunk:
            break
        data += chunk
    return data


def frame(message: bytes) -> bytes:
    """
    Prefix a DNS message with its 2-byte big-endian length (RFC 1035 4.2.2).

    Inputs:
      - message: Wire-format DNS message.
    Outputs:
      - bytes: Length prefix followed by the message.

    Example:
      >>> frame(b"\\x12\\x34")
      b'\\x00\\x02\\x124'
    """
    if len(message) > MAX_MESSAGE_SIZE:
        raise ValueError(f"DNS message too large for stream framing: {len(message)}")
    return len(message).to_bytes(2, "big") + message


async def read_frame(reader: asyncio.StreamReader) -> Optional[bytes]:
    """
    Read one length-prefixed DNS message.

    Inputs:
      - reader: asyncio.StreamReader positioned at a length prefix.
    Outputs:
      - bytes | None: The message body, or None when the stream ended before a
        complete header or body arrived.
    """
    hdr = await _read_exact(reader, 2)
    if len(hdr) != 2:
        return None
    ln = int.from_bytes(hdr, "big")
    body = await _read_exact(reader, ln)
    if len(body) != ln:
        return None
    return body
