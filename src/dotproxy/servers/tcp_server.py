from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..errors import ProxyError
from ..transports import framing
from .forwarder import ForwardingEngine, parse_message

logger = logging.getLogger("dotproxy.server.tcp")

DEFAULT_IDLE_TIMEOUT = 15.0
SHUTDOWN_GRACE = 1.0


async def _handle_conn(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    engine: ForwardingEngine,
    cancel: Optional[asyncio.Event] = None,
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
) -> None:
    """
    Handle a single DNS-over-TCP connection (RFC 7766): one query, one answer.

    Inputs:
      - reader: StreamReader for the client connection
      - writer: StreamWriter for the client connection
      - engine: ForwardingEngine resolving the parsed query
      - cancel: Shared shutdown event
      - idle_timeout: Seconds allowed for the client to send its query
    Outputs:
      - None

    Any read, parse, forward or write failure closes the connection without
    writing a response.

    Example:
      >>> await _handle_conn(reader, writer, engine)
    """
    peer = writer.get_extra_info("peername")
    client = peer[0] if isinstance(peer, tuple) else "unknown"
    logger.debug("Received TCP connection from %s", client)
    try:
        try:
            data = await asyncio.wait_for(
                framing.read_frame(reader), timeout=idle_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Timed out reading query from %s", client)
            return
        if data is None:
            logger.warning("Short read on query from %s", client)
            return

        query = parse_message(data)
        response = await engine.forward(query, cancel=cancel)

        writer.write(framing.frame(response))
        await writer.drain()
        logger.debug("Sent TCP response to %s", client)
    except ProxyError as e:
        logger.warning("Dropping TCP query from %s: %s", client, e)
    except (OSError, ValueError) as e:
        logger.error("Error on TCP connection from %s: %s", client, e)
    finally:
        try:
            writer.close()
            await writer.wait_closed()
        except OSError as e:
            logger.debug("Error closing TCP connection from %s: %s", client, e)


async def start_tcp_server(
    host: str,
    port: int,
    engine: ForwardingEngine,
    cancel: Optional[asyncio.Event] = None,
    *,
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
) -> asyncio.AbstractServer:
    """
    Bind the TCP listener and start accepting connections.

    Inputs:
      - host: Listen address
      - port: Listen port (0 picks a free port)
      - engine: ForwardingEngine shared by every connection
      - cancel: Shared shutdown event handed to each request
      - idle_timeout: Per-connection query read timeout in seconds
    Outputs:
      - asyncio.AbstractServer already serving.
    """
    return await asyncio.start_server(
        lambda r, w: _handle_conn(r, w, engine, cancel, idle_timeout),
        host,
        port,
    )


async def serve_tcp(
    host: str,
    port: int,
    engine: ForwardingEngine,
    cancel: asyncio.Event,
    *,
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
) -> None:
    """
    Serve DNS-over-TCP on host:port until cancel is set.

    Inputs:
      - host: Listen address
      - port: Listen port (53 typical)
      - engine: ForwardingEngine
      - cancel: Shared shutdown event; setting it stops accepting
      - idle_timeout: Per-connection query read timeout in seconds
    Outputs:
      - None

    Example:
      >>> await serve_tcp('0.0.0.0', 53, engine, shutdown_event)
    """
    server = await start_tcp_server(
        host, port, engine, cancel, idle_timeout=idle_timeout
    )
    logger.info("TCP DNS server started on %s:%d", host, port)
    try:
        await cancel.wait()
    finally:
        logger.info("Shutting down TCP DNS server")
        server.close()
        try:
            await asyncio.wait_for(server.wait_closed(), timeout=SHUTDOWN_GRACE)
        except asyncio.TimeoutError:
            logger.debug("TCP connections still open after shutdown grace period")
