from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set, Tuple

from ..errors import ProxyError
from .forwarder import ForwardingEngine, parse_message

logger = logging.getLogger("dotproxy.server.udp")

MAX_UDP_PAYLOAD = 4096


class DNSDatagramProtocol(asyncio.DatagramProtocol):
    """
    Handles UDP DNS requests on one shared socket.

    Inputs:
      - engine: ForwardingEngine resolving each parsed datagram
      - cancel: Shared shutdown event handed to each request
      - max_payload: Receive buffer size; longer datagrams are truncated
    Outputs:
      - Protocol instance for loop.create_datagram_endpoint

    Each datagram is handled in its own task and answered to its source
    address. Datagrams that fail to parse or resolve are dropped silently.
    """

    def __init__(
        self,
        engine: ForwardingEngine,
        cancel: Optional[asyncio.Event] = None,
        max_payload: int = MAX_UDP_PAYLOAD,
    ) -> None:
        self.engine = engine
        self.cancel = cancel
        self.max_payload = int(max_payload)
        self.transport: Optional[asyncio.DatagramTransport] = None
        self._tasks: Set[asyncio.Task] = set()

    def connection_made(self, transport) -> None:
        self.transport = transport

    def datagram_received(self, data: bytes, addr: Tuple) -> None:
        task = asyncio.ensure_future(self.handle(data[: self.max_payload], addr))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def error_received(self, exc: Exception) -> None:
        logger.error("Error reading from UDP socket: %s", exc)

    async def handle(self, data: bytes, addr: Tuple) -> None:
        """Resolve one datagram and send the answer back to addr."""
        try:
            query = parse_message(data)
            response = await self.engine.forward(query, cancel=self.cancel)
        except ProxyError as e:
            logger.warning("Dropping UDP query from %s: %s", addr[0], e)
            return
        except Exception:
            logger.exception("Error handling UDP query from %s", addr[0])
            return
        if self.transport is None or self.transport.is_closing():
            logger.debug("UDP socket closed before reply to %s", addr[0])
            return
        self.transport.sendto(response, addr)
        logger.debug("Sent DNS response to %s", addr[0])


async def start_udp_server(
    host: str,
    port: int,
    engine: ForwardingEngine,
    cancel: Optional[asyncio.Event] = None,
) -> Tuple[asyncio.DatagramTransport, DNSDatagramProtocol]:
    """
    Bind the UDP listener.

    Inputs:
      - host: Listen address
      - port: Listen port (0 picks a free port)
      - engine: ForwardingEngine
      - cancel: Shared shutdown event
    Outputs:
      - (transport, protocol) from create_datagram_endpoint.
    """
    loop = asyncio.get_running_loop()
    return await loop.create_datagram_endpoint(
        lambda: DNSDatagramProtocol(engine, cancel),
        local_addr=(host, port),
    )


async def serve_udp(
    host: str,
    port: int,
    engine: ForwardingEngine,
    cancel: asyncio.Event,
) -> None:
    """
    Serve DNS-over-UDP on host:port until cancel is set.

    Inputs:
      - host: Listen address
      - port: Listen port (53 typical)
      - engine: ForwardingEngine
      - cancel: Shared shutdown event; setting it closes the socket
    Outputs:
      - None

    Example:
      >>> await serve_udp('0.0.0.0', 53, engine, shutdown_event)
    """
    transport, _ = await start_udp_server(host, port, engine, cancel)
    logger.info("UDP DNS server started on %s:%d", host, port)
    try:
        await cancel.wait()
    finally:
        logger.info("Shutting down UDP DNS server")
        transport.close()
