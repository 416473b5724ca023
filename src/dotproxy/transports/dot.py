from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Optional, Tuple

from ..certificates import CertificateStore
from ..errors import Cancelled, DeadlineExceeded, UpstreamError
from . import framing

logger = logging.getLogger("dotproxy.transports.dot")

DEFAULT_HOST = "1.1.1.1"
DEFAULT_PORT = 853
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_EXCHANGE_TIMEOUT = 10.0


class UpstreamTransport:
    """
    DNS-over-TLS client for a single fixed upstream (RFC 7858).

    Inputs:
      - certs: CertificateStore providing the verifying SSLContext.
      - host, port: Upstream target; default 1.1.1.1:853.
      - server_name: Name the upstream certificate is verified against;
        defaults to host.
      - connect_timeout: Seconds allowed for TCP connect plus TLS handshake.
      - exchange_timeout: Seconds allowed for the write+read exchange; None or
        0 leaves it bounded only by the cancellation event.
    Outputs:
      - Instance whose exchange(payload, cancel) returns response bytes.

    Brief: Opens one new TLS connection per exchange; nothing is pooled.

    Example:
      >>> t = UpstreamTransport(CertificateStore('./cloudflare.pem'))
      >>> resp = await t.exchange(query_bytes, cancel=shutdown_event)
    """

    def __init__(
        self,
        certs: CertificateStore,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        *,
        server_name: Optional[str] = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        exchange_timeout: Optional[float] = DEFAULT_EXCHANGE_TIMEOUT,
    ) -> None:
        self.certs = certs
        self.host = host
        self.port = int(port)
        self.server_name = server_name or host
        self.connect_timeout = float(connect_timeout)
        self.exchange_timeout = exchange_timeout or None

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    async def _connect(
        self, ctx: ssl.SSLContext
    ) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        return await asyncio.wait_for(
            asyncio.open_connection(
                self.host,
                self.port,
                ssl=ctx,
                server_hostname=self.server_name,
            ),
            timeout=self.connect_timeout,
        )

    async def _dial(self) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        ctx = self.certs.context()
        try:
            return await self._connect(ctx)
        except asyncio.TimeoutError as exc:
            raise UpstreamError(
                f"timed out connecting to {self.address} after {self.connect_timeout}s"
            ) from exc
        except ssl.SSLError as exc:
            raise UpstreamError(f"TLS error with {self.address}: {exc}") from exc
        except OSError as exc:
            raise UpstreamError(f"error connecting to {self.address}: {exc}") from exc

    async def _dial_or_cancel(
        self, cancel: Optional[asyncio.Event]
    ) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        if cancel is None:
            return await self._dial()
        dial = asyncio.ensure_future(self._dial())
        stop = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({dial, stop}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            dial.cancel()
            raise
        finally:
            if not stop.done():
                stop.cancel()
        if dial.done():
            return dial.result()

        dial.cancel()
        outcome = (await asyncio.gather(dial, return_exceptions=True))[0]
        if isinstance(outcome, tuple):
            await self._close(outcome[1])
        logger.info("Shutdown requested; abandoning upstream dial to %s", self.address)
        raise Cancelled("upstream dial cancelled by shutdown")

    async def _roundtrip(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        payload: bytes,
    ) -> bytes:
        writer.write(framing.frame(payload))
        await writer.drain()
        resp = await framing.read_frame(reader)
        if resp is None:
            raise UpstreamError(f"short read from {self.address}")
        return resp

    async def exchange(
        self, payload: bytes, cancel: Optional[asyncio.Event] = None
    ) -> bytes:
        """
        Send one packed DNS message upstream and return the packed response.

        Inputs:
          - payload: Wire-format DNS query (ID already set).
          - cancel: Shared shutdown event; when set mid-exchange the exchange
            is abandoned.
        Outputs:
          - bytes: Wire-format DNS response body (without length prefix).

        Raises ConfigurationError (trust bundle), UpstreamError (network/TLS/
        framing), Cancelled (cancel fired) or DeadlineExceeded (exchange
        timeout). The connection is closed on every return path.
        """
        if cancel is not None and cancel.is_set():
            raise Cancelled("shutdown in progress")

        reader, writer = await self._dial_or_cancel(cancel)
        work = asyncio.ensure_future(self._roundtrip(reader, writer, payload))
        waiters = {work}
        stop = None
        if cancel is not None:
            stop = asyncio.ensure_future(cancel.wait())
            waiters.add(stop)
        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.exchange_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if work in done:
                try:
                    return work.result()
                except ssl.SSLError as exc:
                    raise UpstreamError(
                        f"TLS error with {self.address}: {exc}"
                    ) from exc
                except OSError as exc:
                    raise UpstreamError(
                        f"error talking to {self.address}: {exc}"
                    ) from exc
            if stop is not None and stop in done:
                logger.info("Shutdown requested; abandoning upstream exchange")
                raise Cancelled("upstream exchange cancelled by shutdown")
            raise DeadlineExceeded(
                f"no response from {self.address} within {self.exchange_timeout}s"
            )
        finally:
            if not work.done():
                work.cancel()
            if stop is not None and not stop.done():
                stop.cancel()
            await self._close(writer)

    async def _close(self, writer: asyncio.StreamWriter) -> None:
        writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=1.0)
        except (OSError, ssl.SSLError, asyncio.TimeoutError) as e:
            logger.debug("Error closing upstream connection: %s", e)
