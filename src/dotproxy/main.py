from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from .cache_plugins.registry import load_cache_plugin
from .certificates import CertificateStore
from .config.config_parser import parse_config
from .config.config_schema import ProxyConfig
from .config.logging_config import init_logging
from .errors import CacheError, ConfigurationError
from .response_cache import ResponseCache
from .servers.forwarder import ForwardingEngine
from .servers.tcp_server import serve_tcp
from .servers.udp_server import serve_udp
from .transports.dot import UpstreamTransport

logger = logging.getLogger("dotproxy.main")


def build_transport(config: ProxyConfig) -> UpstreamTransport:
    """
    Build the upstream DoT transport from validated configuration.

    Inputs:
      - config: ProxyConfig
    Outputs:
      - UpstreamTransport bound to a lazily loaded CertificateStore.
    """
    up = config.upstream
    return UpstreamTransport(
        CertificateStore(up.ca_file),
        up.host,
        up.port,
        server_name=up.server_name,
        connect_timeout=up.connect_timeout,
        exchange_timeout=up.exchange_timeout,
    )


def build_cache(config: ProxyConfig) -> ResponseCache:
    """
    Build the response cache and its store backend.

    Inputs:
      - config: ProxyConfig
    Outputs:
      - ResponseCache

    Raises ConfigurationError for unknown or misconfigured store backends.
    """
    try:
        store = load_cache_plugin(config.cache.module, config.cache.config)
    except (
        KeyError,
        TypeError,
        ValueError,
        AttributeError,
        ImportError,
    ) as exc:
        raise ConfigurationError(f"invalid cache configuration: {exc}") from exc
    return ResponseCache(store, ttl=config.cache.ttl)


def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop, shutdown: asyncio.Event
) -> None:
    for sig in (signal.SIGINT, signal.SIGTERM):

        def _handler(name: str = sig.name) -> None:
            logger.info("Received %s, shutting down DNS-over-TLS proxy", name)
            shutdown.set()

        try:
            loop.add_signal_handler(sig, _handler)
        except (NotImplementedError, RuntimeError):
            logger.warning("Could not install %s handler on this platform", sig.name)


async def run(config: ProxyConfig, shutdown: Optional[asyncio.Event] = None) -> int:
    """
    Start the TCP and UDP listeners and run until shutdown is set.

    Inputs:
      - config: Validated ProxyConfig.
      - shutdown: Optional shared cancellation event; SIGINT/SIGTERM set it.
    Outputs:
      - int: Exit code (0 on graceful shutdown, 1 on startup failure).
    """
    shutdown = shutdown or asyncio.Event()

    try:
        cache = build_cache(config)
    except ConfigurationError as e:
        logger.error("Error checking config: %s", e)
        return 1

    try:
        await cache.ping()
    except CacheError as e:
        logger.error("Cache store unreachable: %s", e)
        await cache.close()
        return 1

    transport = build_transport(config)
    try:
        transport.certs.context()
    except ConfigurationError as e:
        # Cache hits can still be served; every miss fails until this is fixed.
        logger.error("Upstream trust bundle unusable: %s", e)

    engine = ForwardingEngine(transport, cache)
    _install_signal_handlers(asyncio.get_running_loop(), shutdown)

    listen = config.listen
    tasks = []
    if listen.tcp.enabled:
        tasks.append(
            asyncio.ensure_future(
                serve_tcp(
                    listen.host,
                    listen.tcp.port,
                    engine,
                    shutdown,
                    idle_timeout=listen.tcp.idle_timeout,
                )
            )
        )
    if listen.udp.enabled:
        tasks.append(
            asyncio.ensure_future(
                serve_udp(listen.host, listen.udp.port, engine, shutdown)
            )
        )
    if not tasks:
        logger.error("Both TCP and UDP listeners are disabled; nothing to serve")
        await cache.close()
        return 1

    logger.info(
        "Forwarding to %s (server name %s)", transport.address, transport.server_name
    )

    exit_code = 0
    try:
        await asyncio.gather(*tasks)
    except OSError as e:
        logger.error("Error starting DNS listener: %s", e)
        exit_code = 1
    finally:
        shutdown.set()
        await asyncio.gather(*tasks, return_exceptions=True)
        await cache.close()
    logger.info("DNS-over-TLS proxy stopped")
    return exit_code


def main(argv: List[str] | None = None) -> int:
    """
    Main entry point for the proxy.
    Parses arguments, loads configuration and runs the listeners.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code.

    Example use:
        CLI:
            dotproxy --config config.yaml
            DNS_OVER_TLS_HOST=1.1.1.1 DNS_OVER_TLS_PORT=853 \\
            DNS_OVER_TLS_CERT_PATH=./cloudflare.pem \\
            REDIS_HOST=127.0.0.1 REDIS_PORT=6379 dotproxy
    """
    parser = argparse.ArgumentParser(
        description="Forward plaintext DNS over TCP/UDP to a DNS-over-TLS resolver"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config; environment variables override its values",
    )
    args = parser.parse_args(argv)

    try:
        config = parse_config(args.config)
    except ConfigurationError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    # Initialize logging before any other operations
    init_logging(config.logging.model_dump())
    if args.config:
        logger.info("Loaded config from %s", args.config)

    try:
        return asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())  # pragma: no cover
