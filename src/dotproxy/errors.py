from __future__ import annotations


class ProxyError(Exception):
    """
    Base class for every error raised by the forwarding proxy.

    Inputs:
      - message: A short error description.
    Outputs:
      - Exception instance.
    """

    pass


class ConfigurationError(ProxyError):
    """
    Missing or invalid settings, including an unusable certificate bundle.

    Brief: Fatal at startup; raised per request when the CA bundle cannot be
    loaded at dial time.
    """

    pass


class CodecError(ProxyError):
    """
    Malformed DNS wire bytes from a client, the upstream, or a cache entry.

    Brief: Aborts only the current request.
    """

    pass


class UpstreamError(ProxyError):
    """
    A DNS-over-TLS dial, handshake, write, read or framing failure.

    Brief: Aborts only the current request; never retried.
    """

    pass


class CacheError(ProxyError):
    """
    The cache store is unreachable or an operation on it failed.

    Brief: Never escapes the forwarding engine; requests fall through to the
    upstream path.
    """

    pass


class Cancelled(ProxyError):
    """
    The shared shutdown signal fired while an upstream exchange was in flight.
    """

    pass


class DeadlineExceeded(Cancelled):
    """
    The per-exchange upstream deadline expired before a full response arrived.
    """

    pass
