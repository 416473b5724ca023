"""Typed configuration models for the proxy.

Brief:
  Pydantic models describing config.yaml. Upstream host, port and CA bundle
  are required; everything else has a default.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field

from ..response_cache import DEFAULT_TTL
from ..transports.dot import DEFAULT_CONNECT_TIMEOUT, DEFAULT_EXCHANGE_TIMEOUT


class TCPListenConfig(BaseModel):
    """Brief: TCP listener settings.

    Inputs:
      - enabled: Start the TCP listener.
      - port: Listen port.
      - idle_timeout: Seconds a client may take to send its query.

    Outputs:
      - TCPListenConfig instance.
    """

    enabled: bool = True
    port: int = Field(default=53, ge=0, le=65535)
    idle_timeout: float = Field(default=15.0, gt=0)

    class Config:
        extra = "forbid"


class UDPListenConfig(BaseModel):
    """Brief: UDP listener settings."""

    enabled: bool = True
    port: int = Field(default=53, ge=0, le=65535)

    class Config:
        extra = "forbid"


class ListenConfig(BaseModel):
    host: str = Field(default="0.0.0.0", min_length=1)
    tcp: TCPListenConfig = Field(default_factory=TCPListenConfig)
    udp: UDPListenConfig = Field(default_factory=UDPListenConfig)

    class Config:
        extra = "forbid"


class UpstreamConfig(BaseModel):
    """Brief: The single DNS-over-TLS upstream.

    Inputs:
      - host: Upstream address (e.g. 1.1.1.1).
      - port: Upstream DoT port (e.g. 853).
      - server_name: Certificate name to verify; defaults to host.
      - ca_file: PEM bundle trusted for the upstream certificate.
      - connect_timeout: Seconds for TCP connect plus TLS handshake.
      - exchange_timeout: Seconds for one write+read exchange; 0 or null
        disables the deadline.

    Outputs:
      - UpstreamConfig instance with normalized types.
    """

    host: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    server_name: Optional[str] = None
    ca_file: str = Field(min_length=1)
    connect_timeout: float = Field(default=DEFAULT_CONNECT_TIMEOUT, gt=0)
    exchange_timeout: Optional[float] = Field(default=DEFAULT_EXCHANGE_TIMEOUT, ge=0)

    class Config:
        extra = "forbid"


class CacheConfig(BaseModel):
    """Brief: Response cache store selection.

    Inputs:
      - module: Store alias ('redis', 'memory') or dotted class path.
      - ttl: Entry lifetime in seconds.
      - config: Keyword arguments for the store constructor.

    Outputs:
      - CacheConfig instance.
    """

    module: str = "redis"
    ttl: int = Field(default=DEFAULT_TTL, gt=0)
    config: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        extra = "forbid"


class LoggingConfig(BaseModel):
    level: str = "info"
    stderr: bool = True
    file: Optional[str] = None
    syslog: Union[bool, Dict[str, Any]] = False

    class Config:
        extra = "forbid"


class ProxyConfig(BaseModel):
    """Brief: Root configuration model.

    Inputs:
      - listen, upstream, cache, logging sections.

    Outputs:
      - ProxyConfig instance.
    """

    listen: ListenConfig = Field(default_factory=ListenConfig)
    upstream: UpstreamConfig
    cache: CacheConfig = Field(default_factory=CacheConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    class Config:
        extra = "forbid"
