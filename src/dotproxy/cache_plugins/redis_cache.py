from __future__ import annotations

import logging
from typing import Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from ..errors import CacheError, ConfigurationError
from .base import CacheStore, cache_aliases

logger = logging.getLogger("dotproxy.cache_plugins.redis")

DEFAULT_NAMESPACE = "dotproxy:"


@cache_aliases("redis", "valkey")
class RedisCache(CacheStore):
    """Redis/Valkey-backed response store.

    Brief:
      CacheStore implementation backed by Redis-compatible servers (including
      Valkey) through the redis.asyncio client. Each response is a plain
      string key with an expiry set atomically by SET EX.

    Inputs:
      - **config:
          - url (str): Redis URL (e.g. redis://localhost:6379/0). When provided,
            it takes precedence over host/port/db.
          - host (str): Redis host. Required when url is absent.
          - port (int): Redis port. Required when url is absent.
          - db (int): Redis DB index (default 0).
          - username (str|None): Optional Redis username.
          - password (str|None): Optional Redis password.
          - socket_timeout (float|None): Optional socket timeout seconds.
          - namespace (str): Prefix for Redis keys (default 'dotproxy:').

    Outputs:
      - RedisCache instance.

    Example:
      cache:
        module: redis
        config:
          host: 127.0.0.1
          port: 6379
    """

    def __init__(self, **config: object) -> None:
        namespace = config.get("namespace", DEFAULT_NAMESPACE)
        if not isinstance(namespace, str) or not namespace.strip():
            namespace = DEFAULT_NAMESPACE
        self.namespace: str = str(namespace)

        socket_timeout = config.get("socket_timeout")

        url = config.get("url")
        if isinstance(url, str) and url.strip():
            self._client = aioredis.Redis.from_url(
                url.strip(),
                decode_responses=False,
                socket_timeout=socket_timeout,
            )
            return

        host = config.get("host")
        port = config.get("port")
        if not host:
            raise ConfigurationError("cache.config.host is required for the redis cache")
        if port in (None, ""):
            raise ConfigurationError("cache.config.port is required for the redis cache")
        try:
            port_i = int(port)
            db = int(config.get("db", 0) or 0)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"invalid redis port/db: {exc}") from exc

        username = config.get("username")
        password = config.get("password")

        self._client = aioredis.Redis(
            host=str(host),
            port=port_i,
            db=db,
            username=str(username) if isinstance(username, str) and username else None,
            password=str(password) if isinstance(password, str) and password else None,
            socket_timeout=socket_timeout,
            decode_responses=False,
        )

    def _redis_key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError) as exc:
            raise CacheError(f"redis ping failed: {exc}") from exc

    async def get(self, key: str) -> Optional[bytes]:
        try:
            value = await self._client.get(self._redis_key(key))
        except (RedisError, OSError) as exc:
            raise CacheError(f"redis get failed: {exc}") from exc
        if value is None:
            return None
        return bytes(value)

    async def set(self, key: str, value: bytes, ttl: int) -> None:
        ttl_int = int(ttl)
        if ttl_int <= 0:
            return
        try:
            await self._client.set(self._redis_key(key), bytes(value), ex=ttl_int)
        except (RedisError, OSError) as exc:
            raise CacheError(f"redis set failed: {exc}") from exc

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except (RedisError, OSError) as e:
            logger.debug("Error closing redis client: %s", e)
