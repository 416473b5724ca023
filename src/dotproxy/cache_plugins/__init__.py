"""Cache store backends.

Brief: Defines the CacheStore interface and the shipped key-value backends.

Inputs:
  - None

Outputs:
  - None
"""

from __future__ import annotations

from .base import CacheStore, cache_aliases
from .in_memory_ttl import InMemoryTTLCache
from .redis_cache import RedisCache
from .registry import get_cache_plugin_class, load_cache_plugin

__all__ = [
    "CacheStore",
    "InMemoryTTLCache",
    "RedisCache",
    "cache_aliases",
    "get_cache_plugin_class",
    "load_cache_plugin",
]
