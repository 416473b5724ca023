from __future__ import annotations

import difflib
import importlib
from typing import Any, Dict, Mapping, Optional, Type

from .base import CacheStore
from .in_memory_ttl import InMemoryTTLCache
from .redis_cache import RedisCache

_BUILTIN: tuple[Type[CacheStore], ...] = (RedisCache, InMemoryTTLCache)


def _normalize(alias: str) -> str:
    return alias.strip().lower().replace("-", "_")


def _registry() -> Dict[str, Type[CacheStore]]:
    registry: Dict[str, Type[CacheStore]] = {}
    for cls in _BUILTIN:
        for alias in cls.aliases:
            registry[_normalize(alias)] = cls
    return registry


def get_cache_plugin_class(identifier: str) -> Type[CacheStore]:
    """Brief: Resolve identifier to a cache store class.

    Inputs:
      - identifier: Dotted import path or alias ('redis', 'memory', ...).

    Outputs:
      - CacheStore subclass.
    """

    ident = str(identifier).strip()
    if "." in ident:
        modname, _, classname = ident.rpartition(".")
        if not modname or not classname:
            raise ValueError(f"Invalid cache store path '{identifier}'")
        module = importlib.import_module(modname)
        try:
            cls = getattr(module, classname)
        except AttributeError as exc:
            raise ValueError(f"{modname} has no cache store '{classname}'") from exc
        if not isinstance(cls, type) or not issubclass(cls, CacheStore):
            raise TypeError(f"{identifier} is not a CacheStore subclass")
        return cls

    reg = _registry()
    key = _normalize(ident)
    try:
        return reg[key]
    except KeyError:
        suggestions = difflib.get_close_matches(key, list(reg.keys()), n=3)
        raise KeyError(
            f"Unknown cache store alias '{identifier}'. "
            f"Known aliases: {', '.join(sorted(reg.keys()))}. "
            f"Suggestions: {suggestions}"
        )


def load_cache_plugin(
    module: Optional[str], config: Optional[Mapping[str, Any]] = None
) -> CacheStore:
    """Brief: Build the configured cache store.

    Inputs:
      - module: Alias or dotted import path; None selects redis.
      - config: Keyword arguments for the store constructor.

    Outputs:
      - CacheStore instance.

    Example:
      >>> store = load_cache_plugin("memory", {"maxsize": 100})
    """

    cls = get_cache_plugin_class(module or "redis")
    return cls(**dict(config or {}))
