"""Configuration parsing and normalization helpers.

Brief:
  Reads the YAML config file, layers environment variable overrides on top,
  and validates the result into a ProxyConfig. Every failure surfaces as
  ConfigurationError so the CLI can report it before any listener starts.

Inputs:
  - YAML config path and an environment mapping

Outputs:
  - Validated ProxyConfig
"""

from __future__ import annotations

import os
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from pydantic import ValidationError

from ..errors import ConfigurationError
from .config_schema import ProxyConfig

# Environment variable -> config path.
ENV_OVERRIDES: Dict[str, Tuple[str, ...]] = {
    "DNS_OVER_TLS_HOST": ("upstream", "host"),
    "DNS_OVER_TLS_PORT": ("upstream", "port"),
    "DNS_OVER_TLS_CERT_PATH": ("upstream", "ca_file"),
    "REDIS_HOST": ("cache", "config", "host"),
    "REDIS_PORT": ("cache", "config", "port"),
}


def load_config_file(path: Optional[str]) -> Dict[str, Any]:
    """Brief: Read a YAML config file into a mapping.

    Inputs:
      - path: Config file path, or None for an empty config.

    Outputs:
      - dict: Parsed configuration (empty when path is None or the file is
        empty).
    """

    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigurationError(f"cannot read config {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid YAML in {path}: {exc}") from exc
    if not isinstance(cfg, dict):
        raise ConfigurationError(f"config {path} must be a mapping at top level")
    return cfg


def apply_env_overrides(
    cfg: Dict[str, Any], environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """Brief: Overlay non-empty environment variables from ENV_OVERRIDES.

    Inputs:
      - cfg: Parsed configuration mapping (mutated in-place).
      - environ: Environment mapping; defaults to os.environ.

    Outputs:
      - dict: The same cfg mapping, for chaining.
    """

    env = os.environ if environ is None else environ
    for var, path in ENV_OVERRIDES.items():
        value = env.get(var)
        if value is None or not str(value).strip():
            continue
        node = cfg
        for part in path[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[path[-1]] = str(value).strip()
    return cfg


def _check_cache_settings(config: ProxyConfig) -> None:
    module = config.cache.module.strip().lower()
    if module not in ("redis", "valkey"):
        return
    sub = config.cache.config
    if sub.get("url"):
        return
    if not sub.get("host"):
        raise ConfigurationError("cache.config.host (REDIS_HOST) is required")
    if sub.get("port") in (None, ""):
        raise ConfigurationError("cache.config.port (REDIS_PORT) is required")


def parse_config(
    path: Optional[str], environ: Optional[Mapping[str, str]] = None
) -> ProxyConfig:
    """Brief: Load, merge and validate the proxy configuration.

    Inputs:
      - path: Optional YAML config path.
      - environ: Optional environment mapping for overrides.

    Outputs:
      - ProxyConfig: Validated configuration.

    Example:
      >>> cfg = parse_config("config.yaml")
      >>> cfg.upstream.host
      '1.1.1.1'
    """

    raw = apply_env_overrides(load_config_file(path), environ)
    try:
        config = ProxyConfig(**raw)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration: {exc}") from exc
    _check_cache_settings(config)
    return config
