from __future__ import annotations

import logging
import os
import ssl
import threading
from typing import Optional

from .errors import ConfigurationError

logger = logging.getLogger("dotproxy.certificates")


def load_trusted_roots(
    path: str,
    min_version: ssl.TLSVersion = ssl.TLSVersion.TLSv1_2,
    max_version: ssl.TLSVersion = ssl.TLSVersion.TLSv1_3,
) -> ssl.SSLContext:
    """
    Build a verifying client SSLContext that trusts only the given PEM bundle.

    Inputs:
      - path: Filesystem path to a PEM-encoded certificate bundle.
      - min_version: Minimum TLS version; default TLS 1.2.
      - max_version: Maximum TLS version; default TLS 1.3.
    Outputs:
      - ssl.SSLContext with CERT_REQUIRED and hostname checking enabled.

    Raises ConfigurationError when the file is missing, unreadable or holds no
    parseable certificate.

    Example:
      >>> ctx = load_trusted_roots('./cloudflare.pem')
    """
    if not path:
        raise ConfigurationError("upstream CA bundle path is not configured")
    if not os.path.isfile(path):
        raise ConfigurationError(f"CA bundle not found: {path}")

    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    ctx.minimum_version = min_version
    ctx.maximum_version = max_version
    ctx.verify_mode = ssl.CERT_REQUIRED
    ctx.check_hostname = True
    try:
        ctx.load_verify_locations(cafile=path)
    except (OSError, ssl.SSLError) as exc:
        raise ConfigurationError(f"cannot load CA bundle {path}: {exc}") from exc

    if ctx.cert_store_stats().get("x509", 0) == 0:
        raise ConfigurationError(f"CA bundle {path} contains no certificates")
    return ctx


class CertificateStore:
    """
    Lazily loads and caches the upstream trust context.

    Inputs:
      - path: PEM bundle path.
    Outputs:
      - Instance whose context() returns a shared, read-only SSLContext.

    Brief: The first successful load is reused for every later dial. Failed
    loads are not cached, so a corrected file is picked up on the next call.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._ctx: Optional[ssl.SSLContext] = None
        self._lock = threading.Lock()

    def context(self) -> ssl.SSLContext:
        if self._ctx is not None:
            return self._ctx
        with self._lock:
            if self._ctx is None:
                self._ctx = load_trusted_roots(self.path)
                logger.info("Loaded upstream trust bundle from %s", self.path)
            return self._ctx
