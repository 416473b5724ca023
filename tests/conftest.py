"""
Brief: Global pytest configuration: per-test 10s timeout and TLS cert fixtures.

Inputs:
  - None

Outputs:
  - None
"""

import os
import signal
import subprocess
import sys

import pytest

# Ensure 'src' is on sys.path so 'dotproxy' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


# Install handler if supported on this platform
if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        # Fallback: no-op on platforms without SIGALRM
        yield


def _openssl_selfsigned(directory, name: str):
    cert_file = directory / f"{name}-cert.pem"
    key_file = directory / f"{name}-key.pem"
    subprocess.check_call(
        [
            "openssl",
            "req",
            "-x509",
            "-nodes",
            "-newkey",
            "rsa:2048",
            "-keyout",
            str(key_file),
            "-out",
            str(cert_file),
            "-subj",
            "/CN=localhost",
            "-addext",
            "subjectAltName=DNS:localhost,IP:127.0.0.1",
            "-days",
            "1",
        ],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    return str(cert_file), str(key_file)


@pytest.fixture(scope="session")
def selfsigned_cert(tmp_path_factory):
    """
    Brief: Generate a short-lived self-signed cert for localhost/127.0.0.1.

    Inputs:
      - tmp_path_factory: pytest temporary directory factory

    Outputs:
      - (cert_file, key_file) paths; skips when openssl is unavailable
    """
    tmp = tmp_path_factory.mktemp("dotcert")
    try:
        return _openssl_selfsigned(tmp, "upstream")
    except Exception:
        pytest.skip("openssl not available for generating self-signed cert")


@pytest.fixture(scope="session")
def other_selfsigned_cert(tmp_path_factory):
    """
    Brief: A second, unrelated self-signed cert used as an untrusted bundle.
    """
    tmp = tmp_path_factory.mktemp("othercert")
    try:
        return _openssl_selfsigned(tmp, "other")
    except Exception:
        pytest.skip("openssl not available for generating self-signed cert")
