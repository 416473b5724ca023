"""Forwarding engine and the plaintext TCP/UDP listeners."""

from .forwarder import ForwardingEngine, build_upstream_request, parse_message

__all__ = ["ForwardingEngine", "build_upstream_request", "parse_message"]
