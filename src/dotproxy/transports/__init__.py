"""Upstream transports and stream framing helpers."""
