"""Utilities for Agent Bridge."""

from agentbridge.utils.fs import atomic_write_bytes, read_bytes_if_exists, remove_if_exists

__all__ = ["atomic_write_bytes", "read_bytes_if_exists", "remove_if_exists"]
