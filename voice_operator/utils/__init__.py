"""Utilities module - hashing helpers."""

from .hashing import element_id, short_hash

__all__ = ["element_id", "short_hash"]
