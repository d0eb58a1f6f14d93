"""Canonical mapping of provider payloads."""

from .mapper import CanonicalMapper
from .threads import aggregate_thread

__all__ = ["CanonicalMapper", "aggregate_thread"]
