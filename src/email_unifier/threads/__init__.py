"""Thread identity resolution."""

from .resolver import (
    ThreadIdentityResolver,
    ThreadResolution,
    ThreadSignals,
    ThreadSource,
    stable_hash,
)

__all__ = [
    "ThreadIdentityResolver",
    "ThreadResolution",
    "ThreadSignals",
    "ThreadSource",
    "stable_hash",
]
