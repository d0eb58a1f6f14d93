"""Incremental sync engine: reconciliation, cursor state and the orchestrator."""

from email_unifier.sync.cache import ThreadCache
from email_unifier.sync.conflicts import ConflictResolver, ReconcileResult
from email_unifier.sync.cursors import SyncCursorStore
from email_unifier.sync.orchestrator import ProviderBinding, SyncOrchestrator
from email_unifier.sync.states import SyncEvent, SyncState, SyncStateMachine

__all__ = [
    "ConflictResolver",
    "ProviderBinding",
    "ReconcileResult",
    "SyncCursorStore",
    "SyncEvent",
    "SyncOrchestrator",
    "SyncState",
    "SyncStateMachine",
    "ThreadCache",
]
