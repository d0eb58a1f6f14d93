"""Process-wide sync cursor state, keyed by (account, category)."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import datetime, timezone

import structlog

from email_unifier.models import SyncCursor, SyncKey, SyncSummary

logger = structlog.get_logger()


class SyncCursorStore:
    """Keyed cursor store with per-key locking.

    Callers always receive copies; state only changes through
    :meth:`advance` and :meth:`record_pass`, each applied atomically under
    the key's lock.
    """

    def __init__(self, history_limit: int = 20) -> None:
        self.history_limit = history_limit
        self._cursors: dict[SyncKey, SyncCursor] = {}
        self._locks: dict[SyncKey, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: SyncKey) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _ensure(self, key: SyncKey) -> SyncCursor:
        cursor = self._cursors.get(key)
        if cursor is None:
            cursor = SyncCursor(account_id=key.account_id, category=key.category)
            self._cursors[key] = cursor
            logger.info("sync_cursor_created", account_id=key.account_id, category=key.category)
        return cursor

    def get(self, key: SyncKey) -> SyncCursor | None:
        with self._lock_for(key):
            cursor = self._cursors.get(key)
            return cursor.model_copy(deep=True) if cursor else None

    def advance(
        self, key: SyncKey, cursor_token: str | None, conflicts_resolved: int = 0
    ) -> SyncCursor:
        """Record a fully persisted page: new token plus its conflict count."""

        with self._lock_for(key):
            cursor = self._ensure(key)
            cursor.cursor_token = cursor_token
            cursor.conflicts_resolved_total += conflicts_resolved
            return cursor.model_copy(deep=True)

    def record_pass(self, key: SyncKey, summary: SyncSummary) -> SyncCursor:
        """Close a sync pass: stamp the time and append a trimmed history entry."""

        with self._lock_for(key):
            cursor = self._ensure(key)
            cursor.last_synced_at = summary.finished_at or datetime.now(timezone.utc)
            cursor.history.append(summary.to_history_entry())
            if len(cursor.history) > self.history_limit:
                del cursor.history[: len(cursor.history) - self.history_limit]
            return cursor.model_copy(deep=True)

    def snapshot(self) -> list[SyncCursor]:
        with self._guard:
            keys = list(self._cursors)
        return [c for c in (self.get(k) for k in keys) if c is not None]

    def restore(self, cursors: Iterable[SyncCursor]) -> None:
        """Load previously persisted cursors, replacing any held for the same keys."""

        for cursor in cursors:
            with self._lock_for(cursor.key):
                self._cursors[cursor.key] = cursor.model_copy(deep=True)
