"""Field-level reconciliation between a stored and a freshly fetched record."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

import structlog

from email_unifier.models import Conflict, ConflictResolution, UnifiedEmail

logger = structlog.get_logger()

# Fields that may legitimately change between syncs. Everything else is
# treated as immutable once set and is simply overwritten by the incoming
# record without bookkeeping.
SCALAR_FIELDS: tuple[str, ...] = ("subject", "is_read", "is_important", "is_flagged")
SET_FIELDS: tuple[str, ...] = ("labels",)


@dataclass(frozen=True)
class ReconcileResult:
    merged: UnifiedEmail
    conflicts: list[Conflict] = field(default_factory=list)
    # Conflict history entries dropped by the cap on this record.
    truncated: int = 0


class ConflictResolver:
    """Merges an incoming record over the stored one, recording conflicts.

    Scalar fields resolve ``newer_wins`` (the incoming record was just
    fetched). Set fields resolve ``merge`` as a union so a sync pass never
    drops labels. The per-record conflict history is a ring buffer capped at
    ``history_limit`` entries, oldest dropped first.
    """

    def __init__(self, history_limit: int = 50) -> None:
        if history_limit < 1:
            raise ValueError("history_limit must be >= 1")
        self.history_limit = history_limit

    def detect(self, incoming: UnifiedEmail, existing: UnifiedEmail) -> list[Conflict]:
        conflicts: list[Conflict] = []
        for name in SCALAR_FIELDS:
            old, new = getattr(existing, name), getattr(incoming, name)
            if old != new:
                conflicts.append(
                    Conflict(
                        field=name,
                        old_value=old,
                        new_value=new,
                        resolution=ConflictResolution.NEWER_WINS,
                    )
                )
        for name in SET_FIELDS:
            old_set, new_set = set(getattr(existing, name)), set(getattr(incoming, name))
            if old_set != new_set:
                conflicts.append(
                    Conflict(
                        field=name,
                        old_value=sorted(old_set),
                        new_value=sorted(new_set),
                        resolution=ConflictResolution.MERGE,
                    )
                )
        return conflicts

    def reconcile(self, incoming: UnifiedEmail, existing: UnifiedEmail | None) -> ReconcileResult:
        """Produce the merged record and the conflicts detected on this pass."""

        if existing is None:
            return ReconcileResult(merged=incoming)

        conflicts = self.detect(incoming, existing)

        history: deque[Conflict] = deque(existing.sync_meta.conflicts, maxlen=self.history_limit)
        history.extend(conflicts)
        total = len(existing.sync_meta.conflicts) + len(conflicts)
        truncated = max(0, total - self.history_limit)
        if truncated and conflicts:
            logger.warning(
                "conflict_history_truncated",
                email_id=incoming.id,
                dropped=truncated,
                limit=self.history_limit,
            )

        updates: dict[str, object] = {
            name: set(getattr(existing, name)) | set(getattr(incoming, name)) for name in SET_FIELDS
        }
        updates["sync_meta"] = incoming.sync_meta.model_copy(update={"conflicts": list(history)})
        merged = incoming.model_copy(update=updates)

        return ReconcileResult(merged=merged, conflicts=conflicts, truncated=truncated)
