"""Sync bookkeeping models: cursors, history entries and pass summaries."""

from __future__ import annotations

from datetime import datetime
from typing import NamedTuple

from pydantic import BaseModel, Field

from email_unifier.models import SyncMode


class SyncKey(NamedTuple):
    """Unit of sync work: one category of one account."""

    account_id: str
    category: str


class SyncHistoryEntry(BaseModel):
    """Trimmed summary of a past sync pass."""

    synced_at: datetime
    mode: SyncMode
    email_count: int = 0
    conflicts_resolved: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    cursor_token: str | None = None


class SyncCursor(BaseModel):
    """Per-key synchronization state."""

    account_id: str
    category: str
    last_synced_at: datetime | None = Field(default=None)
    cursor_token: str | None = Field(default=None, description="Opaque provider token")
    conflicts_resolved_total: int = Field(default=0, ge=0)
    history: list[SyncHistoryEntry] = Field(default_factory=list, description="Oldest first")

    @property
    def key(self) -> SyncKey:
        return SyncKey(self.account_id, self.category)


class SyncSummary(BaseModel):
    """User-visible outcome of one ``run_sync`` call."""

    account_id: str
    category: str
    mode: SyncMode
    email_count: int = Field(default=0, description="Records upserted during the run")
    has_more: bool = Field(default=False, description="Whether the provider has more pages")
    conflicts_resolved: int = Field(default=0)
    skipped_count: int = Field(default=0, description="Malformed payloads skipped")
    failed_count: int = Field(default=0, description="Messages that failed reconciliation")
    pages_fetched: int = Field(default=0)
    conflicts_truncated: int = Field(
        default=0, description="Conflict entries dropped by the history cap"
    )
    cancelled: bool = Field(default=False)
    cursor_token: str | None = Field(default=None, description="Cursor stored at the end")
    started_at: datetime
    finished_at: datetime | None = None

    def to_history_entry(self) -> SyncHistoryEntry:
        return SyncHistoryEntry(
            synced_at=self.finished_at or self.started_at,
            mode=self.mode,
            email_count=self.email_count,
            conflicts_resolved=self.conflicts_resolved,
            skipped_count=self.skipped_count,
            failed_count=self.failed_count,
            cursor_token=self.cursor_token,
        )
