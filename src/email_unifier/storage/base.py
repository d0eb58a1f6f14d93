"""Storage collaborator interface consumed by the sync orchestrator."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from email_unifier.models import Provider, UnifiedEmail, UnifiedThread


class Storage(Protocol):
    """Persistence of canonical records.

    Implementations raise :class:`~email_unifier.exceptions.StorageFailureError`
    when the backing store is unavailable.
    """

    def find_canonical_email(
        self, provider: Provider | str, account_id: str, native_id: str
    ) -> UnifiedEmail | None: ...

    def upsert_canonical_email(self, email: UnifiedEmail) -> None: ...

    def find_thread_members(
        self, thread_id: str, account_id: str | None = None
    ) -> list[UnifiedEmail]: ...

    def find_thread(self, account_id: str, thread_id: str) -> UnifiedThread | None: ...

    def upsert_thread(self, thread: UnifiedThread) -> None: ...

    def delete_thread(self, account_id: str, thread_id: str) -> None: ...

    def find_thread_by_clean_subject_and_sender(
        self,
        subject: str,
        sender_email: str,
        *,
        account_id: str | None = None,
        since: datetime | None = None,
    ) -> UnifiedThread | None:
        """Most recently active thread with this clean subject and sender as participant."""
        ...
