"""In-process storage, used for tests and embedding the engine."""

from __future__ import annotations

import threading
from datetime import datetime, timezone

from email_unifier.models import Provider, UnifiedEmail, UnifiedThread

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class InMemoryStorage:
    """Dict-backed :class:`~email_unifier.storage.base.Storage`.

    Records are copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self) -> None:
        self._emails: dict[tuple[str, str, str], UnifiedEmail] = {}
        self._threads: dict[tuple[str, str], UnifiedThread] = {}
        self._lock = threading.Lock()

    def find_canonical_email(
        self, provider: Provider | str, account_id: str, native_id: str
    ) -> UnifiedEmail | None:
        key = (Provider(provider).value, account_id, native_id)
        with self._lock:
            email = self._emails.get(key)
            return email.model_copy(deep=True) if email else None

    def upsert_canonical_email(self, email: UnifiedEmail) -> None:
        with self._lock:
            self._emails[email.storage_key()] = email.model_copy(deep=True)

    def find_thread_members(
        self, thread_id: str, account_id: str | None = None
    ) -> list[UnifiedEmail]:
        with self._lock:
            return [
                e.model_copy(deep=True)
                for e in self._emails.values()
                if e.thread_id == thread_id and (account_id is None or e.account_id == account_id)
            ]

    def find_thread(self, account_id: str, thread_id: str) -> UnifiedThread | None:
        with self._lock:
            thread = self._threads.get((account_id, thread_id))
            return thread.model_copy(deep=True) if thread else None

    def upsert_thread(self, thread: UnifiedThread) -> None:
        with self._lock:
            self._threads[(thread.account_id, thread.thread_id)] = thread.model_copy(deep=True)

    def delete_thread(self, account_id: str, thread_id: str) -> None:
        with self._lock:
            self._threads.pop((account_id, thread_id), None)

    def find_thread_by_clean_subject_and_sender(
        self,
        subject: str,
        sender_email: str,
        *,
        account_id: str | None = None,
        since: datetime | None = None,
    ) -> UnifiedThread | None:
        with self._lock:
            candidates = [
                t
                for t in self._threads.values()
                if t.clean_subject == subject
                and t.has_participant(sender_email)
                and (account_id is None or t.account_id == account_id)
                and (since is None or (t.last_activity is not None and t.last_activity >= since))
            ]
        if not candidates:
            return None
        best = max(candidates, key=lambda t: t.last_activity or _EPOCH)
        return best.model_copy(deep=True)

    def all_emails(self) -> list[UnifiedEmail]:
        with self._lock:
            return [e.model_copy(deep=True) for e in self._emails.values()]

    def all_threads(self) -> list[UnifiedThread]:
        with self._lock:
            return [t.model_copy(deep=True) for t in self._threads.values()]
