"""Bounded LRU cache of recently resolved threads, shared by all sync keys."""

from __future__ import annotations

import threading
from collections import OrderedDict
from datetime import datetime, timezone

from email_unifier.models import UnifiedThread

ThreadKey = tuple[str, str]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class ThreadCache:
    def __init__(self, max_size: int = 1000) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self._items: OrderedDict[ThreadKey, UnifiedThread] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def get(self, account_id: str, thread_id: str) -> UnifiedThread | None:
        key = (account_id, thread_id)
        with self._lock:
            thread = self._items.get(key)
            if thread is not None:
                self._items.move_to_end(key)
            return thread

    def put(self, thread: UnifiedThread) -> None:
        key = (thread.account_id, thread.thread_id)
        with self._lock:
            self._items[key] = thread
            self._items.move_to_end(key)
            while len(self._items) > self.max_size:
                self._items.popitem(last=False)

    def invalidate(self, account_id: str, thread_id: str) -> None:
        with self._lock:
            self._items.pop((account_id, thread_id), None)

    def find_by_subject_and_sender(
        self,
        account_id: str,
        clean_subject: str,
        sender_email: str,
        since: datetime | None = None,
    ) -> UnifiedThread | None:
        """Most recently active cached thread matching subject and participant."""

        with self._lock:
            candidates = [
                t
                for (acct, _), t in self._items.items()
                if acct == account_id
                and t.clean_subject == clean_subject
                and t.has_participant(sender_email)
                and (since is None or (t.last_activity is not None and t.last_activity >= since))
            ]
        if not candidates:
            return None
        return max(candidates, key=lambda t: t.last_activity or _EPOCH)
