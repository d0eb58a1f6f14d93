"""Unit tests for sync state: state machine, cursor store and thread cache."""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from email_unifier.exceptions import InvalidTransitionError
from email_unifier.models import (
    EmailAddress,
    SyncCursor,
    SyncKey,
    SyncMode,
    SyncSummary,
    UnifiedThread,
)
from email_unifier.sync import (
    SyncCursorStore,
    SyncEvent,
    SyncState,
    SyncStateMachine,
    ThreadCache,
)

NOW = datetime(2023, 11, 14, 22, 0, tzinfo=timezone.utc)


def _thread(thread_id: str, subject: str = "plan", participant: str = "ann@example.com", **kw):
    return UnifiedThread(
        thread_id=thread_id,
        account_id=kw.pop("account_id", "acct"),
        subject=subject,
        clean_subject=subject,
        participants=[EmailAddress(email=participant)],
        message_count=1,
        last_activity=kw.pop("last_activity", NOW),
        **kw,
    )


class TestSyncStateMachine:
    """Test suite for SyncStateMachine."""

    def test_happy_path(self) -> None:
        """Test a two-page run returning to IDLE."""
        sm = SyncStateMachine()

        sm.trigger(SyncEvent.START)
        sm.trigger(SyncEvent.PAGE_FETCHED)
        sm.trigger(SyncEvent.RECONCILED)
        sm.trigger(SyncEvent.NEXT_PAGE)
        assert sm.state is SyncState.FETCHING
        sm.trigger(SyncEvent.PAGE_FETCHED)
        sm.trigger(SyncEvent.RECONCILED)
        sm.trigger(SyncEvent.COMPLETE)

        assert sm.state is SyncState.IDLE
        assert len(sm.history) == 7

    @pytest.mark.parametrize(
        "state", [SyncState.FETCHING, SyncState.RECONCILING, SyncState.PERSISTING]
    )
    def test_fail_from_active_states(self, state: SyncState) -> None:
        """Test that any active state can fail and then reset."""
        sm = SyncStateMachine(initial_state=state)

        assert sm.is_active
        assert sm.trigger(SyncEvent.FAIL) is SyncState.FAILED
        assert sm.trigger(SyncEvent.RESET) is SyncState.IDLE

    def test_invalid_transition(self) -> None:
        """Test that out-of-order events are rejected."""
        sm = SyncStateMachine()

        with pytest.raises(InvalidTransitionError):
            sm.trigger(SyncEvent.COMPLETE)
        assert sm.state is SyncState.IDLE


class TestSyncCursorStore:
    """Test suite for SyncCursorStore."""

    def _summary(self, **kw) -> SyncSummary:
        return SyncSummary(
            account_id="acct",
            category="INBOX",
            mode=SyncMode.INCREMENTAL,
            started_at=NOW,
            finished_at=NOW,
            **kw,
        )

    def test_missing_cursor(self) -> None:
        """Test that unknown keys have no cursor."""
        assert SyncCursorStore().get(SyncKey("acct", "INBOX")) is None

    def test_advance_creates_and_accumulates(self) -> None:
        """Test lazy creation and conflict accumulation."""
        store = SyncCursorStore()
        key = SyncKey("acct", "INBOX")

        store.advance(key, "p1", conflicts_resolved=2)
        cursor = store.advance(key, "p2", conflicts_resolved=3)

        assert cursor.cursor_token == "p2"
        assert cursor.conflicts_resolved_total == 5

    def test_get_returns_copy(self) -> None:
        """Test that callers cannot mutate stored state."""
        store = SyncCursorStore()
        key = SyncKey("acct", "INBOX")
        store.advance(key, "p1")

        copy = store.get(key)
        copy.cursor_token = "tampered"

        assert store.get(key).cursor_token == "p1"

    def test_history_is_trimmed(self) -> None:
        """Test that only the most recent pass summaries are kept."""
        store = SyncCursorStore(history_limit=3)
        key = SyncKey("acct", "INBOX")

        for i in range(5):
            cursor = store.record_pass(key, self._summary(email_count=i))

        assert [h.email_count for h in cursor.history] == [2, 3, 4]
        assert cursor.last_synced_at == NOW

    def test_snapshot_and_restore(self) -> None:
        """Test that cursors survive a snapshot/restore cycle."""
        store = SyncCursorStore()
        store.advance(SyncKey("a", "INBOX"), "x")
        store.advance(SyncKey("b", "SENT"), "y")

        restored = SyncCursorStore()
        restored.restore(store.snapshot())

        assert restored.get(SyncKey("a", "INBOX")).cursor_token == "x"
        assert restored.get(SyncKey("b", "SENT")).cursor_token == "y"

    def test_concurrent_advances_are_serialized(self) -> None:
        """Test that per-key locking keeps counters exact."""
        store = SyncCursorStore()
        key = SyncKey("acct", "INBOX")

        def worker() -> None:
            for _ in range(100):
                store.advance(key, "t", conflicts_resolved=1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.get(key).conflicts_resolved_total == 800

    def test_cursor_key(self) -> None:
        """Test the key property."""
        assert SyncCursor(account_id="a", category="INBOX").key == SyncKey("a", "INBOX")


class TestThreadCache:
    """Test suite for ThreadCache."""

    def test_put_and_get(self) -> None:
        """Test basic keyed access."""
        cache = ThreadCache(max_size=2)
        cache.put(_thread("t1"))

        assert cache.get("acct", "t1").thread_id == "t1"
        assert cache.get("other", "t1") is None

    def test_least_recently_used_is_evicted(self) -> None:
        """Test LRU eviction order."""
        cache = ThreadCache(max_size=2)
        cache.put(_thread("t1"))
        cache.put(_thread("t2"))
        cache.get("acct", "t1")
        cache.put(_thread("t3"))

        assert cache.get("acct", "t2") is None
        assert cache.get("acct", "t1") is not None
        assert len(cache) == 2

    def test_invalidate(self) -> None:
        """Test explicit removal."""
        cache = ThreadCache()
        cache.put(_thread("t1"))
        cache.invalidate("acct", "t1")

        assert cache.get("acct", "t1") is None

    def test_find_by_subject_and_sender(self) -> None:
        """Test the subject/participant lookup picks the most recent match."""
        cache = ThreadCache()
        cache.put(_thread("old", last_activity=NOW - timedelta(days=3)))
        cache.put(_thread("new", last_activity=NOW))
        cache.put(_thread("other-sender", participant="zed@example.com"))

        found = cache.find_by_subject_and_sender("acct", "plan", "ANN@example.com")

        assert found.thread_id == "new"

    def test_find_respects_window(self) -> None:
        """Test that stale threads are ignored."""
        cache = ThreadCache()
        cache.put(_thread("stale", last_activity=NOW - timedelta(days=60)))

        since = NOW - timedelta(days=30)
        assert cache.find_by_subject_and_sender("acct", "plan", "ann@example.com", since) is None

    def test_invalid_size(self) -> None:
        """Test that an empty cache is rejected."""
        with pytest.raises(ValueError):
            ThreadCache(max_size=0)
