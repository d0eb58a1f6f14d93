"""Unit tests for the storage backends."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from email_unifier.exceptions import StorageFailureError
from email_unifier.models import EmailAddress, Provider, SyncCursor, UnifiedThread
from email_unifier.storage import InMemoryStorage, SqliteStorage

NOW = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


def _thread(thread_id: str = "t1", **overrides) -> UnifiedThread:
    fields = {
        "thread_id": thread_id,
        "account_id": "acct",
        "subject": "Re: Quarterly report",
        "clean_subject": "quarterly report",
        "participants": [EmailAddress(email="ann@example.com")],
        "message_count": 1,
        "last_activity": NOW,
    }
    fields.update(overrides)
    return UnifiedThread(**fields)


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    if request.param == "memory":
        return InMemoryStorage()
    store = SqliteStorage(tmp_path / "unifier.sqlite3")
    store.initialize()
    return store


class TestMessages:
    """Canonical message persistence shared by every backend."""

    def test_upsert_and_find(self, storage, unified_email) -> None:
        """Test that a stored record is returned by its identity."""
        storage.upsert_canonical_email(unified_email())

        found = storage.find_canonical_email(Provider.GMAIL, "acct", "m1")

        assert found == unified_email()
        assert storage.find_canonical_email("gmail", "other", "m1") is None
        assert storage.find_canonical_email(Provider.OUTLOOK, "acct", "m1") is None

    def test_upsert_replaces(self, storage, unified_email) -> None:
        """Test that the same identity is stored once."""
        storage.upsert_canonical_email(unified_email(is_read=False))
        storage.upsert_canonical_email(unified_email(is_read=True))

        assert storage.find_canonical_email(Provider.GMAIL, "acct", "m1").is_read is True
        assert len(storage.find_thread_members("t1")) == 1

    def test_thread_members(self, storage, unified_email) -> None:
        """Test member lookup by thread, optionally scoped to an account."""
        storage.upsert_canonical_email(unified_email(id="m1"))
        storage.upsert_canonical_email(unified_email(id="m2"))
        storage.upsert_canonical_email(unified_email(id="m3", thread_id="t2"))
        storage.upsert_canonical_email(unified_email(id="m4", account_id="other"))

        assert {e.id for e in storage.find_thread_members("t1", "acct")} == {"m1", "m2"}
        assert {e.id for e in storage.find_thread_members("t1")} == {"m1", "m2", "m4"}
        assert storage.find_thread_members("missing") == []


class TestThreads:
    """Thread persistence shared by every backend."""

    def test_upsert_find_delete(self, storage) -> None:
        """Test the thread lifecycle."""
        storage.upsert_thread(_thread(message_count=1))
        storage.upsert_thread(_thread(message_count=2))

        assert storage.find_thread("acct", "t1").message_count == 2
        assert storage.find_thread("other", "t1") is None

        storage.delete_thread("acct", "t1")

        assert storage.find_thread("acct", "t1") is None

    def test_delete_missing_is_noop(self, storage) -> None:
        """Test that deleting an unknown thread does not fail."""
        storage.delete_thread("acct", "missing")

    def test_subject_and_sender_lookup(self, storage) -> None:
        """Test that the most recent participating thread wins."""
        storage.upsert_thread(_thread("old", last_activity=NOW - timedelta(days=2)))
        storage.upsert_thread(_thread("new", last_activity=NOW))
        storage.upsert_thread(
            _thread("stranger", participants=[EmailAddress(email="zed@example.com")])
        )

        found = storage.find_thread_by_clean_subject_and_sender(
            "quarterly report", "ann@example.com", account_id="acct"
        )

        assert found.thread_id == "new"

    def test_subject_lookup_filters(self, storage) -> None:
        """Test the account and recency filters."""
        storage.upsert_thread(_thread("t1", last_activity=NOW - timedelta(days=45)))

        assert (
            storage.find_thread_by_clean_subject_and_sender(
                "quarterly report", "ann@example.com", since=NOW - timedelta(days=30)
            )
            is None
        )
        assert (
            storage.find_thread_by_clean_subject_and_sender(
                "quarterly report", "ann@example.com", account_id="other"
            )
            is None
        )
        assert (
            storage.find_thread_by_clean_subject_and_sender("other subject", "ann@example.com")
            is None
        )


class TestInMemoryStorage:
    """Behaviour specific to the in-process store."""

    def test_records_are_copied(self, unified_email) -> None:
        """Test that mutating a returned record does not change the store."""
        storage = InMemoryStorage()
        storage.upsert_canonical_email(unified_email())

        found = storage.find_canonical_email(Provider.GMAIL, "acct", "m1")
        found.labels.add("TAMPERED")

        assert "TAMPERED" not in storage.all_emails()[0].labels


class TestSqliteStorage:
    """Behaviour specific to the SQLite store."""

    def test_initialize_is_idempotent(self, tmp_path, unified_email) -> None:
        """Test that re-initializing keeps existing data."""
        db_path = tmp_path / "nested" / "unifier.sqlite3"
        SqliteStorage(db_path).initialize()
        store = SqliteStorage(db_path)
        store.initialize()
        store.upsert_canonical_email(unified_email())

        again = SqliteStorage(db_path)
        again.initialize()

        assert again.find_canonical_email(Provider.GMAIL, "acct", "m1") is not None

    def test_unsupported_schema_version(self, tmp_path) -> None:
        """Test that a database from another schema version is refused."""
        db_path = tmp_path / "unifier.sqlite3"
        SqliteStorage(db_path).initialize()
        conn = sqlite3.connect(db_path)
        conn.execute("UPDATE _schema_meta SET value = '99' WHERE key = 'schema_version'")
        conn.commit()
        conn.close()

        with pytest.raises(StorageFailureError, match="schema version 99"):
            SqliteStorage(db_path).initialize()

    def test_uninitialized_store_fails(self, tmp_path, unified_email) -> None:
        """Test that SQLite errors surface as storage failures."""
        store = SqliteStorage(tmp_path / "empty.sqlite3")

        with pytest.raises(StorageFailureError):
            store.upsert_canonical_email(unified_email())

    def test_upsert_many_empty(self, tmp_path) -> None:
        """Test that an empty batch touches nothing."""
        store = SqliteStorage(tmp_path / "never-created.sqlite3")

        store.upsert_many([])

        assert not (tmp_path / "never-created.sqlite3").exists()

    def test_cursor_round_trip(self, tmp_path) -> None:
        """Test that cursors survive a reopen and are replaced per key."""
        db_path = tmp_path / "unifier.sqlite3"
        store = SqliteStorage(db_path)
        store.initialize()
        store.save_cursor(SyncCursor(account_id="acct", category="INBOX", cursor_token="a"))
        store.save_cursor(SyncCursor(account_id="acct", category="INBOX", cursor_token="b"))
        store.save_cursor(SyncCursor(account_id="acct", category="SENT", cursor_token="c"))

        cursors = {c.category: c for c in SqliteStorage(db_path).load_cursors()}

        assert cursors["INBOX"].cursor_token == "b"
        assert cursors["SENT"].cursor_token == "c"

    def test_overall_stats(self, tmp_path, unified_email) -> None:
        """Test the summary counters."""
        store = SqliteStorage(tmp_path / "unifier.sqlite3")
        store.initialize()
        store.upsert_many(
            [
                unified_email(id="m1", is_read=False),
                unified_email(id="m2", is_read=True),
                unified_email(id="m3", account_id="other", is_read=False),
            ]
        )
        store.upsert_thread(_thread())

        stats = store.overall_stats()

        assert stats.total_messages == 3
        assert stats.unread_messages == 2
        assert stats.total_threads == 1
        assert stats.accounts == 2

    def test_empty_stats(self, tmp_path) -> None:
        """Test the counters of a fresh store."""
        store = SqliteStorage(tmp_path / "unifier.sqlite3")
        store.initialize()

        stats = store.overall_stats()

        assert stats.total_messages == 0
        assert stats.unread_messages == 0
