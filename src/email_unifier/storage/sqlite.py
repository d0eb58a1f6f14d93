"""SQLite-backed storage for canonical messages, threads and sync cursors.

Full records are stored as JSON documents; the columns alongside them only
exist to serve the lookups the sync engine performs.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import structlog

from email_unifier.exceptions import StorageFailureError
from email_unifier.models import Provider, SyncCursor, UnifiedEmail, UnifiedThread

logger = structlog.get_logger()


_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class StorageStats:
    """High-level summary stats for the store."""

    total_messages: int
    unread_messages: int
    total_threads: int
    accounts: int


class SqliteStorage:
    """Repository implementing :class:`~email_unifier.storage.base.Storage` on SQLite."""

    def __init__(self, db_path: Path) -> None:
        """Create a repository.

        Args:
            db_path: Path to the SQLite database file.
        """

        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Create the schema if needed and check its version."""

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS _schema_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )

            current_version = self._get_schema_version(conn)
            if current_version is None:
                self._create_schema_v1(conn)
                self._set_schema_version(conn, _SCHEMA_VERSION)
                conn.commit()
                logger.info("storage_schema_created", version=_SCHEMA_VERSION)
                return

            if current_version != _SCHEMA_VERSION:
                raise StorageFailureError(
                    f"Unsupported schema version {current_version}; expected {_SCHEMA_VERSION}"
                )

    # Messages

    def find_canonical_email(
        self, provider: Provider | str, account_id: str, native_id: str
    ) -> UnifiedEmail | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT record_json FROM canonical_emails
                WHERE provider = ? AND account_id = ? AND native_id = ?;
                """,
                (Provider(provider).value, account_id, native_id),
            ).fetchone()
        return UnifiedEmail.model_validate_json(row["record_json"]) if row else None

    def upsert_canonical_email(self, email: UnifiedEmail) -> None:
        self.upsert_many([email])

    def upsert_many(self, emails: list[UnifiedEmail]) -> None:
        """Upsert a batch of canonical messages in one transaction."""

        if not emails:
            return

        now_iso = datetime.now(timezone.utc).isoformat()

        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO canonical_emails (
                    provider,
                    account_id,
                    native_id,
                    thread_id,
                    is_read,
                    record_json,
                    updated_at_iso
                )
                VALUES (
                    :provider,
                    :account_id,
                    :native_id,
                    :thread_id,
                    :is_read,
                    :record_json,
                    :updated_at_iso
                )
                ON CONFLICT(provider, account_id, native_id) DO UPDATE SET
                    thread_id=excluded.thread_id,
                    is_read=excluded.is_read,
                    record_json=excluded.record_json,
                    updated_at_iso=excluded.updated_at_iso
                """,
                [
                    {
                        "provider": e.provider.value,
                        "account_id": e.account_id,
                        "native_id": e.id,
                        "thread_id": e.thread_id,
                        "is_read": 1 if e.is_read else 0,
                        "record_json": e.model_dump_json(),
                        "updated_at_iso": now_iso,
                    }
                    for e in emails
                ],
            )
            conn.commit()

    def find_thread_members(
        self, thread_id: str, account_id: str | None = None
    ) -> list[UnifiedEmail]:
        query = "SELECT record_json FROM canonical_emails WHERE thread_id = ?"
        params: tuple[str, ...] = (thread_id,)
        if account_id is not None:
            query += " AND account_id = ?"
            params += (account_id,)

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [UnifiedEmail.model_validate_json(row["record_json"]) for row in rows]

    # Threads

    def find_thread(self, account_id: str, thread_id: str) -> UnifiedThread | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT record_json FROM threads WHERE account_id = ? AND thread_id = ?;",
                (account_id, thread_id),
            ).fetchone()
        return UnifiedThread.model_validate_json(row["record_json"]) if row else None

    def upsert_thread(self, thread: UnifiedThread) -> None:
        now_iso = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO threads (
                    account_id, thread_id, clean_subject, last_activity_iso,
                    record_json, updated_at_iso
                )
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(account_id, thread_id) DO UPDATE SET
                    clean_subject=excluded.clean_subject,
                    last_activity_iso=excluded.last_activity_iso,
                    record_json=excluded.record_json,
                    updated_at_iso=excluded.updated_at_iso
                """,
                (
                    thread.account_id,
                    thread.thread_id,
                    thread.clean_subject,
                    _to_utc_iso(thread.last_activity),
                    thread.model_dump_json(),
                    now_iso,
                ),
            )
            conn.commit()

    def delete_thread(self, account_id: str, thread_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM threads WHERE account_id = ? AND thread_id = ?;",
                (account_id, thread_id),
            )
            conn.commit()

    def find_thread_by_clean_subject_and_sender(
        self,
        subject: str,
        sender_email: str,
        *,
        account_id: str | None = None,
        since: datetime | None = None,
    ) -> UnifiedThread | None:
        query = "SELECT record_json FROM threads WHERE clean_subject = ?"
        params: list[str] = [subject]
        if account_id is not None:
            query += " AND account_id = ?"
            params.append(account_id)
        if since is not None:
            query += " AND last_activity_iso >= ?"
            params.append(_to_utc_iso(since) or "")
        query += " ORDER BY last_activity_iso DESC;"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()

        for row in rows:
            thread = UnifiedThread.model_validate_json(row["record_json"])
            if thread.has_participant(sender_email):
                return thread
        return None

    # Cursors

    def load_cursors(self) -> list[SyncCursor]:
        """Return every persisted sync cursor."""

        with self._connect() as conn:
            rows = conn.execute("SELECT record_json FROM sync_cursors;").fetchall()
        return [SyncCursor.model_validate_json(row["record_json"]) for row in rows]

    def save_cursor(self, cursor: SyncCursor) -> None:
        now_iso = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO sync_cursors (account_id, category, record_json, updated_at_iso)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(account_id, category) DO UPDATE SET
                    record_json=excluded.record_json,
                    updated_at_iso=excluded.updated_at_iso
                """,
                (cursor.account_id, cursor.category, cursor.model_dump_json(), now_iso),
            )
            conn.commit()

    def overall_stats(self) -> StorageStats:
        """Compute high-level store stats."""

        with self._connect() as conn:
            total, unread, accounts = conn.execute(
                """
                SELECT COUNT(*), SUM(1 - is_read), COUNT(DISTINCT account_id)
                FROM canonical_emails;
                """
            ).fetchone()
            (threads,) = conn.execute("SELECT COUNT(*) FROM threads;").fetchone()

        return StorageStats(
            total_messages=int(total or 0),
            unread_messages=int(unread or 0),
            total_threads=int(threads or 0),
            accounts=int(accounts or 0),
        )

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as exc:
            raise StorageFailureError(f"Cannot open {self._db_path}: {exc}") from exc
        try:
            conn.row_factory = sqlite3.Row
            yield conn
        except sqlite3.Error as exc:
            logger.error("storage_operation_failed", db_path=str(self._db_path), error=str(exc))
            raise StorageFailureError(str(exc)) from exc
        finally:
            conn.close()

    def _get_schema_version(self, conn: sqlite3.Connection) -> int | None:
        row = conn.execute(
            "SELECT value FROM _schema_meta WHERE key = 'schema_version'"
        ).fetchone()
        if row is None:
            return None
        return int(row[0])

    def _set_schema_version(self, conn: sqlite3.Connection, version: int) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO _schema_meta(key, value) VALUES('schema_version', ?) ",
            (str(version),),
        )

    def _create_schema_v1(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS canonical_emails (
                rowid INTEGER PRIMARY KEY,
                provider TEXT NOT NULL,
                account_id TEXT NOT NULL,
                native_id TEXT NOT NULL,
                thread_id TEXT NOT NULL,
                is_read INTEGER NOT NULL,
                record_json TEXT NOT NULL,
                updated_at_iso TEXT NOT NULL,
                UNIQUE(provider, account_id, native_id)
            );

            CREATE INDEX IF NOT EXISTS idx_canonical_emails_thread
                ON canonical_emails(account_id, thread_id);

            CREATE TABLE IF NOT EXISTS threads (
                account_id TEXT NOT NULL,
                thread_id TEXT NOT NULL,
                clean_subject TEXT NOT NULL,
                last_activity_iso TEXT,
                record_json TEXT NOT NULL,
                updated_at_iso TEXT NOT NULL,
                PRIMARY KEY(account_id, thread_id)
            );

            CREATE INDEX IF NOT EXISTS idx_threads_clean_subject
                ON threads(account_id, clean_subject);

            CREATE TABLE IF NOT EXISTS sync_cursors (
                account_id TEXT NOT NULL,
                category TEXT NOT NULL,
                record_json TEXT NOT NULL,
                updated_at_iso TEXT NOT NULL,
                PRIMARY KEY(account_id, category)
            );
            """
        )


def _to_utc_iso(value: datetime | None) -> str | None:
    # Stored as UTC so lexical ordering matches chronological ordering.
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()
