"""Command-line interface for Email Unifier.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import structlog

from email_unifier import __version__
from email_unifier.clients import GmailClient, InboundQueueClient
from email_unifier.config import Settings, get_settings
from email_unifier.exceptions import EmailUnifierError
from email_unifier.models import Provider, SyncMode, SyncSummary, UniversalCategory
from email_unifier.storage import SqliteStorage
from email_unifier.sync import SyncCursorStore, SyncOrchestrator

logger = structlog.get_logger()

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="email-unifier", description="Email Unifier")
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to the SQLite database (default: settings db_path)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Sync commands
    sync_parser = subparsers.add_parser("sync", help="Pull provider messages into canonical records")
    sync_sub = sync_parser.add_subparsers(dest="sync_command", required=True)

    gmail_parser = sync_sub.add_parser("gmail", help="Sync one Gmail label")
    gmail_parser.add_argument("--account", default="me", help="Account id to store records under")
    gmail_parser.add_argument(
        "--label",
        default=UniversalCategory.INBOX.value,
        help="Gmail label id to sync (default: INBOX)",
    )
    gmail_parser.add_argument(
        "--full",
        action="store_true",
        help="Ignore the stored cursor and list the label from the start",
    )

    inbound_parser = sync_sub.add_parser(
        "inbound", help="Sync SES inbound notifications stored as JSON files"
    )
    inbound_parser.add_argument("files", nargs="+", type=Path, help="Notification JSON files")
    inbound_parser.add_argument("--account", required=True, help="Receiving account id")
    inbound_parser.add_argument(
        "--category",
        default=UniversalCategory.INBOX.value,
        help="Category the notifications are filed under (default: INBOX)",
    )

    # Thread commands
    threads_parser = subparsers.add_parser("threads", help="Inspect canonical threads")
    threads_sub = threads_parser.add_subparsers(dest="threads_command", required=True)
    show_parser = threads_sub.add_parser("show", help="Show one thread and its messages")
    show_parser.add_argument("thread_id", help="Canonical thread id")
    show_parser.add_argument("--account", required=True, help="Account id")

    subparsers.add_parser("status", help="Show store stats and sync cursors")

    return parser


def _open_storage(args: argparse.Namespace, settings: Settings) -> SqliteStorage:
    storage = SqliteStorage(args.db or settings.db_path)
    storage.initialize()
    return storage


def _build_orchestrator(storage: SqliteStorage, settings: Settings) -> SyncOrchestrator:
    cursor_store = SyncCursorStore(settings.cursor_history_limit)
    cursor_store.restore(storage.load_cursors())
    return SyncOrchestrator(storage, cursor_store=cursor_store, settings=settings)


def _save_cursors(storage: SqliteStorage, orchestrator: SyncOrchestrator) -> None:
    for cursor in orchestrator.cursor_store.snapshot():
        storage.save_cursor(cursor)


def _print_summary(summary: SyncSummary) -> None:
    more = "more pending" if summary.has_more else "up to date"
    print(
        f"{summary.account_id}/{summary.category} ({summary.mode.value}): "
        f"{summary.email_count} messages, {summary.conflicts_resolved} conflicts resolved, "
        f"{summary.skipped_count} skipped, {summary.failed_count} failed, "
        f"{summary.pages_fetched} pages, {more}"
    )


def _cmd_sync_gmail(args: argparse.Namespace, settings: Settings) -> int:
    storage = _open_storage(args, settings)
    orchestrator = _build_orchestrator(storage, settings)

    gmail = GmailClient(settings)
    gmail.authenticate()
    orchestrator.register_account(args.account, Provider.GMAIL, gmail)

    mode = SyncMode.FULL if args.full else SyncMode.INCREMENTAL
    try:
        summary = orchestrator.run_sync(args.account, args.label, mode)
    finally:
        _save_cursors(storage, orchestrator)

    _print_summary(summary)
    return 0


def _cmd_sync_inbound(args: argparse.Namespace, settings: Settings) -> int:
    storage = _open_storage(args, settings)
    orchestrator = _build_orchestrator(storage, settings)

    queue = InboundQueueClient()
    for path in args.files:
        queue.load_file(args.account, path, args.category)
    orchestrator.register_account(args.account, Provider.SES, queue)

    # The queue only lives for this process, so always start from offset 0.
    try:
        summary = orchestrator.run_sync(args.account, args.category, SyncMode.FULL)
        _print_summary(summary)
        while summary.has_more:
            summary = orchestrator.run_sync(args.account, args.category, SyncMode.INCREMENTAL)
            _print_summary(summary)
    finally:
        _save_cursors(storage, orchestrator)

    return 0


def _cmd_threads_show(args: argparse.Namespace, settings: Settings) -> int:
    storage = _open_storage(args, settings)

    thread = storage.find_thread(args.account, args.thread_id)
    if thread is None:
        print(f"Thread not found: {args.thread_id}", file=sys.stderr)
        return 1

    unread = "UNREAD" if thread.has_unread else "READ"
    print(f"{thread.thread_id}\t{unread}\t{thread.message_count} messages\t{thread.subject}")
    print(f"Category: {thread.category}")
    print("Participants: " + ", ".join(p.email for p in thread.participants))

    members = storage.find_thread_members(thread.thread_id, args.account)
    members.sort(key=lambda e: e.received_date or e.sent_date or _EPOCH)
    for email in members:
        date = email.received_date or email.sent_date
        date_part = date.isoformat() if date else "(no date)"
        sender = email.sender_email or "(unknown sender)"
        print(f"- {date_part}\t{sender}\t{email.subject}")

    return 0


def _cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    storage = _open_storage(args, settings)

    stats = storage.overall_stats()
    print(f"Total messages: {stats.total_messages}")
    print(f"Unread messages: {stats.unread_messages}")
    print(f"Threads: {stats.total_threads}")
    print(f"Accounts: {stats.accounts}")

    cursors = storage.load_cursors()
    if cursors:
        print("\nSync cursors:")
    for cursor in sorted(cursors, key=lambda c: (c.account_id, c.category)):
        synced = cursor.last_synced_at.isoformat() if cursor.last_synced_at else "never"
        print(
            f"- {cursor.account_id}/{cursor.category}: last synced {synced}, "
            f"{cursor.conflicts_resolved_total} conflicts resolved"
        )

    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point for the Email Unifier CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()

    # Configure logging
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO)
        ),
    )

    logger.info("email_unifier_started", version=__version__, debug=settings.debug)

    parser = _build_parser()
    parsed = parser.parse_args(args)

    try:
        if parsed.command == "sync":
            if parsed.sync_command == "gmail":
                return _cmd_sync_gmail(parsed, settings)
            if parsed.sync_command == "inbound":
                return _cmd_sync_inbound(parsed, settings)
        if parsed.command == "threads" and parsed.threads_command == "show":
            return _cmd_threads_show(parsed, settings)
        if parsed.command == "status":
            return _cmd_status(parsed, settings)
    except EmailUnifierError as exc:
        logger.error("command_failed", command=parsed.command, error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    logger.error("unknown_command", command=parsed.command)
    return 2


if __name__ == "__main__":
    sys.exit(main())
