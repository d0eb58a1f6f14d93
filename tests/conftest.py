"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import base64
from typing import Any

import pytest


@pytest.fixture
def mock_settings():
    """Provide settings isolated from the environment and .env files."""
    from email_unifier.config import Settings

    return Settings(
        _env_file=None,
        log_level="DEBUG",
        debug=True,
        page_size=2,
        initial_page_size=2,
        max_pages_per_run=10,
        max_retries=0,
        sync_workers=2,
    )


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def build_gmail_message(
    id: str = "m1",
    thread_id: str | None = "t1",
    subject: str | None = "Quarterly report",
    sender: str = "Ann Example <ann@example.com>",
    to: str = "bob@example.com",
    cc: str | None = None,
    labels: tuple[str, ...] = ("INBOX", "UNREAD"),
    message_id: str | None = "<m1@mail.example.com>",
    in_reply_to: str | None = None,
    references: str | None = None,
    internal_date: int = 1_700_000_000_000,
    body: str = "Hi Bob, the report is attached.",
    history_id: str = "1001",
) -> dict[str, Any]:
    headers = [
        {"name": "From", "value": sender},
        {"name": "To", "value": to},
        {"name": "Date", "value": "Tue, 14 Nov 2023 22:13:20 +0000"},
    ]
    if subject is not None:
        headers.append({"name": "Subject", "value": subject})
    if cc:
        headers.append({"name": "Cc", "value": cc})
    if message_id:
        headers.append({"name": "Message-ID", "value": message_id})
    if in_reply_to:
        headers.append({"name": "In-Reply-To", "value": in_reply_to})
    if references:
        headers.append({"name": "References", "value": references})

    message: dict[str, Any] = {
        "id": id,
        "labelIds": list(labels),
        "snippet": body[:40],
        "historyId": history_id,
        "internalDate": str(internal_date),
        "sizeEstimate": 2048,
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": headers,
            "parts": [
                {"mimeType": "text/plain", "filename": "", "body": {"data": _b64(body)}},
                {
                    "mimeType": "text/html",
                    "filename": "",
                    "body": {"data": _b64(f"<p>{body}</p>")},
                },
            ],
        },
    }
    if thread_id is not None:
        message["threadId"] = thread_id
    return message


def build_outlook_message(
    id: str = "AAMk-1",
    conversation_id: str | None = "conv-1",
    subject: str = "Project kickoff",
    sender: str = "carol@contoso.com",
    to: tuple[str, ...] = ("dave@contoso.com",),
    is_read: bool = False,
    importance: str = "normal",
    flagged: bool = False,
    categories: tuple[str, ...] = ("Blue category",),
    folder: str = "inbox",
    received: str = "2023-11-14T22:13:20Z",
) -> dict[str, Any]:
    message: dict[str, Any] = {
        "id": id,
        "internetMessageId": f"<{id}@contoso.com>",
        "subject": subject,
        "from": {"emailAddress": {"name": "Carol", "address": sender}},
        "toRecipients": [{"emailAddress": {"address": addr}} for addr in to],
        "ccRecipients": [],
        "receivedDateTime": received,
        "sentDateTime": received,
        "isRead": is_read,
        "isDraft": False,
        "importance": importance,
        "flag": {"flagStatus": "flagged" if flagged else "notFlagged"},
        "categories": list(categories),
        "body": {"contentType": "html", "content": "<p>Kickoff &amp; agenda</p>"},
        "bodyPreview": "Kickoff & agenda",
        "parentFolderId": folder,
        "hasAttachments": False,
        "@odata.etag": 'W/"CQAAABYAAA"',
    }
    if conversation_id is not None:
        message["conversationId"] = conversation_id
    return message


def build_ses_notification(
    ses_id: str = "ses-0001",
    message_id: str = "<root@sender.example>",
    subject: str = "Order #1234",
    sender: str = "Erin <erin@sender.example>",
    to: str = "support@example.com",
    in_reply_to: str | None = None,
    references: str | None = None,
    timestamp: str = "2023-11-14T22:13:20.000Z",
    spam: bool = False,
    body: str = "Where is my order?",
) -> dict[str, Any]:
    headers = [{"name": "Message-ID", "value": message_id}]
    mime_headers = [f"From: {sender}", f"To: {to}", f"Subject: {subject}", f"Message-ID: {message_id}"]
    if in_reply_to:
        headers.append({"name": "In-Reply-To", "value": in_reply_to})
        mime_headers.append(f"In-Reply-To: {in_reply_to}")
    if references:
        headers.append({"name": "References", "value": references})
        mime_headers.append(f"References: {references}")
    mime_headers.append("Content-Type: text/plain; charset=utf-8")

    return {
        "notificationType": "Received",
        "mail": {
            "timestamp": timestamp,
            "source": sender,
            "messageId": ses_id,
            "destination": [to],
            "headers": headers,
            "commonHeaders": {
                "from": [sender],
                "to": [to],
                "messageId": message_id,
                "subject": subject,
                "date": "Tue, 14 Nov 2023 22:13:20 +0000",
            },
        },
        "receipt": {"spamVerdict": {"status": "FAIL" if spam else "PASS"}},
        "content": "\r\n".join(mime_headers) + "\r\n\r\n" + body + "\r\n",
    }


@pytest.fixture
def gmail_message():
    """Factory for Gmail ``format=full`` message payloads."""
    return build_gmail_message


@pytest.fixture
def outlook_message():
    """Factory for Microsoft Graph message payloads."""
    return build_outlook_message


@pytest.fixture
def ses_notification():
    """Factory for SES inbound notifications."""
    return build_ses_notification


def build_unified_email(**overrides: Any):
    from datetime import datetime, timezone

    from email_unifier.models import EmailAddress, Provider, SyncMeta, UnifiedEmail

    now = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    fields: dict[str, Any] = {
        "id": "m1",
        "account_id": "acct",
        "provider": Provider.GMAIL,
        "message_id": "m1@mail.example.com",
        "thread_id": "t1",
        "subject": "Quarterly report",
        "from_addrs": [EmailAddress(email="ann@example.com", name="Ann")],
        "to_addrs": [EmailAddress(email="bob@example.com")],
        "received_date": now,
        "labels": {"INBOX"},
        "category": "INBOX",
        "sync_meta": SyncMeta(last_synced=now, provider=Provider.GMAIL),
    }
    fields.update(overrides)
    return UnifiedEmail(**fields)


@pytest.fixture
def unified_email():
    """Factory for canonical records with sensible defaults."""
    return build_unified_email
