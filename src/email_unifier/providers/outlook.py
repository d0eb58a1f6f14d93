"""Microsoft Graph message payloads (``/me/mailFolders/{id}/messages/delta``)."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from email_unifier.models import Attachment, EmailAddress, Provider
from email_unifier.parsing import clean_message_id, parse_iso_date, parse_references
from email_unifier.parsing.bodies import html_to_text, make_snippet
from email_unifier.providers.base import (
    MessageFlags,
    NativePayload,
    ProviderAdapter,
    as_str,
    header_map,
)

_RECIPIENT_FIELDS = {
    "to": "toRecipients",
    "cc": "ccRecipients",
    "bcc": "bccRecipients",
    "reply_to": "replyTo",
}

# Well-known folder names Graph accepts in place of folder ids.
_SENT_FOLDERS = {"sentitems", "sent items"}


def _recipient(entry: Any) -> EmailAddress | None:
    if not isinstance(entry, dict):
        return None
    address = entry.get("emailAddress") or {}
    email = as_str(address.get("address"))
    if not email:
        return None
    return EmailAddress(email=email, name=as_str(address.get("name")))


class OutlookAdapter(ProviderAdapter):
    provider = Provider.OUTLOOK
    native_threading = True

    def _body(self, payload: NativePayload) -> tuple[str, str]:
        body = payload.get("body") or {}
        if not isinstance(body, dict):
            return "", ""
        content_type = str(body.get("contentType") or "").lower()
        content = body.get("content")
        return content_type, content if isinstance(content, str) else ""

    def _internet_headers(self, payload: NativePayload) -> dict[str, str]:
        return header_map(payload.get("internetMessageHeaders"))

    def _parent_folder(self, payload: NativePayload, folder_context: str | None) -> str | None:
        return folder_context or as_str(payload.get("parentFolderId"))

    def native_id(self, payload: NativePayload) -> str | None:
        return as_str(payload.get("id"))

    def message_id(self, payload: NativePayload) -> str | None:
        return clean_message_id(payload.get("internetMessageId"))

    def thread_id(self, payload: NativePayload) -> str | None:
        return as_str(payload.get("conversationId"))

    def in_reply_to(self, payload: NativePayload) -> str | None:
        return clean_message_id(self._internet_headers(payload).get("in-reply-to"))

    def references(self, payload: NativePayload) -> list[str]:
        return parse_references(self._internet_headers(payload).get("references"))

    def subject(self, payload: NativePayload) -> str | None:
        return as_str(payload.get("subject"))

    def sender(self, payload: NativePayload) -> list[EmailAddress]:
        sender = _recipient(payload.get("from")) or _recipient(payload.get("sender"))
        return [sender] if sender else []

    def recipients(self, payload: NativePayload, kind: str) -> list[EmailAddress]:
        entries = payload.get(_RECIPIENT_FIELDS[kind]) or []
        if not isinstance(entries, list):
            return []
        return [r for r in (_recipient(e) for e in entries) if r is not None]

    def body_text(self, payload: NativePayload) -> str:
        content_type, content = self._body(payload)
        if content_type == "text":
            return content
        return html_to_text(content)

    def body_html(self, payload: NativePayload) -> str | None:
        content_type, content = self._body(payload)
        return content if content_type == "html" and content else None

    def snippet(self, payload: NativePayload) -> str:
        preview = payload.get("bodyPreview")
        if isinstance(preview, str) and preview:
            return preview
        return make_snippet(self.body_text(payload))

    def received_date(self, payload: NativePayload) -> datetime | None:
        return parse_iso_date(payload.get("receivedDateTime"))

    def sent_date(self, payload: NativePayload) -> datetime | None:
        return parse_iso_date(payload.get("sentDateTime")) or parse_iso_date(
            payload.get("createdDateTime")
        )

    def flags(self, payload: NativePayload, folder_context: str | None) -> MessageFlags:
        folder = (self._parent_folder(payload, folder_context) or "").lower()
        flag = payload.get("flag") or {}
        return MessageFlags(
            is_read=bool(payload.get("isRead")),
            is_draft=bool(payload.get("isDraft")),
            is_sent=folder in _SENT_FOLDERS,
            is_important=str(payload.get("importance") or "").lower() == "high",
            is_flagged=isinstance(flag, dict) and flag.get("flagStatus") == "flagged",
        )

    def attachments(self, payload: NativePayload) -> list[Attachment]:
        entries = payload.get("attachments") or []
        if not isinstance(entries, list):
            return []
        result: list[Attachment] = []
        for att in entries:
            if not isinstance(att, dict) or not att.get("name"):
                continue
            result.append(
                Attachment(
                    id=as_str(att.get("id")),
                    filename=str(att["name"]),
                    mime_type=as_str(att.get("contentType")),
                    size_bytes=int(att.get("size") or 0),
                )
            )
        return result

    def has_attachments(self, payload: NativePayload) -> bool:
        # Delta responses omit expanded attachments but still set the flag.
        return bool(payload.get("hasAttachments")) or bool(self.attachments(payload))

    def labels(self, payload: NativePayload) -> set[str]:
        categories = payload.get("categories") or []
        if not isinstance(categories, list):
            return set()
        return {c for c in categories if isinstance(c, str) and c}

    def category_input(self, payload: NativePayload, folder_context: str | None) -> list[str]:
        if folder_context:
            return [folder_context]
        if payload.get("isDraft"):
            return ["drafts"]
        folder = as_str(payload.get("parentFolderId"))
        return [folder] if folder else []

    def folder(self, payload: NativePayload, folder_context: str | None) -> str | None:
        return self._parent_folder(payload, folder_context)

    def version(self, payload: NativePayload) -> str | None:
        return as_str(payload.get("@odata.etag")) or as_str(payload.get("changeKey"))

    def size_bytes(self, payload: NativePayload) -> int:
        preview = payload.get("bodyPreview")
        # Graph exposes no size on messages; the preview length is an approximation.
        return len(preview) if isinstance(preview, str) else 0

    def thread_messages(self, thread_payload: NativePayload) -> list[NativePayload]:
        messages = thread_payload.get("messages") or thread_payload.get("value") or []
        return [m for m in messages if isinstance(m, dict)]

    def native_thread_id(self, thread_payload: NativePayload) -> str | None:
        value = thread_payload.get("conversationId") or thread_payload.get("id")
        if value:
            return str(value)
        for message in self.thread_messages(thread_payload):
            conversation_id = self.thread_id(message)
            if conversation_id:
                return conversation_id
        return None
