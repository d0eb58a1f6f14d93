"""Gmail API message payloads (``users.messages.get`` with ``format=full``)."""

from __future__ import annotations

import html
from collections.abc import Iterator
from datetime import datetime
from typing import Any

from email_unifier.models import Attachment, EmailAddress, Provider
from email_unifier.parsing import (
    clean_message_id,
    parse_address_list,
    parse_epoch_ms,
    parse_header_date,
    parse_references,
)
from email_unifier.parsing.bodies import decode_base64url, html_to_text, make_snippet
from email_unifier.providers.base import (
    MessageFlags,
    NativePayload,
    ProviderAdapter,
    as_str,
    header_map,
)

_RECIPIENT_HEADERS = {"to": "to", "cc": "cc", "bcc": "bcc", "reply_to": "reply-to"}


def _walk_parts(part: Any) -> Iterator[dict[str, Any]]:
    if not isinstance(part, dict):
        return
    yield part
    for child in part.get("parts") or []:
        yield from _walk_parts(child)


class GmailAdapter(ProviderAdapter):
    provider = Provider.GMAIL
    native_threading = True

    def _headers(self, payload: NativePayload) -> dict[str, str]:
        return header_map((payload.get("payload") or {}).get("headers"))

    def _label_ids(self, payload: NativePayload) -> list[str]:
        label_ids = payload.get("labelIds") or []
        if not isinstance(label_ids, list):
            return []
        return [x for x in label_ids if isinstance(x, str)]

    def _find_body(self, payload: NativePayload, mime_type: str) -> str | None:
        for part in _walk_parts(payload.get("payload")):
            if part.get("mimeType") != mime_type or part.get("filename"):
                continue
            data = (part.get("body") or {}).get("data")
            if data:
                return decode_base64url(data)
        return None

    def native_id(self, payload: NativePayload) -> str | None:
        return as_str(payload.get("id"))

    def message_id(self, payload: NativePayload) -> str | None:
        return clean_message_id(self._headers(payload).get("message-id"))

    def thread_id(self, payload: NativePayload) -> str | None:
        return as_str(payload.get("threadId"))

    def in_reply_to(self, payload: NativePayload) -> str | None:
        return clean_message_id(self._headers(payload).get("in-reply-to"))

    def references(self, payload: NativePayload) -> list[str]:
        return parse_references(self._headers(payload).get("references"))

    def subject(self, payload: NativePayload) -> str | None:
        return self._headers(payload).get("subject")

    def sender(self, payload: NativePayload) -> list[EmailAddress]:
        return parse_address_list(self._headers(payload).get("from"))

    def recipients(self, payload: NativePayload, kind: str) -> list[EmailAddress]:
        return parse_address_list(self._headers(payload).get(_RECIPIENT_HEADERS[kind]))

    def body_text(self, payload: NativePayload) -> str:
        text = self._find_body(payload, "text/plain")
        if text is not None:
            return text
        return html_to_text(self._find_body(payload, "text/html"))

    def body_html(self, payload: NativePayload) -> str | None:
        return self._find_body(payload, "text/html")

    def snippet(self, payload: NativePayload) -> str:
        snippet = payload.get("snippet")
        if isinstance(snippet, str) and snippet:
            # Gmail snippets arrive HTML-escaped.
            return html.unescape(snippet)
        return make_snippet(self.body_text(payload))

    def received_date(self, payload: NativePayload) -> datetime | None:
        return parse_epoch_ms(payload.get("internalDate")) or parse_header_date(
            self._headers(payload).get("date")
        )

    def sent_date(self, payload: NativePayload) -> datetime | None:
        return parse_header_date(self._headers(payload).get("date")) or parse_epoch_ms(
            payload.get("internalDate")
        )

    def flags(self, payload: NativePayload, folder_context: str | None) -> MessageFlags:
        labels = self._label_ids(payload)
        return MessageFlags(
            is_read="UNREAD" not in labels,
            is_draft="DRAFT" in labels,
            is_sent="SENT" in labels,
            is_important="IMPORTANT" in labels,
            is_flagged="STARRED" in labels,
        )

    def attachments(self, payload: NativePayload) -> list[Attachment]:
        result: list[Attachment] = []
        for part in _walk_parts(payload.get("payload")):
            filename = part.get("filename")
            if not isinstance(filename, str) or not filename:
                continue
            body = part.get("body") or {}
            result.append(
                Attachment(
                    id=as_str(body.get("attachmentId")),
                    filename=filename,
                    mime_type=as_str(part.get("mimeType")),
                    size_bytes=int(body.get("size") or 0),
                )
            )
        return result

    def labels(self, payload: NativePayload) -> set[str]:
        return set(self._label_ids(payload))

    def category_input(self, payload: NativePayload, folder_context: str | None) -> list[str]:
        labels = self._label_ids(payload)
        if not labels and folder_context:
            return [folder_context]
        return labels

    def version(self, payload: NativePayload) -> str | None:
        return as_str(payload.get("historyId"))

    def size_bytes(self, payload: NativePayload) -> int:
        try:
            return max(0, int(payload.get("sizeEstimate") or 0))
        except (TypeError, ValueError):
            return 0
