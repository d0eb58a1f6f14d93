"""Amazon SES inbound notifications delivered through the webhook channel.

The notification carries parsed common headers, the raw header list and,
for SNS actions configured with content, the raw MIME message.
"""

from __future__ import annotations

import email
import email.policy
from datetime import datetime
from email.message import EmailMessage as MimeMessage
from typing import Any

from email_unifier.models import Attachment, EmailAddress, Provider
from email_unifier.parsing import (
    clean_message_id,
    parse_address_list,
    parse_header_date,
    parse_iso_date,
    parse_references,
)
from email_unifier.parsing.bodies import html_to_text, make_snippet
from email_unifier.providers.base import (
    MessageFlags,
    NativePayload,
    ProviderAdapter,
    as_str,
    header_map,
)

_RECIPIENT_FIELDS = {"to": "to", "cc": "cc", "bcc": "bcc", "reply_to": "replyTo"}


class SesAdapter(ProviderAdapter):
    provider = Provider.SES
    native_threading = False

    def _mail(self, payload: NativePayload) -> dict[str, Any]:
        mail = payload.get("mail")
        return mail if isinstance(mail, dict) else {}

    def _common(self, payload: NativePayload) -> dict[str, Any]:
        common = self._mail(payload).get("commonHeaders")
        return common if isinstance(common, dict) else {}

    def _headers(self, payload: NativePayload) -> dict[str, str]:
        return header_map(self._mail(payload).get("headers"))

    def _mime(self, payload: NativePayload) -> MimeMessage | None:
        content = payload.get("content")
        if not isinstance(content, str) or not content:
            return None
        return email.message_from_string(content, policy=email.policy.default)

    def _mime_body(self, payload: NativePayload, subtype: str) -> str | None:
        message = self._mime(payload)
        if message is None:
            return None
        part = message.get_body(preferencelist=(subtype,))
        if part is None:
            return None
        try:
            return part.get_content()
        except (LookupError, ValueError):
            return None

    def _is_spam(self, payload: NativePayload) -> bool:
        receipt = payload.get("receipt") or {}
        verdict = receipt.get("spamVerdict") if isinstance(receipt, dict) else None
        return isinstance(verdict, dict) and str(verdict.get("status", "")).upper() == "FAIL"

    def native_id(self, payload: NativePayload) -> str | None:
        return as_str(self._mail(payload).get("messageId"))

    def message_id(self, payload: NativePayload) -> str | None:
        return clean_message_id(self._common(payload).get("messageId")) or clean_message_id(
            self._headers(payload).get("message-id")
        )

    def thread_id(self, payload: NativePayload) -> str | None:
        return None

    def in_reply_to(self, payload: NativePayload) -> str | None:
        return clean_message_id(self._headers(payload).get("in-reply-to"))

    def references(self, payload: NativePayload) -> list[str]:
        return parse_references(self._headers(payload).get("references"))

    def subject(self, payload: NativePayload) -> str | None:
        subject = self._common(payload).get("subject")
        if isinstance(subject, str):
            return subject
        return self._headers(payload).get("subject")

    def sender(self, payload: NativePayload) -> list[EmailAddress]:
        parsed = parse_address_list(self._common(payload).get("from"))
        if parsed:
            return parsed
        return parse_address_list(as_str(self._mail(payload).get("source")))

    def recipients(self, payload: NativePayload, kind: str) -> list[EmailAddress]:
        return parse_address_list(self._common(payload).get(_RECIPIENT_FIELDS[kind]))

    def body_text(self, payload: NativePayload) -> str:
        text = self._mime_body(payload, "plain")
        if text is not None:
            return text
        return html_to_text(self._mime_body(payload, "html"))

    def body_html(self, payload: NativePayload) -> str | None:
        return self._mime_body(payload, "html")

    def snippet(self, payload: NativePayload) -> str:
        return make_snippet(self.body_text(payload))

    def received_date(self, payload: NativePayload) -> datetime | None:
        return parse_iso_date(self._mail(payload).get("timestamp")) or self.sent_date(payload)

    def sent_date(self, payload: NativePayload) -> datetime | None:
        date = self._common(payload).get("date")
        return parse_header_date(date if isinstance(date, str) else None)

    def flags(self, payload: NativePayload, folder_context: str | None) -> MessageFlags:
        # Inbound mail is unread on arrival and never a draft or sent item.
        return MessageFlags(
            is_read=False,
            is_draft=False,
            is_sent=False,
            is_important=False,
            is_flagged=False,
        )

    def attachments(self, payload: NativePayload) -> list[Attachment]:
        message = self._mime(payload)
        if message is None:
            return []
        result: list[Attachment] = []
        for part in message.iter_attachments():
            filename = part.get_filename()
            if not filename:
                continue
            raw = part.get_payload(decode=True) or b""
            result.append(
                Attachment(
                    id=clean_message_id(part.get("Content-ID")),
                    filename=filename,
                    mime_type=part.get_content_type(),
                    size_bytes=len(raw),
                )
            )
        return result

    def labels(self, payload: NativePayload) -> set[str]:
        return {"SPAM"} if self._is_spam(payload) else set()

    def category_input(self, payload: NativePayload, folder_context: str | None) -> list[str]:
        if self._is_spam(payload):
            return ["SPAM"]
        return [folder_context or "INBOX"]

    def size_bytes(self, payload: NativePayload) -> int:
        content = payload.get("content")
        return len(content.encode("utf-8")) if isinstance(content, str) else 0
