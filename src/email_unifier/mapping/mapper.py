"""Native payload -> canonical record mapping.

The mapper is a pure transform: it never calls storage or a provider
client. Identical input yields identical output except for
``sync_meta.last_synced``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

import structlog

from email_unifier.classification import CategoryClassifier
from email_unifier.exceptions import MalformedPayloadError
from email_unifier.mapping.threads import aggregate_thread
from email_unifier.models import Provider, SyncMeta, UnifiedEmail, UnifiedThread
from email_unifier.providers import get_adapter
from email_unifier.threads import ThreadIdentityResolver, ThreadSignals

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CanonicalMapper:
    """Converts provider-native payloads into canonical records."""

    def __init__(
        self,
        classifier: CategoryClassifier | None = None,
        resolver: ThreadIdentityResolver | None = None,
        *,
        no_subject_placeholder: str = "(No Subject)",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.classifier = classifier or CategoryClassifier()
        self.resolver = resolver or ThreadIdentityResolver()
        self.no_subject_placeholder = no_subject_placeholder
        self._clock = clock

    def to_unified_email(
        self,
        payload: Any,
        provider: Provider | str,
        folder_context: str | None = None,
        thread_context: dict[str, Any] | None = None,
        *,
        account_id: str = "",
    ) -> UnifiedEmail:
        """Map one native message payload to a :class:`UnifiedEmail`.

        Args:
            payload: Provider-native message JSON.
            provider: Provider the payload came from.
            folder_context: Folder the message was fetched from, if known.
            thread_context: Native thread payload the message belongs to, if
                known. Supplies the thread id when the message lacks one.
            account_id: Account the message was synced for.

        Returns:
            The canonical record, with ``thread_id`` already resolved.

        Raises:
            MalformedPayloadError: If the payload is not a mapping or has no
                provider id.
        """

        if not isinstance(payload, dict):
            raise MalformedPayloadError(f"{provider} payload is not an object")

        provider = Provider(provider)
        adapter = get_adapter(provider)

        native_id = adapter.native_id(payload)
        if not native_id:
            raise MalformedPayloadError(f"{provider.value} payload has no message id")

        provider_thread_id = adapter.thread_id(payload)
        if not provider_thread_id and isinstance(thread_context, dict):
            provider_thread_id = adapter.native_thread_id(thread_context)

        subject = adapter.subject(payload)
        if not subject or not subject.strip():
            subject = self.no_subject_placeholder

        signals = ThreadSignals(
            id=native_id,
            message_id=adapter.message_id(payload) or native_id,
            subject=subject,
            provider_thread_id=provider_thread_id,
            in_reply_to=adapter.in_reply_to(payload),
            references=tuple(adapter.references(payload)),
        )
        thread_id = self.resolver.resolve_thread_id(signals, provider)

        flags = adapter.flags(payload, folder_context)
        # Each adapter decides whether the folder context outranks the payload.
        category_names = adapter.category_input(payload, folder_context)
        category = self.classifier.classify(category_names, provider)

        return UnifiedEmail(
            id=native_id,
            account_id=account_id,
            provider=provider,
            message_id=signals.message_id,
            thread_id=thread_id,
            provider_thread_id=provider_thread_id,
            in_reply_to=signals.in_reply_to,
            references=list(signals.references),
            subject=subject,
            body_text=adapter.body_text(payload),
            body_html=adapter.body_html(payload),
            snippet=adapter.snippet(payload),
            from_addrs=adapter.sender(payload),
            to_addrs=adapter.recipients(payload, "to"),
            cc_addrs=adapter.recipients(payload, "cc"),
            bcc_addrs=adapter.recipients(payload, "bcc"),
            reply_to=adapter.recipients(payload, "reply_to"),
            received_date=adapter.received_date(payload),
            sent_date=adapter.sent_date(payload),
            is_read=flags.is_read,
            is_draft=flags.is_draft,
            is_sent=flags.is_sent,
            is_important=flags.is_important,
            is_flagged=flags.is_flagged,
            has_attachments=adapter.has_attachments(payload),
            attachments=adapter.attachments(payload),
            size_bytes=adapter.size_bytes(payload),
            category=category,
            labels=adapter.labels(payload),
            folder=adapter.folder(payload, folder_context),
            sync_meta=SyncMeta(
                last_synced=self._clock(),
                provider=provider,
                version=adapter.version(payload),
            ),
        )

    def to_unified_thread(
        self,
        thread_payload: Any,
        provider: Provider | str,
        member_emails: Iterable[UnifiedEmail] | None = None,
        *,
        account_id: str = "",
    ) -> UnifiedThread:
        """Map a native thread payload to a :class:`UnifiedThread`.

        When ``member_emails`` is given the aggregates are derived from them;
        otherwise the messages embedded in the thread payload are mapped
        first. Malformed embedded messages are skipped.

        Raises:
            MalformedPayloadError: If no thread id can be determined.
        """

        if not isinstance(thread_payload, dict):
            raise MalformedPayloadError(f"{provider} thread payload is not an object")

        provider = Provider(provider)
        adapter = get_adapter(provider)

        if member_emails is None:
            members: list[UnifiedEmail] = []
            for message in adapter.thread_messages(thread_payload):
                try:
                    members.append(
                        self.to_unified_email(
                            message,
                            provider,
                            thread_context=thread_payload,
                            account_id=account_id,
                        )
                    )
                except MalformedPayloadError as exc:
                    logger.warning(
                        "thread_member_skipped", provider=provider.value, error=str(exc)
                    )
        else:
            members = list(member_emails)

        thread_id = adapter.native_thread_id(thread_payload)
        if not thread_id and members:
            thread_id = members[0].thread_id
        if not thread_id:
            raise MalformedPayloadError(f"{provider.value} thread payload has no thread id")

        return aggregate_thread(
            thread_id,
            members,
            account_id=account_id or None,
            provider=provider,
            no_subject_placeholder=self.no_subject_placeholder,
        )
