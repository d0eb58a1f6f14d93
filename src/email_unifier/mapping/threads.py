"""Thread aggregates re-derived from the current member set."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from email_unifier.models import Provider, UnifiedEmail, UnifiedThread, UniversalCategory
from email_unifier.parsing import dedupe_addresses, normalize_subject

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _message_date(email: UnifiedEmail) -> datetime | None:
    return email.received_date or email.sent_date


def _ordering_key(email: UnifiedEmail) -> tuple[datetime, str]:
    return (_message_date(email) or _EPOCH, email.id)


def aggregate_thread(
    thread_id: str,
    members: Iterable[UnifiedEmail],
    *,
    account_id: str | None = None,
    provider: Provider | None = None,
    no_subject_placeholder: str = "(No Subject)",
) -> UnifiedThread:
    """Materialize a :class:`UnifiedThread` from its member messages.

    Members are ordered by received date (sent date when missing), then id,
    so the result does not depend on the order members are passed in.
    """

    ordered = sorted(members, key=_ordering_key)
    dates = [d for d in (_message_date(m) for m in ordered) if d is not None]

    earliest = ordered[0] if ordered else None
    latest = ordered[-1] if ordered else None
    subject = earliest.subject if earliest else no_subject_placeholder

    participants = dedupe_addresses(
        addr for m in ordered for addr in (*m.from_addrs, *m.to_addrs, *m.cc_addrs)
    )
    labels: set[str] = set()
    for m in ordered:
        labels |= m.labels
    unread = sum(1 for m in ordered if not m.is_read)

    return UnifiedThread(
        thread_id=thread_id,
        account_id=account_id if account_id is not None else (earliest.account_id if earliest else ""),
        provider=provider or (earliest.provider if earliest else None),
        subject=subject,
        clean_subject=normalize_subject(subject),
        participants=participants,
        message_count=len(ordered),
        unread_count=unread,
        has_unread=unread > 0,
        is_important=any(m.is_important for m in ordered),
        is_flagged=any(m.is_flagged for m in ordered),
        has_attachments=any(m.has_attachments for m in ordered),
        first_message_date=min(dates) if dates else None,
        last_activity=max(dates) if dates else None,
        labels=labels,
        category=latest.category if latest else UniversalCategory.OTHER.value,
    )
