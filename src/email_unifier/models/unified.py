"""Canonical, provider-agnostic message and thread records."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from email_unifier.models import (
    ConflictResolution,
    Provider,
    UniversalCategory,
    is_universal_category,
)


def _coerce_category(value: Any) -> Any:
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, str) and not is_universal_category(value):
        raise ValueError(f"Not a universal category: {value!r}")
    return value


class EmailAddress(BaseModel):
    """A parsed mailbox: email is required, display name is optional."""

    model_config = ConfigDict(frozen=True)

    email: str = Field(min_length=1, description="Email address")
    name: str | None = Field(default=None, description="Display name")


class Attachment(BaseModel):
    """Attachment metadata. Content is never copied into canonical records."""

    id: str | None = Field(default=None, description="Provider attachment id")
    filename: str = Field(description="Attachment file name")
    mime_type: str | None = Field(default=None, description="MIME type")
    size_bytes: int = Field(default=0, ge=0, description="Attachment size in bytes")


class Conflict(BaseModel):
    """A divergence between a stored and a freshly fetched field value."""

    field: str = Field(description="Name of the conflicting field")
    old_value: Any = Field(default=None, description="Previously stored value")
    new_value: Any = Field(default=None, description="Freshly fetched value")
    resolution: ConflictResolution = Field(description="How the conflict was resolved")


class SyncMeta(BaseModel):
    """Sync bookkeeping attached to each canonical message."""

    last_synced: datetime = Field(description="When the record was last produced by a sync")
    provider: Provider = Field(description="Provider the record came from")
    version: str | None = Field(
        default=None, description="Opaque provider version (history id, etag, ...)"
    )
    conflicts: list[Conflict] = Field(
        default_factory=list, description="Recent conflicts, oldest first"
    )


class UnifiedEmail(BaseModel):
    """Canonical message record.

    ``(provider, account_id, id)`` identifies a record; re-ingesting the same
    tuple updates it in place.
    """

    id: str = Field(min_length=1, description="Provider-native message id")
    account_id: str = Field(default="", description="Account the message was synced for")
    provider: Provider = Field(description="Source provider")
    message_id: str = Field(description="RFC Message-ID, falls back to the native id")
    thread_id: str = Field(min_length=1, description="Canonical conversation identity")

    # Structural threading signals, as extracted from the provider payload.
    provider_thread_id: str | None = Field(
        default=None, description="Native thread/conversation id, if the provider has one"
    )
    in_reply_to: str | None = Field(default=None, description="In-Reply-To reference")
    references: list[str] = Field(
        default_factory=list, description="References chain, earliest ancestor first"
    )

    subject: str = Field(description="Subject header")
    body_text: str = Field(default="", description="Plain text body")
    body_html: str | None = Field(default=None, description="HTML body, if any")
    snippet: str = Field(default="", description="Short preview")

    from_addrs: list[EmailAddress] = Field(default_factory=list, description="From mailboxes")
    to_addrs: list[EmailAddress] = Field(default_factory=list, description="To mailboxes")
    cc_addrs: list[EmailAddress] = Field(default_factory=list, description="Cc mailboxes")
    bcc_addrs: list[EmailAddress] = Field(default_factory=list, description="Bcc mailboxes")
    reply_to: list[EmailAddress] = Field(default_factory=list, description="Reply-To mailboxes")

    received_date: datetime | None = Field(
        default=None, description="Receipt instant; authoritative for ordering"
    )
    sent_date: datetime | None = Field(default=None, description="Sent instant")

    is_read: bool = Field(default=False)
    is_draft: bool = Field(default=False)
    is_sent: bool = Field(default=False)
    is_important: bool = Field(default=False)
    is_flagged: bool = Field(default=False)

    has_attachments: bool = Field(default=False)
    attachments: list[Attachment] = Field(default_factory=list)
    size_bytes: int = Field(default=0, ge=0, description="Provider size estimate")

    category: str = Field(
        default=UniversalCategory.OTHER.value, description="Universal category"
    )
    labels: set[str] = Field(
        default_factory=set, description="Provider-native labels/categories, verbatim"
    )
    folder: str | None = Field(default=None, description="Folder context, if any")

    sync_meta: SyncMeta

    @field_validator("category", mode="before")
    @classmethod
    def _check_category(cls, v: Any) -> Any:
        return _coerce_category(v)

    @property
    def sender_email(self) -> str | None:
        """Email address of the first From mailbox."""
        return self.from_addrs[0].email if self.from_addrs else None

    def storage_key(self) -> tuple[str, str, str]:
        """Identity tuple used by storage: ``(provider, account_id, id)``."""
        return (self.provider.value, self.account_id, self.id)


class UnifiedThread(BaseModel):
    """Canonical conversation record, materialized from its member messages."""

    thread_id: str = Field(min_length=1, description="Shared thread id of all members")
    account_id: str = Field(default="", description="Account the thread belongs to")
    provider: Provider | None = Field(default=None, description="Provider of the members")

    subject: str = Field(description="Subject of the earliest member")
    clean_subject: str = Field(default="", description="Normalized subject")
    participants: list[EmailAddress] = Field(
        default_factory=list, description="Deduplicated from/to/cc of all members"
    )

    message_count: int = Field(ge=0, description="Number of member messages")
    unread_count: int = Field(default=0, ge=0)
    has_unread: bool = Field(default=False)
    is_important: bool = Field(default=False)
    is_flagged: bool = Field(default=False)
    has_attachments: bool = Field(default=False)

    first_message_date: datetime | None = Field(default=None)
    last_activity: datetime | None = Field(default=None)

    labels: set[str] = Field(default_factory=set, description="Union of member labels")
    category: str = Field(
        default=UniversalCategory.OTHER.value, description="Category of the latest member"
    )

    @field_validator("category", mode="before")
    @classmethod
    def _check_category(cls, v: Any) -> Any:
        return _coerce_category(v)

    def has_participant(self, email: str) -> bool:
        """Case-insensitive participant membership check."""
        needle = email.strip().lower()
        return any(p.email.lower() == needle for p in self.participants)
