"""Data models for Email Unifier.

This module contains the shared enumerations and re-exports the Pydantic
models for canonical records and sync bookkeeping.
"""

from enum import Enum


class Provider(str, Enum):
    """Mailbox providers whose payloads can be unified."""

    GMAIL = "gmail"
    OUTLOOK = "outlook"
    # Webhook/notification based inbound channel (SES notification shape).
    SES = "ses"


class UniversalCategory(str, Enum):
    """Universal category enumeration.

    Custom provider labels and folders are represented as ``CUSTOM:<name>``
    strings rather than enum members, see :func:`custom_category`.
    """

    INBOX = "INBOX"
    SENT = "SENT"
    DRAFT = "DRAFT"
    TRASH = "TRASH"
    SPAM = "SPAM"
    IMPORTANT = "IMPORTANT"
    STARRED = "STARRED"
    ARCHIVE = "ARCHIVE"
    PERSONAL = "PERSONAL"
    SOCIAL = "SOCIAL"
    PROMOTIONS = "PROMOTIONS"
    UPDATES = "UPDATES"
    FORUMS = "FORUMS"
    OTHER = "OTHER"


CUSTOM_CATEGORY_PREFIX = "CUSTOM:"


def custom_category(name: str) -> str:
    """Return the universal category for an unmatched provider label/folder."""
    return f"{CUSTOM_CATEGORY_PREFIX}{name}"


def is_universal_category(value: str) -> bool:
    """Whether ``value`` is a member of the universal category vocabulary."""
    if value.startswith(CUSTOM_CATEGORY_PREFIX):
        return len(value) > len(CUSTOM_CATEGORY_PREFIX)
    return value in UniversalCategory._value2member_map_


class ConflictResolution(str, Enum):
    """How a detected field conflict was resolved."""

    NEWER_WINS = "newer_wins"
    MERGE = "merge"


class SyncMode(str, Enum):
    """Sync trigger mode."""

    FULL = "full"
    INCREMENTAL = "incremental"


from email_unifier.models.sync import (  # noqa: E402
    SyncCursor,
    SyncHistoryEntry,
    SyncKey,
    SyncSummary,
)
from email_unifier.models.unified import (  # noqa: E402
    Attachment,
    Conflict,
    EmailAddress,
    SyncMeta,
    UnifiedEmail,
    UnifiedThread,
)

__all__ = [
    "Attachment",
    "CUSTOM_CATEGORY_PREFIX",
    "Conflict",
    "ConflictResolution",
    "EmailAddress",
    "Provider",
    "SyncCursor",
    "SyncHistoryEntry",
    "SyncKey",
    "SyncMeta",
    "SyncMode",
    "SyncSummary",
    "UnifiedEmail",
    "UnifiedThread",
    "UniversalCategory",
    "custom_category",
    "is_universal_category",
]
