"""Conversation identity resolution.

Resolution is structural and pure. Rules, first applicable wins:

1. A provider-native thread/conversation id, verbatim.
2. The first ``References`` entry (the chain root), hashed.
3. The ``In-Reply-To`` reference, hashed.
4. The message's own Message-ID, hashed, which makes a message with no
   threading signal the root of its own thread. Replies that reference it
   hash to the same id. Without a real Message-ID the normalized subject and
   native id are hashed instead.

When both ``References`` and ``In-Reply-To`` are present the References root
is used so that every reply in a deep chain lands on the same id: References
names the chain root, In-Reply-To only the direct parent.

The reply-subject correction (subject + sender lookup against stored threads)
needs storage and is applied by the orchestrator; this module only decides
whether a resolution is eligible for it.
"""

from __future__ import annotations

import hashlib
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from email_unifier.models import Provider
from email_unifier.parsing import clean_message_id, has_reply_marker, normalize_subject
from email_unifier.providers import get_adapter

THREAD_ID_PREFIX = "conv_"


class ThreadSource(str, Enum):
    """Which rule produced a thread id."""

    NATIVE = "native"
    REFERENCES = "references"
    IN_REPLY_TO = "in_reply_to"
    MESSAGE_ID = "message_id"
    SUBJECT = "subject"


FALLBACK_SOURCES = frozenset({ThreadSource.MESSAGE_ID, ThreadSource.SUBJECT})


class ThreadSignalsLike(Protocol):
    id: str
    message_id: str
    provider_thread_id: str | None
    in_reply_to: str | None
    references: Sequence[str]
    subject: str


@dataclass(frozen=True)
class ThreadSignals:
    """The fields of a message that thread resolution looks at."""

    id: str
    message_id: str
    subject: str = ""
    provider_thread_id: str | None = None
    in_reply_to: str | None = None
    references: Sequence[str] = field(default_factory=tuple)


@dataclass(frozen=True)
class ThreadResolution:
    thread_id: str
    source: ThreadSource

    @property
    def is_fallback(self) -> bool:
        return self.source in FALLBACK_SOURCES


def stable_hash(value: str) -> str:
    """Deterministic thread id for ``value``, stable across processes."""
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()
    return f"{THREAD_ID_PREFIX}{digest[:16]}"


class ThreadIdentityResolver:
    """Assigns canonical thread ids from structural message signals."""

    def resolve(self, message: ThreadSignalsLike, provider: Provider | str) -> ThreadResolution:
        """Resolve a thread id and report which rule produced it."""

        native = (message.provider_thread_id or "").strip()
        if native and self._has_native_threading(provider):
            return ThreadResolution(native, ThreadSource.NATIVE)

        references = [r for r in (clean_message_id(x) for x in message.references or ()) if r]
        if references:
            return ThreadResolution(stable_hash(references[0]), ThreadSource.REFERENCES)

        in_reply_to = clean_message_id(message.in_reply_to)
        if in_reply_to:
            return ThreadResolution(stable_hash(in_reply_to), ThreadSource.IN_REPLY_TO)

        own_id = clean_message_id(message.message_id)
        if own_id and own_id != message.id:
            return ThreadResolution(stable_hash(own_id), ThreadSource.MESSAGE_ID)

        # No RFC Message-ID: the native id keeps the message isolated.
        key = f"{normalize_subject(message.subject)}\x00{message.id}"
        return ThreadResolution(stable_hash(key), ThreadSource.SUBJECT)

    def _has_native_threading(self, provider: Provider | str) -> bool:
        try:
            return get_adapter(provider).native_threading
        except ValueError:
            return False

    def resolve_thread_id(self, message: ThreadSignalsLike, provider: Provider | str) -> str:
        return self.resolve(message, provider).thread_id

    def wants_subject_correction(
        self, message: ThreadSignalsLike, resolution: ThreadResolution
    ) -> bool:
        """Whether the subject + sender lookup should run for this message.

        Only messages that fell through to the fallback rules and whose
        subject starts with a reply marker are eligible.
        """
        return resolution.is_fallback and has_reply_marker(message.subject)
