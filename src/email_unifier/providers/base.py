"""Provider seams: payload adapters and the transport client protocol.

Only adapters inspect native payload shapes. Everything downstream of the
mapper works with canonical records.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, NamedTuple, Protocol

from email_unifier.models import Attachment, EmailAddress, Provider

NativePayload = dict[str, Any]


class MessageFlags(NamedTuple):
    is_read: bool
    is_draft: bool
    is_sent: bool
    is_important: bool
    is_flagged: bool


@dataclass(frozen=True)
class FetchPage:
    """One page returned by a provider client."""

    items: list[NativePayload] = field(default_factory=list)
    next_cursor: str | None = None
    has_more: bool = False


class ProviderClient(Protocol):
    """Transport collaborator returning provider-native payloads."""

    def fetch_page(
        self,
        account_id: str,
        category: str,
        cursor_token: str | None,
        page_size: int,
    ) -> FetchPage: ...


class ProviderAdapter(ABC):
    """Extracts canonical field values from one provider's native payloads.

    Adapters are stateless and pure; one instance per provider is shared.
    """

    provider: Provider
    # Whether the provider supplies a stable thread/conversation id.
    native_threading: bool = False

    @abstractmethod
    def native_id(self, payload: NativePayload) -> str | None: ...

    @abstractmethod
    def message_id(self, payload: NativePayload) -> str | None: ...

    @abstractmethod
    def thread_id(self, payload: NativePayload) -> str | None: ...

    @abstractmethod
    def in_reply_to(self, payload: NativePayload) -> str | None: ...

    @abstractmethod
    def references(self, payload: NativePayload) -> list[str]: ...

    @abstractmethod
    def subject(self, payload: NativePayload) -> str | None: ...

    @abstractmethod
    def sender(self, payload: NativePayload) -> list[EmailAddress]: ...

    @abstractmethod
    def recipients(self, payload: NativePayload, kind: str) -> list[EmailAddress]:
        """Recipients for ``kind`` in ``{"to", "cc", "bcc", "reply_to"}``."""

    @abstractmethod
    def body_text(self, payload: NativePayload) -> str: ...

    @abstractmethod
    def body_html(self, payload: NativePayload) -> str | None: ...

    @abstractmethod
    def snippet(self, payload: NativePayload) -> str: ...

    @abstractmethod
    def received_date(self, payload: NativePayload) -> datetime | None: ...

    @abstractmethod
    def sent_date(self, payload: NativePayload) -> datetime | None: ...

    @abstractmethod
    def flags(self, payload: NativePayload, folder_context: str | None) -> MessageFlags: ...

    @abstractmethod
    def attachments(self, payload: NativePayload) -> list[Attachment]: ...

    @abstractmethod
    def labels(self, payload: NativePayload) -> set[str]: ...

    @abstractmethod
    def category_input(self, payload: NativePayload, folder_context: str | None) -> list[str]:
        """Label or folder names handed to the category classifier."""

    def version(self, payload: NativePayload) -> str | None:
        return None

    def size_bytes(self, payload: NativePayload) -> int:
        return 0

    def folder(self, payload: NativePayload, folder_context: str | None) -> str | None:
        return folder_context

    def has_attachments(self, payload: NativePayload) -> bool:
        return bool(self.attachments(payload))

    def thread_messages(self, thread_payload: NativePayload) -> list[NativePayload]:
        """Native messages embedded in a native thread payload."""
        messages = thread_payload.get("messages") or []
        return [m for m in messages if isinstance(m, dict)]

    def native_thread_id(self, thread_payload: NativePayload) -> str | None:
        value = thread_payload.get("id")
        return str(value) if value else None


def header_map(headers: Any) -> dict[str, str]:
    """Case-insensitive ``{name: value}`` view over a list of header dicts.

    Providers can include duplicates; the first occurrence is kept.
    """

    result: dict[str, str] = {}
    if not isinstance(headers, list):
        return result
    for h in headers:
        if not isinstance(h, dict):
            continue
        name = h.get("name")
        value = h.get("value")
        if isinstance(name, str) and isinstance(value, str):
            result.setdefault(name.lower(), value)
    return result


def as_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
