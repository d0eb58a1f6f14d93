"""In-process queue fed by the inbound webhook channel.

Notifications are appended per (account, category) and never removed, so
the cursor is simply the offset of the next unread notification.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

import structlog

from email_unifier.exceptions import MalformedPayloadError
from email_unifier.models import SyncKey, UniversalCategory
from email_unifier.providers import FetchPage

logger = structlog.get_logger()


def unwrap_notification(payload: Any) -> Any:
    """Strip an SNS envelope, returning the SES notification it carries."""

    if (
        isinstance(payload, dict)
        and payload.get("Type") == "Notification"
        and isinstance(payload.get("Message"), str)
    ):
        try:
            return json.loads(payload["Message"])
        except json.JSONDecodeError as exc:
            raise MalformedPayloadError(f"SNS message is not JSON: {exc}") from exc
    return payload


class InboundQueueClient:
    """:class:`~email_unifier.providers.ProviderClient` over pushed notifications."""

    def __init__(self) -> None:
        self._queues: dict[SyncKey, list[Any]] = {}
        self._lock = threading.Lock()

    def push(
        self,
        account_id: str,
        payload: Any,
        category: str = UniversalCategory.INBOX.value,
    ) -> int:
        """Append one notification and return its offset.

        Payloads are stored as received (after envelope unwrapping); shape
        problems surface later as skipped messages in the sync summary.
        """

        item = unwrap_notification(payload)
        key = SyncKey(account_id, category)
        with self._lock:
            queue = self._queues.setdefault(key, [])
            queue.append(item)
            offset = len(queue) - 1
        logger.debug("inbound_notification_queued", account_id=account_id, offset=offset)
        return offset

    def load_file(
        self,
        account_id: str,
        path: Path,
        category: str = UniversalCategory.INBOX.value,
    ) -> int:
        """Queue the notification (or list of notifications) stored in ``path``."""

        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise MalformedPayloadError(f"{path} is not valid JSON: {exc}") from exc

        items = data if isinstance(data, list) else [data]
        for item in items:
            self.push(account_id, item, category)
        logger.info("inbound_file_loaded", path=str(path), count=len(items))
        return len(items)

    def pending(self, account_id: str, category: str, cursor_token: str | None = None) -> int:
        with self._lock:
            total = len(self._queues.get(SyncKey(account_id, category), []))
        return max(0, total - _parse_offset(cursor_token))

    def fetch_page(
        self,
        account_id: str,
        category: str,
        cursor_token: str | None,
        page_size: int,
    ) -> FetchPage:
        start = _parse_offset(cursor_token)
        with self._lock:
            queue = self._queues.get(SyncKey(account_id, category), [])
            items = list(queue[start : start + page_size])
            total = len(queue)

        end = start + len(items)
        return FetchPage(items=items, next_cursor=str(end), has_more=end < total)


def _parse_offset(cursor_token: str | None) -> int:
    if not cursor_token:
        return 0
    try:
        return max(0, int(cursor_token))
    except ValueError as exc:
        raise ValueError(f"Invalid inbound cursor: {cursor_token!r}") from exc
