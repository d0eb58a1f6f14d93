"""Gmail API transport.

Cursor tokens are opaque to the sync engine but have three shapes here:

- ``None``: start a full listing of the label.
- ``list:<history_id>:<page_token>``: continue a full listing. The history
  id is the mailbox position captured when the listing started.
- ``history:<history_id>[:<page_token>]``: incremental changes since that
  history id, via ``users.history.list``.

A finished listing hands over to ``history:<id>`` so later runs are
incremental.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
from googleapiclient.errors import HttpError

from email_unifier.config import Settings
from email_unifier.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ProviderUnavailableError,
)
from email_unifier.providers import FetchPage
from email_unifier.utils import retry_on_failure

logger = structlog.get_logger()

LIST_CURSOR_PREFIX = "list"
HISTORY_CURSOR_PREFIX = "history"

_TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})
_HISTORY_TYPES = ["messageAdded", "labelAdded", "labelRemoved"]


def _status(exc: HttpError) -> int | None:
    status = getattr(getattr(exc, "resp", None), "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, HttpError):
        return _status(exc) in _TRANSIENT_STATUSES
    return isinstance(exc, OSError)


def format_cursor(kind: str, history_id: str, page_token: str | None = None) -> str:
    if page_token:
        return f"{kind}:{history_id}:{page_token}"
    return f"{kind}:{history_id}"


def parse_cursor(cursor_token: str | None) -> tuple[str | None, str | None, str | None]:
    """Split a cursor into ``(kind, history_id, page_token)``."""

    if not cursor_token:
        return None, None, None
    kind, _, rest = cursor_token.partition(":")
    if kind not in (LIST_CURSOR_PREFIX, HISTORY_CURSOR_PREFIX) or not rest:
        raise ValueError(f"Invalid Gmail cursor: {cursor_token!r}")
    history_id, _, page_token = rest.partition(":")
    if not history_id:
        raise ValueError(f"Invalid Gmail cursor: {cursor_token!r}")
    return kind, history_id, page_token or None


class GmailClient:
    """Gmail :class:`~email_unifier.providers.ProviderClient`.

    The sync category is used as the Gmail label id to list.
    """

    def __init__(self, settings: Settings | None = None, service: Any | None = None) -> None:
        """Initialize Gmail client.

        Args:
            settings: Application settings. If None, uses default settings.
            service: Pre-built Gmail API resource. Skips OAuth when given.
        """
        from email_unifier.config import get_settings

        self.settings = settings or get_settings()
        self._service: Any | None = service
        self._execute = retry_on_failure(
            max_retries=self.settings.max_retries,
            retry_if=_is_transient,
        )(self._execute_once)
        logger.info("gmail_client_initialized")

    def authenticate(self) -> None:
        """Authenticate with Gmail API using OAuth2.

        Raises:
            ConfigurationError: If the credentials file is missing.
            AuthenticationError: If authentication fails.
        """

        if self._service is not None:
            return

        credentials_path = Path(self.settings.gmail_credentials_path)
        token_path = Path(self.settings.gmail_token_path)
        scope = self.settings.gmail_scope

        if not credentials_path.exists():
            raise ConfigurationError(f"Gmail credentials file not found: {credentials_path}.")

        logger.info(
            "gmail_authentication_started",
            credentials_path=str(credentials_path),
            token_path=str(token_path),
            scope=scope,
        )

        try:
            self._service = self._build_service(credentials_path, token_path, scope)
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_authentication_failed", error=str(exc))
            raise AuthenticationError(str(exc)) from exc

        logger.info("gmail_authentication_completed")

    def fetch_page(
        self,
        account_id: str,
        category: str,
        cursor_token: str | None,
        page_size: int,
    ) -> FetchPage:
        """Fetch one page of full-format messages for the ``category`` label.

        Raises:
            AuthenticationError: If :meth:`authenticate` has not succeeded.
            ProviderUnavailableError: If the API request fails.
        """

        self._ensure_authenticated()
        kind, history_id, page_token = parse_cursor(cursor_token)

        logger.info(
            "gmail_fetch_page",
            account_id=account_id,
            label=category,
            mode=kind or "start",
            page_size=page_size,
        )

        try:
            if kind == HISTORY_CURSOR_PREFIX and history_id is not None:
                return self._history_page(category, history_id, page_token, page_size)
            return self._list_page(category, history_id, page_token, page_size)
        except HttpError as exc:
            logger.exception("gmail_fetch_page_failed", account_id=account_id, error=str(exc))
            raise ProviderUnavailableError(
                str(exc), account_id=account_id, category=category, cursor_token=cursor_token
            ) from exc

    def _ensure_authenticated(self) -> Any:
        if self._service is None:
            raise AuthenticationError(
                "Gmail client is not authenticated. Call GmailClient.authenticate() first."
            )
        return self._service

    def _list_page(
        self,
        label: str,
        history_id: str | None,
        page_token: str | None,
        page_size: int,
    ) -> FetchPage:
        service = self._ensure_authenticated()
        user_id = self.settings.gmail_user_id

        if history_id is None:
            profile = self._execute(service.users().getProfile(userId=user_id))
            history_id = str(profile["historyId"])

        response = self._execute(
            service.users()
            .messages()
            .list(userId=user_id, labelIds=[label], maxResults=page_size, pageToken=page_token)
        )
        ids = [m["id"] for m in response.get("messages", []) or [] if m.get("id")]
        items = self._get_messages(ids)

        next_token = response.get("nextPageToken")
        if next_token:
            return FetchPage(
                items=items,
                next_cursor=format_cursor(LIST_CURSOR_PREFIX, history_id, next_token),
                has_more=True,
            )
        return FetchPage(
            items=items,
            next_cursor=format_cursor(HISTORY_CURSOR_PREFIX, history_id),
            has_more=False,
        )

    def _history_page(
        self,
        label: str,
        start_history_id: str,
        page_token: str | None,
        page_size: int,
    ) -> FetchPage:
        service = self._ensure_authenticated()
        user_id = self.settings.gmail_user_id

        try:
            response = self._execute(
                service.users()
                .history()
                .list(
                    userId=user_id,
                    startHistoryId=start_history_id,
                    labelId=label,
                    historyTypes=_HISTORY_TYPES,
                    maxResults=page_size,
                    pageToken=page_token,
                )
            )
        except HttpError as exc:
            if _status(exc) != 404:
                raise
            # The start id is outside Gmail's retention window.
            logger.warning("gmail_history_expired", start_history_id=start_history_id)
            return self._list_page(label, None, None, page_size)

        ids: dict[str, None] = {}
        for record in response.get("history", []) or []:
            for change in ("messagesAdded", "labelsAdded", "labelsRemoved"):
                for entry in record.get(change, []) or []:
                    message_id = (entry.get("message") or {}).get("id")
                    if message_id:
                        ids[message_id] = None
        items = self._get_messages(list(ids))

        next_token = response.get("nextPageToken")
        if next_token:
            return FetchPage(
                items=items,
                next_cursor=format_cursor(HISTORY_CURSOR_PREFIX, start_history_id, next_token),
                has_more=True,
            )
        latest = str(response.get("historyId") or start_history_id)
        return FetchPage(
            items=items,
            next_cursor=format_cursor(HISTORY_CURSOR_PREFIX, latest),
            has_more=False,
        )

    def _get_messages(self, ids: list[str]) -> list[dict[str, Any]]:
        service = self._ensure_authenticated()
        user_id = self.settings.gmail_user_id
        messages: list[dict[str, Any]] = []
        for message_id in ids:
            try:
                messages.append(
                    self._execute(
                        service.users()
                        .messages()
                        .get(userId=user_id, id=message_id, format="full")
                    )
                )
            except HttpError as exc:
                if _status(exc) != 404:
                    raise
                logger.info("gmail_message_gone", message_id=message_id)
        return messages

    @staticmethod
    def _execute_once(request: Any) -> Any:
        return request.execute()

    def _build_service(self, credentials_path: Path, token_path: Path, scope: str) -> Any:
        # Imported lazily to keep import-time cost low and tests fast.
        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials
        from google_auth_oauthlib.flow import InstalledAppFlow
        from googleapiclient.discovery import build

        creds: Credentials | None = None
        if token_path.exists():
            creds = Credentials.from_authorized_user_file(str(token_path), scopes=[scope])

        if creds is not None and creds.expired and creds.refresh_token:
            creds.refresh(Request())

        if creds is None or not creds.valid:
            flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), scopes=[scope])
            creds = flow.run_local_server(port=0)
            token_path.parent.mkdir(parents=True, exist_ok=True)
            token_path.write_text(creds.to_json(), encoding="utf-8")

        # cache_discovery=False prevents writing discovery docs to disk.
        return build("gmail", "v1", credentials=creds, cache_discovery=False)
