"""Custom exceptions for Email Unifier."""

from __future__ import annotations


class EmailUnifierError(Exception):
    """Base exception for all Email Unifier errors."""


class SyncError(EmailUnifierError):
    """Error surfaced to the scheduler for one (account, category) key.

    Carries enough context for a safe retry: the cursor token is the value
    that was in effect before the failing page, so re-running resumes there.
    """

    def __init__(
        self,
        message: str,
        *,
        account_id: str | None = None,
        category: str | None = None,
        cursor_token: str | None = None,
    ) -> None:
        super().__init__(message)
        self.account_id = account_id
        self.category = category
        self.cursor_token = cursor_token


class ProviderUnavailableError(SyncError):
    """Raised when a provider cannot be reached. Retryable by the scheduler."""


class StorageFailureError(SyncError):
    """Raised when the persistence layer is unavailable."""


class SyncInProgressError(SyncError):
    """Raised when a run is triggered for a key that already has one in flight."""


class MalformedPayloadError(EmailUnifierError):
    """Raised when a native payload lacks even a provider id."""


class InvalidTransitionError(EmailUnifierError):
    """Raised when the sync state machine receives an invalid event."""


class ConfigurationError(EmailUnifierError):
    """Exception raised for configuration related errors."""


class AuthenticationError(EmailUnifierError):
    """Exception raised for authentication failures."""
