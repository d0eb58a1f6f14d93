"""Configuration management for Email Unifier.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the EMAIL_UNIFIER_ prefix (e.g., EMAIL_UNIFIER_PAGE_SIZE).
    """

    model_config = SettingsConfigDict(
        env_prefix="EMAIL_UNIFIER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Sync engine
    page_size: int = Field(
        default=100,
        ge=1,
        description="Page size used for incremental syncs",
    )
    initial_page_size: int = Field(
        default=50,
        ge=1,
        description="Page size used when a key has no stored cursor (full sync)",
    )
    max_pages_per_run: int = Field(
        default=10,
        ge=1,
        description="Page-count ceiling for one run before yielding back to the scheduler",
    )
    conflict_history_limit: int = Field(
        default=50,
        ge=1,
        description="Maximum number of conflicts kept on a canonical record",
    )
    cursor_history_limit: int = Field(
        default=20,
        ge=1,
        description="Maximum number of past sync summaries kept per cursor",
    )
    thread_cache_size: int = Field(
        default=1000,
        ge=1,
        description="Maximum number of threads kept in the in-process thread cache",
    )
    subject_match_window_days: int = Field(
        default=30,
        ge=0,
        description=(
            "Recency window for the reply-subject correction step. A stored thread is "
            "only reused when its last activity falls within this many days."
        ),
    )
    sync_workers: int = Field(
        default=4,
        ge=1,
        description="Worker threads used when syncing several keys at once",
    )
    no_subject_placeholder: str = Field(
        default="(No Subject)",
        description="Subject assigned to messages that carry none",
    )

    # Storage
    db_path: Path = Field(
        default=Path("email_unifier.sqlite3"),
        description="Path to the SQLite database storing canonical records",
    )

    # Gmail transport
    gmail_credentials_path: Path = Field(
        default=Path("credentials.json"),
        description="Path to Gmail API credentials file",
    )
    gmail_token_path: Path = Field(
        default=Path("token.json"),
        description="Path to Gmail API token file",
    )
    gmail_scope: str = Field(
        default="https://www.googleapis.com/auth/gmail.readonly",
        description="OAuth scope used for Gmail access. Syncing only needs gmail.readonly.",
    )
    gmail_user_id: str = Field(
        default="me",
        description="Gmail user id passed to the API",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    max_retries: int = Field(
        default=3,
        description="Maximum number of retries for failed provider calls",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
