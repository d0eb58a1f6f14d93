"""Persistence backends for canonical records."""

from email_unifier.storage.base import Storage
from email_unifier.storage.memory import InMemoryStorage
from email_unifier.storage.sqlite import SqliteStorage, StorageStats

__all__ = ["InMemoryStorage", "SqliteStorage", "Storage", "StorageStats"]
