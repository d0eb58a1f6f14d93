"""Date parsing for the three timestamp styles providers use."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

_FRACTION = re.compile(r"(\.\d{6})\d+")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_header_date(value: str | None) -> datetime | None:
    """Parse an RFC 2822 ``Date`` header."""
    if not value:
        return None
    try:
        return _as_utc(parsedate_to_datetime(value))
    except (TypeError, ValueError, OverflowError, IndexError):
        return None


def parse_iso_date(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, allowing a trailing Z and 7-digit fractions."""
    if not value or not isinstance(value, str):
        return None
    raw = value.strip()
    # ISO-8601 parsing: allow trailing Z.
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    raw = _FRACTION.sub(r"\1", raw)
    try:
        return _as_utc(datetime.fromisoformat(raw))
    except ValueError:
        return None


def parse_epoch_ms(value: Any) -> datetime | None:
    """Parse a millisecond epoch timestamp given as int or numeric string."""
    if value is None:
        return None
    try:
        ms = int(value)
    except (TypeError, ValueError):
        return None
    try:
        return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
