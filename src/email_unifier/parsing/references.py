"""Message-ID reference parsing (In-Reply-To / References headers)."""

from __future__ import annotations

import re
from collections.abc import Iterable

_BRACKETED = re.compile(r"<([^<>]+)>")


def clean_message_id(value: str | None) -> str | None:
    """Strip angle brackets and surrounding whitespace from a Message-ID."""
    if not value or not isinstance(value, str):
        return None
    match = _BRACKETED.search(value)
    cleaned = match.group(1) if match else value
    cleaned = cleaned.replace("<", "").replace(">", "").strip()
    return cleaned or None


def parse_references(value: str | Iterable[str] | None) -> list[str]:
    """Split a References header (or list) into ordered, cleaned ids.

    Bracketed ids are preferred; a header without brackets is split on
    whitespace. Duplicates are dropped, keeping the first occurrence.
    """

    if not value:
        return []
    parts = [value] if isinstance(value, str) else [v for v in value if isinstance(v, str)]

    ids: list[str] = []
    for part in parts:
        found = _BRACKETED.findall(part)
        tokens = found if found else part.split()
        for token in tokens:
            cleaned = clean_message_id(token)
            if cleaned and cleaned not in ids:
                ids.append(cleaned)
    return ids
