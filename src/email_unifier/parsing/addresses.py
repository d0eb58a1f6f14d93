"""Helpers for parsing From/To/Cc header strings into structured mailboxes."""

from __future__ import annotations

from collections.abc import Iterable
from email.utils import getaddresses

from email_unifier.models import EmailAddress


def _clean_name(name: str) -> str | None:
    name = name.strip().strip('"').strip()
    return name or None


def parse_address_list(value: str | Iterable[str] | None) -> list[EmailAddress]:
    """Parse a free-form address header (or a list of them).

    Entries without an address part are dropped; order is preserved.

    Args:
        value: Raw header value such as ``'Ann <ann@x.io>, bob@y.io'`` or a
            list of such values (SES common headers are lists).

    Returns:
        Parsed mailboxes.
    """

    if not value:
        return []
    raw = [value] if isinstance(value, str) else [v for v in value if isinstance(v, str)]

    result: list[EmailAddress] = []
    # getaddresses returns list[(name, addr)]
    for name, addr in getaddresses(raw):
        addr = addr.strip()
        if not addr:
            continue
        result.append(EmailAddress(email=addr, name=_clean_name(name)))
    return result


def parse_address(value: str | None) -> EmailAddress | None:
    """Parse a single mailbox, returning the first one found."""

    addresses = parse_address_list(value)
    return addresses[0] if addresses else None


def dedupe_addresses(addresses: Iterable[EmailAddress]) -> list[EmailAddress]:
    """Deduplicate by case-insensitive email, keeping the first seen entry.

    A later entry only contributes a display name when the first had none.
    """

    seen: dict[str, EmailAddress] = {}
    for addr in addresses:
        key = addr.email.lower()
        current = seen.get(key)
        if current is None:
            seen[key] = addr
        elif current.name is None and addr.name:
            seen[key] = EmailAddress(email=current.email, name=addr.name)
    return list(seen.values())
