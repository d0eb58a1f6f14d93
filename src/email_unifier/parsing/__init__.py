"""Header parsing helpers shared by the provider adapters."""

from .addresses import dedupe_addresses, parse_address, parse_address_list
from .dates import parse_epoch_ms, parse_header_date, parse_iso_date
from .references import clean_message_id, parse_references
from .subject import has_reply_marker, normalize_subject

__all__ = [
    "clean_message_id",
    "dedupe_addresses",
    "has_reply_marker",
    "normalize_subject",
    "parse_address",
    "parse_address_list",
    "parse_epoch_ms",
    "parse_header_date",
    "parse_iso_date",
    "parse_references",
]
