"""Provider label/folder vocabulary -> universal category.

Classification is a total function: every input, including an empty label
set or an unknown provider, yields exactly one category.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from email_unifier.models import Provider, UniversalCategory, custom_category

logger = structlog.get_logger()

C = UniversalCategory

# Ordered: the first table entry present in the input wins, regardless of
# the order labels arrive in.
GMAIL_TABLE: tuple[tuple[str, UniversalCategory], ...] = (
    ("INBOX", C.INBOX),
    ("SENT", C.SENT),
    ("DRAFT", C.DRAFT),
    ("TRASH", C.TRASH),
    ("SPAM", C.SPAM),
    ("IMPORTANT", C.IMPORTANT),
    ("STARRED", C.STARRED),
    ("ARCHIVE", C.ARCHIVE),
    ("CATEGORY_PERSONAL", C.PERSONAL),
    ("CATEGORY_SOCIAL", C.SOCIAL),
    ("CATEGORY_PROMOTIONS", C.PROMOTIONS),
    ("CATEGORY_UPDATES", C.UPDATES),
    ("CATEGORY_FORUMS", C.FORUMS),
)

OUTLOOK_TABLE: tuple[tuple[str, UniversalCategory], ...] = (
    ("inbox", C.INBOX),
    ("sentitems", C.SENT),
    ("sent items", C.SENT),
    ("drafts", C.DRAFT),
    ("deleteditems", C.TRASH),
    ("deleted items", C.TRASH),
    ("junkemail", C.SPAM),
    ("junk email", C.SPAM),
    ("archive", C.ARCHIVE),
)

SES_TABLE: tuple[tuple[str, UniversalCategory], ...] = (
    ("inbox", C.INBOX),
    ("spam", C.SPAM),
)

# Gmail system labels that carry status, not placement. They never become
# CUSTOM categories.
_GMAIL_STATUS_LABELS = frozenset({"UNREAD", "CHAT"})


def _as_names(value: str | Iterable[str] | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    try:
        return [v for v in value if isinstance(v, str) and v.strip()]
    except TypeError:
        return []


class CategoryClassifier:
    """Maps provider-native labels or folders onto :class:`UniversalCategory`."""

    tables: dict[Provider, tuple[tuple[str, UniversalCategory], ...]] = {
        Provider.GMAIL: GMAIL_TABLE,
        Provider.OUTLOOK: OUTLOOK_TABLE,
        Provider.SES: SES_TABLE,
    }

    def classify(
        self,
        labels_or_folder: str | Iterable[str] | None,
        provider: Provider | str,
        folder_context: str | None = None,
    ) -> str:
        """Classify provider vocabulary into a universal category.

        Matching is case-insensitive against the provider table. The
        names carried by the message are considered first; a folder context
        only decides when they match nothing. Unmatched names map to
        ``CUSTOM:<original-name>``; no names at all map to ``OTHER``.

        Args:
            labels_or_folder: A label list, a single folder name, or None.
            provider: Provider the names come from.
            folder_context: Folder the message was fetched from, if known.

        Returns:
            A universal category value (an enum value or ``CUSTOM:<name>``).
        """

        try:
            resolved = Provider(provider)
        except ValueError:
            logger.warning("classify_unknown_provider", provider=str(provider))
            return C.OTHER.value

        table = self.tables[resolved]
        tiers = [_as_names(labels_or_folder), _as_names(folder_context)]

        for names in tiers:
            if not names:
                continue
            lowered = {n.strip().lower() for n in names}
            for key, category in table:
                if key.lower() in lowered:
                    return category.value

        for names in tiers:
            for name in names:
                if self._is_custom(name, resolved):
                    return custom_category(name.strip())

        return C.OTHER.value

    def _is_custom(self, name: str, provider: Provider) -> bool:
        if provider is Provider.GMAIL:
            upper = name.strip().upper()
            return upper not in _GMAIL_STATUS_LABELS and not upper.startswith("CATEGORY_")
        return True


_default_classifier = CategoryClassifier()


def classify(
    labels_or_folder: str | Iterable[str] | None,
    provider: Provider | str,
    folder_context: str | None = None,
) -> str:
    """Module-level shortcut for :meth:`CategoryClassifier.classify`."""
    return _default_classifier.classify(labels_or_folder, provider, folder_context)
