"""Body helpers. Only what canonical records need, not a MIME renderer."""

from __future__ import annotations

import base64
import binascii

from bs4 import BeautifulSoup, Comment

SNIPPET_LENGTH = 200


def decode_base64url(data: str | None) -> str:
    """Decode Gmail's URL-safe base64 body data, tolerating missing padding."""
    if not data:
        return ""
    try:
        raw = base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
    except (binascii.Error, ValueError):
        return ""
    return raw.decode("utf-8", errors="replace")


def html_to_text(markup: str | None) -> str:
    """Visible text of an HTML body, one line per block of text."""
    if not markup:
        return ""
    soup = BeautifulSoup(markup, "html.parser")

    for element in soup(["script", "style", "head"]):
        element.decompose()
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()

    return soup.get_text(separator="\n", strip=True)


def make_snippet(text: str | None, length: int = SNIPPET_LENGTH) -> str:
    if not text:
        return ""
    flat = " ".join(text.split())
    return flat[:length]
