import re

RE_PREFIX = re.compile(r"^\s*(re|fwd|fw)\s*:\s*", re.IGNORECASE)


def normalize_subject(subject: str | None) -> str:
    """Strip any run of leading Re:/Fwd:/Fw: tokens and case-fold."""
    if not subject:
        return ""
    s = subject.strip()
    while True:
        stripped = RE_PREFIX.sub("", s, count=1)
        if stripped == s:
            break
        s = stripped
    return s.strip().casefold()


def has_reply_marker(subject: str | None) -> bool:
    if not subject:
        return False
    return RE_PREFIX.match(subject) is not None
