"""
core/sanitize.py -- Input normalization shared by import, sync and registration.

Every identity-bearing string that enters the system passes through one of
these helpers before it reaches a store lookup, so "match by email" means the
same thing on every path.

Pure functions, no I/O.
"""

import re

# Deliberately simple: one "@", no whitespace, a dot in the domain part.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
_EMAIL_RE = re.compile(EMAIL_PATTERN)

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")
# Strict login charset: ASCII letters, digits, space, and _ . - @
_LOGIN_STRIP_RE = re.compile(r"[^A-Za-z0-9 _.\-@]")


def normalize_email(value) -> str:
    """Return the stripped, lowercased email, or "" if it is missing or invalid."""
    if value is None:
        return ""
    email = str(value).strip().lower()
    if len(email) > 254 or not _EMAIL_RE.match(email):
        return ""
    return email


def clean_text(value) -> str:
    """Strip markup and collapse whitespace in a free-text field (names, phone, city)."""
    if value is None:
        return ""
    text = _TAG_RE.sub("", str(value))
    return _WS_RE.sub(" ", text).strip()


def sanitize_login(value) -> str:
    """Reduce a candidate login to the strict login character set.

    Characters outside the set are dropped rather than replaced, and runs of
    whitespace collapse to one space.
    """
    if value is None:
        return ""
    login = _LOGIN_STRIP_RE.sub("", _TAG_RE.sub("", str(value)))
    return _WS_RE.sub(" ", login).strip()


def split_name(name: str, max_parts: int = 0) -> tuple[str, str]:
    """Split a display name into (first, last) on spaces.

    max_parts=2 keeps everything after the first space as the last name
    verbatim; the default splits on every space and rejoins the tail.
    """
    if not name:
        return "", ""
    if max_parts:
        parts = name.split(" ", max_parts - 1)
    else:
        parts = name.split(" ")
    return parts[0], " ".join(parts[1:])
