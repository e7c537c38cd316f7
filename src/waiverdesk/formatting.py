"""Text helpers for rendering search candidates."""

from __future__ import annotations

import re
from datetime import datetime

INVALID_DATE = "Invalid Date"

MARK_OPEN = "<mark>"
MARK_CLOSE = "</mark>"


def normalise_whitespace(value: str) -> str:
    """Collapse multiple whitespace characters into a single space."""

    return " ".join(value.split())


def normalise_query(value: str | None) -> str:
    """Return the cache and validation key for a raw query string."""

    if not value:
        return ""
    return normalise_whitespace(value)


def highlight_match(
    text: str,
    query: str,
    *,
    open_tag: str = MARK_OPEN,
    close_tag: str = MARK_CLOSE,
) -> str:
    """Wrap every case-insensitive occurrence of ``query`` in ``text``.

    The query is matched literally, so characters such as ``(`` or ``.`` do
    not act as pattern syntax. The result is markup: ``text`` itself is not
    escaped and callers rendering it into HTML must trust or sanitise it.
    """

    if not query or not text:
        return text
    pattern = re.compile(re.escape(query), re.IGNORECASE)
    return pattern.sub(lambda match: f"{open_tag}{match.group(0)}{close_tag}", text)


def parse_signature_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    candidate = value.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(candidate)
    except ValueError:
        return None


def format_signature_date(value: object) -> str:
    """Render a signature timestamp as M/D/YYYY, or the invalid-date sentinel."""

    parsed = parse_signature_timestamp(value)
    if parsed is None:
        return INVALID_DATE
    return f"{parsed.month}/{parsed.day}/{parsed.year}"
