"""Utility helpers for the MovieMuse service."""

from __future__ import annotations

import re
import time
from datetime import datetime, timezone
from typing import Any


YEAR_RE = re.compile(r"(18|19|20|21)\d{2}")
WHITESPACE_RE = re.compile(r"\s+")


def normalize_query(value: str | None) -> str:
    """Collapse whitespace and case so equivalent queries compare equal."""

    if not value:
        return ""
    return WHITESPACE_RE.sub(" ", value).strip().casefold()


def cache_key(kind: str, *parts: Any) -> str:
    """Build the cache key for a logical catalog query.

    The key only depends on the arguments, so identical logical queries always
    land on the same entry: ``cache_key("search", " The  Matrix")`` and
    ``cache_key("search", "the matrix")`` both yield ``"search-the matrix"``.
    """

    segments = [kind.strip().lower()]
    for part in parts:
        if part is None:
            continue
        if isinstance(part, str):
            segments.append(normalize_query(part))
        else:
            segments.append(str(part))
    return "-".join(segments)


def parse_year(value: Any) -> str | None:
    """Extract a four digit year from a release date or year string."""

    if isinstance(value, int):
        return str(value) if 1800 <= value <= 2199 else None
    if not isinstance(value, str) or not value:
        return None
    match = YEAR_RE.search(value)
    if not match:
        return None
    return match.group(0)


def parse_runtime_minutes(value: Any) -> int | None:
    """Parse runtimes such as ``136`` or ``"136 min"``."""

    if isinstance(value, int):
        return value if value > 0 else None
    if not isinstance(value, str):
        return None
    match = re.match(r"\s*(\d+)", value)
    if not match:
        return None
    minutes = int(match.group(1))
    return minutes or None


def split_names(value: Any) -> list[str]:
    """Split OMDB-style comma separated name lists."""

    if not isinstance(value, str) or value.strip() in {"", "N/A"}:
        return []
    return [name.strip() for name in value.split(",") if name.strip()]


def now_ms() -> int:
    """Return the current wall-clock time as epoch milliseconds."""

    return int(time.time() * 1_000)


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime for database columns."""

    return datetime.now(timezone.utc).replace(tzinfo=None)
