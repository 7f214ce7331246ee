"""
Single source for "now" time and upstream timestamp parsing. Supports
deterministic mode for tests via PRICE_PROVIDER_DETERMINISTIC_TIME
(ISO format, e.g. 2026-01-01T00:00:00Z).
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

# Epoch values above this are milliseconds, below are seconds.
EPOCH_MILLIS_THRESHOLD = 1_000_000_000_000


def now_utc() -> datetime:
    """
    Return the current UTC time.
    If env PRICE_PROVIDER_DETERMINISTIC_TIME is set, return that value instead.
    """
    fixed = os.environ.get("PRICE_PROVIDER_DETERMINISTIC_TIME", "").strip()
    if fixed:
        parsed = parse_iso8601(fixed)
        if parsed is not None:
            return parsed
    return datetime.now(timezone.utc)


def parse_iso8601(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 string ('...Z' or offset) into an aware UTC datetime."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_epoch_maybe_millis(value: Any, fallback: datetime) -> datetime:
    """Epoch seconds or milliseconds (disambiguated by magnitude) to UTC."""
    try:
        v = int(value)
    except (TypeError, ValueError, OverflowError):
        return fallback
    if v <= 0:
        return fallback
    try:
        if v > EPOCH_MILLIS_THRESHOLD:
            seconds, millis = divmod(v, 1000)
            return datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(milliseconds=millis)
        return datetime.fromtimestamp(v, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return fallback
