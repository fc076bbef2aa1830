"""
Date helpers for upstream data of uneven quality.

AI extraction hands us ISO strings, date-only strings, epoch numbers and
garbage. Everything that cannot be read becomes None instead of raising.
"""

from datetime import date, datetime, timezone
from typing import Any, Optional


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp into an aware UTC datetime.

    - "2026-01-15T10:00:00Z" → 2026-01-15 10:00 UTC
    - "2026-01-15" → 2026-01-15 00:00 UTC
    - naive datetimes are assumed to be UTC
    - anything unparseable → None

    Args:
        value: str, date, datetime, int/float epoch seconds, or None

    Returns:
        Aware datetime in UTC, or None
    """
    if value is None or isinstance(value, bool):
        return None

    try:
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, date):
            parsed = datetime(value.year, value.month, value.day)
        elif isinstance(value, (int, float)):
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        elif isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)
        else:
            return None
    except (ValueError, OverflowError, OSError):
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)
