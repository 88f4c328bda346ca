from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Return current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure the given datetime is timezone-aware in UTC.

    Naive values are treated as UTC: every timestamp this service writes is
    UTC, and SQLite hands them back without tzinfo.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat_utc(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime to an ISO8601 string with 'Z' suffix.

    Returns None if dt is None.
    """
    if dt is None:
        return None
    s = ensure_aware_utc(dt).isoformat()
    if s.endswith("+00:00"):
        s = s[:-6] + "Z"
    return s


def parse_release_date(value: Optional[Union[str, date]]) -> Optional[datetime]:
    """Parse a TMDB release date ("YYYY-MM-DD", possibly empty) into aware UTC midnight."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_aware_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    s = str(value).strip()
    if not s:
        return None
    try:
        d = date.fromisoformat(s[:10])
    except ValueError:
        return None
    return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
