"""
Timestamp utilities for consistent time handling across the system.
"""

from datetime import datetime, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Convert datetime to ISO-8601 string.

    Args:
        value: datetime or None

    Returns:
        ISO string, or None when value is None
    """
    return value.isoformat() if value is not None else None


def from_iso(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (or pass through a datetime).

    Args:
        value: ISO string, datetime, or anything else

    Returns:
        datetime, or None when the value is empty or unparseable
    """
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def format_offset(seconds: float) -> str:
    """Format a second offset as zero-padded HH:MM:SS.

    Args:
        seconds: Offset in seconds from the start of the recording

    Returns:
        HH:MM:SS string
    """
    total = max(int(seconds or 0), 0)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f'{hours:02d}:{minutes:02d}:{secs:02d}'


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days elapsed between two datetimes (floored).

    Naive and aware values are compared by treating naive values as UTC.
    """
    if (earlier.tzinfo is None) != (later.tzinfo is None):
        earlier = earlier.replace(tzinfo=timezone.utc) if earlier.tzinfo is None else earlier
        later = later.replace(tzinfo=timezone.utc) if later.tzinfo is None else later
    return int((later - earlier).total_seconds() // 86400)
