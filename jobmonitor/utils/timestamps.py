"""Timestamp utilities for UTC handling and age thresholds.

This module provides utilities for working with timestamps in UTC:
- Getting current UTC time
- Converting timezone-naive to timezone-aware UTC
- Formatting timestamps for logs and notification payloads
- TimeHelper, the clock used by the monitoring components
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current UTC time with timezone info

    Example:
        >>> now = utc_now()
        >>> now.tzinfo == timezone.utc
        True
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    If the datetime is timezone-naive, it's treated as UTC.
    If the datetime has a different timezone, it's converted to UTC.

    Args:
        dt: Datetime to convert (can be None)

    Returns:
        Timezone-aware datetime in UTC, or None if input is None

    Example:
        >>> naive = datetime(2025, 11, 4, 12, 0, 0)
        >>> aware = ensure_utc(naive)
        >>> aware.tzinfo == timezone.utc
        True
    """
    if dt is None:
        return None

    # If timezone-naive, treat as UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime, include_microseconds: bool = False) -> str:
    """Format a datetime as ISO 8601 string in UTC.

    Args:
        dt: Datetime to format
        include_microseconds: Whether to include microseconds in output

    Returns:
        ISO 8601 formatted string with 'Z' suffix

    Example:
        >>> dt = datetime(2025, 11, 4, 12, 0, 0, tzinfo=timezone.utc)
        >>> format_timestamp(dt)
        '2025-11-04T12:00:00Z'
    """
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return ""

    if include_microseconds:
        return dt_utc.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return dt_utc.strftime("%Y-%m-%dT%H:%M:%SZ")


def format_timestamp_for_log(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime for structured logging, passing None through."""
    if dt is None:
        return None
    return format_timestamp(dt, include_microseconds=False)


class TimeHelper:
    """Clock used by the monitoring components.

    Kept as an object so tests can substitute a fixed or advancing time
    without patching the datetime module.
    """

    def now(self) -> datetime:
        """Return the current time in UTC."""
        return utc_now()

    def before(self, duration: timedelta) -> datetime:
        """Return the point in time that lies the given duration in the past."""
        return self.now() - duration
