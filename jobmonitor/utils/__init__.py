"""Utility functions for time handling."""

from .timestamps import (
    TimeHelper,
    ensure_utc,
    format_timestamp,
    format_timestamp_for_log,
    utc_now,
)

__all__ = [
    "TimeHelper",
    "utc_now",
    "ensure_utc",
    "format_timestamp",
    "format_timestamp_for_log",
]
