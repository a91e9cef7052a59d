"""
Time utilities for consistent UTC handling across the application.
"""

import math
from datetime import datetime, timezone
from typing import Optional


def now_utc() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """Convert datetime to UTC, handling both naive and timezone-aware datetimes."""
    if dt.tzinfo is None:
        # Assume naive datetime is already in UTC (SQLite drops tzinfo)
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure datetime is UTC timezone-aware, return None if input is None."""
    if dt is None:
        return None
    return to_utc(dt)


def utc_timestamp_ms() -> int:
    """Get current UTC timestamp in milliseconds for frontend sync."""
    return int(now_utc().timestamp() * 1000)


def whole_minutes_between(start: datetime, end: datetime) -> int:
    """Elapsed time floored to whole minutes, never negative."""
    seconds = (to_utc(end) - to_utc(start)).total_seconds()
    return max(0, int(seconds // 60))


def seconds_until(deadline: datetime, now: datetime) -> int:
    """Remaining whole seconds until `deadline`, floored at zero."""
    remaining = (to_utc(deadline) - to_utc(now)).total_seconds()
    return max(0, math.floor(remaining))
