"""
Time-Related Utilities
----------------------

All engine timestamps are timezone-aware UTC datetimes. Data points arriving
from external sources may carry naive datetimes; those are interpreted as UTC
so that time-window filtering and span arithmetic never mix naive and aware
values.
"""

from datetime import datetime, timezone
from typing import Optional

MS_PER_HOUR = 60 * 60 * 1000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Returns `dt` as an aware UTC datetime. Naive values are assumed to be UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def hours_between(start: datetime, end: datetime) -> float:
    """Elapsed hours from `start` to `end` (negative if end precedes start)."""
    return (end - start).total_seconds() / 3600.0
