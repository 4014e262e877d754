"""
Timezone helpers. Everything is stored and compared in UTC.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def elapsed_days(since: Optional[datetime], now: datetime) -> float:
    """Fractional days between two instants; never negative."""
    if since is None:
        return 0.0
    seconds = (as_utc(now) - as_utc(since)).total_seconds()
    return max(seconds / 86400.0, 0.0)
