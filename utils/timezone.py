"""UTC-everywhere time handling for token, lockout and audit timestamps."""

import math
from datetime import datetime, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def from_epoch(seconds: int | float) -> datetime:
    """Convert a POSIX timestamp (JWT iat/exp claims) to a UTC datetime."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def minutes_until(moment: datetime, now: datetime | None = None) -> int:
    """
    Whole minutes remaining until moment, rounded up.

    Returns 0 once moment has passed. Used for lockout messages, where
    "1 minute" must still be reported while any seconds remain.
    """
    now = now or now_utc()
    remaining = (to_utc(moment) - now).total_seconds()
    if remaining <= 0:
        return 0
    return math.ceil(remaining / 60)
