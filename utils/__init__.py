"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, to_utc, from_epoch, minutes_until
