"""Shared utility functions.

as_utc:          normalise naive (SQLite) and aware (PostgreSQL) datetimes to UTC
parse_date:      date from ISO string, returns None on bad input
parse_datetime:  UTC datetime from ISO string, returns None on bad input
clamp_int:       coerce a request value into an integer range
round_half_up:   nearest integer, halves towards +infinity
"""
import math
from datetime import date, datetime, timezone


def as_utc(dt: datetime | None) -> datetime | None:
    """Normalise a datetime to UTC-aware regardless of whether SQLite stored it naive.

    SQLite's DateTime columns return naive datetimes; PostgreSQL returns tz-aware.
    All comparisons against an aware ``now`` must go through this helper so the
    same code works in both environments.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_date(value):
    """Parse an ISO date (or datetime) string to a date object.

    Returns None for empty/invalid input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except (ValueError, TypeError):
        return None


def parse_datetime(value):
    """Parse an ISO datetime string to a UTC-aware datetime.

    Date-only strings resolve to midnight UTC. Returns None for empty/invalid input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    try:
        return as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except (ValueError, TypeError):
        return None


def clamp_int(value, default: int, lo: int, hi: int) -> int:
    """Coerce ``value`` to int and clamp to [lo, hi]; ``default`` when not numeric."""
    try:
        n = int(value)
    except (ValueError, TypeError):
        n = default
    return max(lo, min(hi, n))


def round_half_up(x: float) -> int:
    """Round to the nearest integer with halves going up (2.5 → 3, -2.5 → -2)."""
    return math.floor(x + 0.5)
