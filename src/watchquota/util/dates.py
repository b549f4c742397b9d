"""
UTC day-boundary helpers.

Every daily counter key and every retention cutoff goes through these
functions, so all callers agree that a day ends at midnight UTC.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional

DAY_FORMAT = "%Y-%m-%d"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def today_utc(now: Optional[datetime] = None) -> str:
    """Return the UTC calendar day of ``now`` (default: current time) as ``YYYY-MM-DD``."""
    now = now or utc_now()
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime(DAY_FORMAT)


def days_ago_utc(days: int, now: Optional[datetime] = None) -> str:
    """Return the UTC day ``days`` before today as ``YYYY-MM-DD``."""
    today = date.fromisoformat(today_utc(now))
    return (today - timedelta(days=days)).strftime(DAY_FORMAT)


def next_midnight_utc(now: Optional[datetime] = None) -> datetime:
    """Return the next midnight UTC strictly after ``now``."""
    now = (now or utc_now()).astimezone(timezone.utc)
    tomorrow = now.date() + timedelta(days=1)
    return datetime(tomorrow.year, tomorrow.month, tomorrow.day, tzinfo=timezone.utc)


def format_timestamp(moment: Optional[datetime] = None) -> str:
    """Format an instant for storage.

    Microsecond precision keeps entries written in the same second ordered,
    and the fixed-width layout sorts lexicographically.
    """
    moment = (moment or utc_now()).astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)
