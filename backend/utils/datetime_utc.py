# utils/datetime_utc.py
"""
UTC day boundaries used by the stock reconciler.

All timestamps are stored as naive UTC datetimes.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def start_of_day_utc(value) -> datetime:
    if isinstance(value, datetime):
        value = to_naive_utc(value).date()
    return datetime.combine(value, time.min)


def end_of_day_utc(value) -> datetime:
    return start_of_day_utc(value) + timedelta(days=1) - timedelta(microseconds=1)


def day_range_utc(now: datetime) -> Tuple[datetime, datetime]:
    """Return (start, end) of the UTC business day containing `now`."""
    return start_of_day_utc(now), end_of_day_utc(now)


def is_same_utc_day(value, now: datetime) -> bool:
    if isinstance(value, datetime):
        value = to_naive_utc(value).date()
    if not isinstance(value, date):
        return False
    return value == to_naive_utc(now).date()
