"""Business-day arithmetic.

Saturday and Sunday are never counted and never landed on when advancing.
Functions accept either ``date`` or ``datetime`` and return the same type;
the time of day of a ``datetime`` is carried through unchanged.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import TypeVar

DateLike = TypeVar("DateLike", date, datetime)

BATCH_CUTOFF_HOUR = 17


def is_business_day(value: date | datetime) -> bool:
    return value.weekday() < 5  # Monday = 0, Friday = 4


def add_business_days(value: DateLike, business_days: int) -> DateLike:
    """Advance ``value`` by ``business_days`` weekdays.

    Zero returns the input unchanged, even when it falls on a weekend.
    """
    if business_days < 0:
        raise ValueError("business_days must be zero or greater.")

    current = value
    remaining = business_days
    while remaining > 0:
        current += timedelta(days=1)
        if is_business_day(current):
            remaining -= 1
    return current


def get_next_business_day(value: DateLike) -> DateLike:
    return add_business_days(value, 1)


def get_next_batch_start_date(
    now: datetime | None = None, cutoff_hour: int = BATCH_CUTOFF_HOUR
) -> datetime:
    """Anchor for a new enrollment cohort.

    Today when it is a business day before ``cutoff_hour`` local time,
    otherwise the next business day at the same clock time. Callers that
    need a calendar date take ``.date()``.
    """
    if now is None:
        now = datetime.now()
    if is_business_day(now) and now.hour < cutoff_hour:
        return now
    return get_next_business_day(now)
