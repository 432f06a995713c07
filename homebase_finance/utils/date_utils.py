"""Date manipulation utilities"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Tuple

SATURDAY = 5
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def is_business_day(day: date) -> bool:
    """Monday to Friday. Bank holidays are not modeled."""
    return day.weekday() < SATURDAY


def next_business_day(from_date: date, delay_days: int) -> date:
    """
    Date that lies ``delay_days`` business days after ``from_date``.

    Walks forward one calendar day at a time and only counts Monday-Friday.
    A weekend start is rolled to the following Monday first, since funds
    received on a weekend start settling then:

        Fri + 2 -> Tue
        Sat + 1 -> Tue
        Wed + 0 -> Wed
    """
    if delay_days < 0:
        raise ValueError(f"delay_days must be non-negative, got {delay_days}")

    current = from_date
    while not is_business_day(current):
        current += timedelta(days=1)

    counted = 0
    while counted < delay_days:
        current += timedelta(days=1)
        if is_business_day(current):
            counted += 1
    return current


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def month_bounds(month: str) -> Tuple[datetime, datetime]:
    """Half-open [start, end) range for a ``YYYY-MM`` month"""
    match = _MONTH_RE.match(month)
    if not match:
        raise ValueError(f"Month must look like YYYY-MM, got {month!r}")
    year, mon = int(match.group(1)), int(match.group(2))
    if not 1 <= mon <= 12:
        raise ValueError(f"Month out of range: {month!r}")
    start = datetime(year, mon, 1)
    end = datetime(year + 1, 1, 1) if mon == 12 else datetime(year, mon + 1, 1)
    return start, end
