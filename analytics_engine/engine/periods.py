"""
Calendar helpers for trailing analysis windows.

All timestamps are naive UTC. A trailing window ending on ``as_of`` always
includes the whole ``as_of`` day: bounds are half-open ``[start, end)`` with
``end`` at the following midnight.
"""

import calendar
from datetime import date, datetime, time, timedelta
from typing import Tuple

Window = Tuple[datetime, datetime]


def day_start(day: date) -> datetime:
    return datetime.combine(day, time.min)


def month_start(day: date) -> date:
    return day.replace(day=1)


def shift_months(day: date, months: int) -> date:
    """Move ``day`` by whole calendar months, clamping to the month's end"""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    last_day = calendar.monthrange(year, month + 1)[1]
    return date(year, month + 1, min(day.day, last_day))


def months_between(start: date, end: date) -> int:
    """Calendar months from ``start``'s month to ``end``'s month"""
    return (end.year - start.year) * 12 + (end.month - start.month)


def trailing_days(as_of: date, days: int) -> Window:
    """``days`` days back from ``as_of`` through the end of ``as_of``"""
    return day_start(as_of - timedelta(days=days)), day_start(as_of + timedelta(days=1))


def trailing_months(as_of: date, months: int) -> Window:
    """Same day ``months`` calendar months back through the end of ``as_of``"""
    return day_start(shift_months(as_of, -months)), day_start(as_of + timedelta(days=1))


def calendar_months(as_of: date, months: int) -> Window:
    """Exactly ``months`` whole calendar months ending with ``as_of``'s month"""
    first = shift_months(month_start(as_of), -(months - 1))
    return day_start(first), day_start(as_of + timedelta(days=1))
