"""
Calendar helpers for report windows.

Windows are inclusive on both ends: [start_date, end_date].
A request may give an explicit range or a (year, month) pair; when both are
given the explicit range wins. A half-given range (only start or only end) is ignored.
"""
from calendar import monthrange
from datetime import date, timedelta
from typing import Iterator, Optional, Tuple


def first_day_of_month(year: int, month: int) -> date:
    return date(year, month, 1)


def last_day_of_month(year: int, month: int) -> date:
    _, last = monthrange(year, month)
    return date(year, month, last)


def days_in_month(year: int, month: int) -> int:
    """Calendar days of the month (February 2026 -> 28, January -> 31)."""
    return monthrange(year, month)[1]


def days_in_month_of(d: date) -> int:
    return monthrange(d.year, d.month)[1]


def iter_month_days(year: int, month: int) -> Iterator[date]:
    d = first_day_of_month(year, month)
    last = last_day_of_month(year, month)
    while d <= last:
        yield d
        d += timedelta(days=1)


def resolve_window(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> Tuple[Optional[date], Optional[date]]:
    """
    Turn request parameters into (start, end).
    - start_date and end_date both given: used as is
    - otherwise year and month both given: first/last day of that month
    - otherwise (None, None), meaning no date restriction
    """
    if start_date is not None and end_date is not None:
        return start_date, end_date
    if year is not None and month is not None:
        return first_day_of_month(year, month), last_day_of_month(year, month)
    return None, None
