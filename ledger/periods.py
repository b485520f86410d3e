"""
Accounting period arithmetic.

An entry counts toward a posted (year, month) period which is independent of
its real transaction date. Everything here is pure and month values are
always normalized to 1-12.
"""

import calendar
from datetime import date
from typing import NamedTuple


class Period(NamedTuple):
    """A posted accounting period."""
    year: int
    month: int

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


def add_months(year: int, month: int, n: int) -> Period:
    """Shift a period forward by ``n`` months."""
    index = year * 12 + (month - 1) + n
    return Period(index // 12, index % 12 + 1)


def next_period(year: int, month: int) -> Period:
    """The period right after (year, month); December wraps to January."""
    return add_months(year, month, 1)


def previous_period(year: int, month: int) -> Period:
    """The period right before (year, month); January wraps to December."""
    return add_months(year, month, -1)


def period_range(start_year: int, start_month: int, months_ahead: int) -> Period:
    """
    End of an inclusive window starting at (start_year, start_month).

    Used to bound "upcoming" queries: the window is
    [start, period_range(start, months_ahead)].
    """
    return add_months(start_year, start_month, months_ahead)


def current_period(today: date) -> Period:
    return Period(today.year, today.month)


def last_day_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])

