"""Utility functions for the budget planner.

This module provides helpers for parsing user input into Python data types and
for handling calendar months. Projections work on whole months, so most helpers
normalize dates to the first day of their month before comparing them.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_DOWN, ROUND_HALF_UP, getcontext
import calendar
from typing import Union

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

CENT = Decimal("0.01")

DateLike = Union[date, datetime, str]


def parse_year_month(ym: str) -> date:
    """Parse a YYYY-MM string into a ``date`` object (first day of month).

    Parameters
    ----------
    ym: str
        A string in the form ``"YYYY-MM"``. The day component, if present,
        will be ignored.

    Returns
    -------
    date
        A date object representing the first day of the specified month.

    Raises
    ------
    ValueError
        If the string is not a valid year-month.
    """
    try:
        parts = ym.split("-")
        if len(parts) < 2:
            raise ValueError
        year = int(parts[0])
        month = int(parts[1])
        return date(year, month, 1)
    except Exception as exc:
        raise ValueError(f"Invalid year-month string: {ym}") from exc


def parse_iso_date(value: DateLike) -> date:
    """Return a calendar date for a ``date``, ``datetime`` or ISO string.

    Strings may be plain dates (``2025-03-15``), full ISO timestamps
    (``2025-03-15T10:00:00``) or bare year-months (``2025-03``). Any time
    component is dropped.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid date value: {value!r}")
    text = value.strip()
    if len(text) == 7:
        return parse_year_month(text)
    try:
        if "T" in text or " " in text:
            return datetime.fromisoformat(text).date()
        return date.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO date string: {value}") from exc


def month_start(dt: date) -> date:
    """Truncate ``dt`` to the first day of its month."""
    return date(dt.year, dt.month, 1)


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def months_between(start: date, end: date) -> int:
    """Number of calendar months from ``start``'s month to ``end``'s month.

    Days are ignored, so 2025-03-31 to 2025-04-01 is one month. The result is
    negative when ``end`` falls in an earlier month than ``start``.
    """
    return (end.year - start.year) * 12 + (end.month - start.month)


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and handles both integer and float-like
    strings. It raises ``ValueError`` if conversion fails.
    """
    try:
        cleaned = value.replace(",", "")
        result = Decimal(cleaned)
    except Exception as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value}")
    return result


def round_money(value: Decimal) -> Decimal:
    """Round a running balance to whole cents.

    Ties go towards positive infinity, so -0.005 becomes 0.00 and 0.005 becomes
    0.01.
    """
    rounding = ROUND_HALF_UP if value >= 0 else ROUND_HALF_DOWN
    return value.quantize(CENT, rounding=rounding) + 0  # drop the sign of -0.00
