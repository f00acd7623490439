"""Utility functions for the loan tracker.

This module provides helpers for turning user input into ``Decimal`` values,
rounding currency amounts and handling dates. Money is rounded half-up to two
decimal places everywhere a currency amount is produced so that the ledger,
the simulator and the serializers agree on the same cents.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, getcontext
from typing import Union

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

CENT = Decimal("0.01")
ZERO = Decimal("0")

Numeric = Union[Decimal, int, float, str]


def to_decimal(value: Numeric) -> Decimal:
    """Convert ``value`` into a ``Decimal``.

    Floats go through ``str`` so that ``0.12`` becomes ``Decimal("0.12")``
    rather than its binary expansion. Strings may contain thousands
    separators. Raises ``ValueError`` if conversion fails.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid numeric value: {value!r}")
    try:
        if isinstance(value, (int, float)):
            result = Decimal(str(value))
        else:
            result = Decimal(str(value).strip().replace(",", ""))
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Invalid numeric value: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value!r}")
    return result


def round_money(value: Decimal) -> Decimal:
    """Round a currency amount half-up to cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def round_half_up(value: Numeric) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_date(value: Union[str, date, datetime]) -> date:
    """Parse an ISO ``YYYY-MM-DD`` string (or a date/datetime) into a ``date``.

    A bare ``YYYY-MM`` is accepted and normalized to the first of the month.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        if len(text) == 7:
            year, month = text.split("-")
            return date(int(year), int(month), 1)
        return date.fromisoformat(text[:10])
    except ValueError as exc:
        raise ValueError(f"Invalid date string: {value}") from exc


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)
