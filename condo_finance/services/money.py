"""Money and date utilities.

Pure functions used by the payment rules and the aggregation services.
Monetary values are Decimals throughout; rounding happens only through
round_money, at storage and report boundaries.
"""

import calendar
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterator

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")
DAYS_PER_MONTH = Decimal(30)


def to_decimal(value) -> Decimal:
    """Convert int/float/str/Decimal to Decimal without binary float noise.

    None converts to zero.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(amount, places: Decimal = TWO_PLACES) -> Decimal:
    """Round amount to cents (ROUND_HALF_UP)."""
    return to_decimal(amount).quantize(places, rounding=ROUND_HALF_UP)


def safe_divide(numerator, denominator, default: Decimal = ZERO) -> Decimal:
    """Divide, returning default when the denominator is zero."""
    denominator = to_decimal(denominator)
    if denominator == 0:
        return default
    return to_decimal(numerator) / denominator


def to_day(value: date | datetime) -> date:
    """Calendar day of a date or datetime; aware datetimes are taken in UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def days_between(start: date | datetime, end: date | datetime) -> int:
    """Whole calendar days from start to end (negative if end precedes start).

    Datetimes are reduced to their UTC calendar date, so time of day and DST
    never affect the result.

    Example:
        >>> days_between(date(2024, 1, 10), date(2024, 1, 20))
        10
    """
    return (to_day(end) - to_day(start)).days


def simple_interest(principal, monthly_rate, days: int) -> Decimal:
    """Principal plus simple interest for a number of days.

    The daily rate is monthly_rate / 30. A zero rate or zero days returns the
    principal unchanged.

    Returns:
        principal + principal * (monthly_rate / 30) * days
    """
    principal = to_decimal(principal)
    monthly_rate = to_decimal(monthly_rate)
    if not monthly_rate or not days:
        return principal
    daily_rate = monthly_rate / DAYS_PER_MONTH
    return principal + principal * daily_rate * days


def penalty(principal, rate) -> Decimal:
    """Flat penalty: principal * rate (not prorated by time)."""
    return to_decimal(principal) * to_decimal(rate)


def first_day_of_month(value: date) -> date:
    return value.replace(day=1)


def last_day_of_month(value: date) -> date:
    return value.replace(day=calendar.monthrange(value.year, value.month)[1])


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last day of a calendar month."""
    start = date(year, month, 1)
    return start, last_day_of_month(start)


def add_months(value: date, months: int) -> date:
    """Shift a date by whole months, clamping the day to the target month length."""
    month_index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(month_index, 12)
    day = min(value.day, calendar.monthrange(year, month + 1)[1])
    return date(year, month + 1, day)


def iter_months(start: date, count: int) -> Iterator[date]:
    """Yield the first day of count consecutive months starting at start's month."""
    first = first_day_of_month(start)
    for offset in range(count):
        yield add_months(first, offset)


def month_key(value: date) -> str:
    """'YYYY-MM' bucket key."""
    return f"{value.year}-{value.month:02d}"


def month_label(value: date) -> str:
    """'MM/YYYY' display label."""
    return f"{value.month:02d}/{value.year}"


__all__ = [
    "TWO_PLACES",
    "ZERO",
    "to_decimal",
    "round_money",
    "safe_divide",
    "to_day",
    "days_between",
    "simple_interest",
    "penalty",
    "first_day_of_month",
    "last_day_of_month",
    "month_bounds",
    "add_months",
    "iter_months",
    "month_key",
    "month_label",
]
