"""Rate and calendar helpers for the payout projection."""

from __future__ import annotations

from datetime import date
from decimal import Context, Decimal
from typing import Union

from dateutil.relativedelta import relativedelta

from backend.core.errors import InvalidRateError

Number = Union[int, float, str, Decimal]

_ZERO = Decimal(0)
_ONE = Decimal(1)
_HUNDRED = Decimal(100)


def to_decimal(value: Number) -> Decimal:
    """Decimal from user input without binary float noise (0.1 -> Decimal('0.1'))."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def monthly_rate(annual_percent: Number, context: Context) -> Decimal:
    """Equivalent compound monthly rate: (1 + annual)^(1/12) - 1.

    ``annual_percent`` is expressed in percent (10 means 10% a year).
    """
    annual = context.divide(to_decimal(annual_percent), _HUNDRED)
    if annual <= -_ONE:
        raise InvalidRateError(
            f"annual return rate must be greater than -100% (got {annual_percent}%)"
        )
    if annual == _ZERO:
        return _ZERO
    base = context.add(_ONE, annual)
    exponent = context.divide(_ONE, Decimal(12))
    return context.subtract(context.power(base, exponent), _ONE)


def full_years_between(birth: date, ref: date) -> int:
    """Completed years from ``birth`` to ``ref`` (the birthday counts on the day)."""
    years = ref.year - birth.year
    if (ref.month, ref.day) < (birth.month, birth.day):
        years -= 1
    return years


def add_months(value: date, months: int) -> date:
    """Calendar add; the day is clamped to the target month's last day."""
    return value + relativedelta(months=months)


def month_label(value: date) -> str:
    return f"{value.month:02d}/{value.year}"
