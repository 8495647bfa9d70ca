"""Eligibility to start the payout phase: minimum age and plan membership."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Context, Decimal

from backend.core.rates import Number, full_years_between, to_decimal

REQUIRED_AGE = 55
REQUIRED_MEMBERSHIP_MONTHS = 60


@dataclass(frozen=True)
class Eligibility:
    age: int
    membership_months: Decimal

    @property
    def age_met(self) -> bool:
        return self.age >= REQUIRED_AGE

    @property
    def membership_met(self) -> bool:
        return self.membership_months >= REQUIRED_MEMBERSHIP_MONTHS

    @property
    def eligible(self) -> bool:
        return self.age_met and self.membership_met


def check_eligibility(
    birth_date: date, membership_years: Number, on: date, context: Context
) -> Eligibility:
    """Both rules must hold; age is in completed years on ``on``."""
    return Eligibility(
        age=full_years_between(birth_date, on),
        membership_months=context.multiply(to_decimal(membership_years), Decimal(12)),
    )
