"""
Termination policy for a payout run.

Rules are checked at the start of every month, in order; the first one that
applies ends the run. The horizon check runs after the month is processed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Context, Decimal
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

from backend.core.rates import month_label
from backend.domain.payout import (
    INSTALLMENTS_PER_YEAR,
    PayoutType,
    ProjectionParameters,
    first_payment,
)

_ZERO = Decimal(0)


class RunStatus(str, Enum):
    ACTIVE = "ACTIVE"
    TERMINATED = "TERMINATED"
    INTERRUPTED = "INTERRUPTED"


class TerminationCode(str, Enum):
    BALANCE_DEPLETED = "BALANCE_DEPLETED"
    TERM_EXHAUSTED = "TERM_EXHAUSTED"
    MAX_AGE = "MAX_AGE"
    MINIMUM_BALANCE = "MINIMUM_BALANCE"
    MAX_HORIZON = "MAX_HORIZON"
    # probe runs only: the requested number of months was simulated
    TARGET_REACHED = "TARGET_REACHED"


@dataclass(frozen=True)
class BalanceFloor:
    amount: Decimal
    from_first_payment: bool = False


@dataclass(frozen=True)
class MonthSnapshot:
    """State visible to the rules at the start of a month."""

    params: ProjectionParameters
    starting_balance: Decimal
    age: int
    remaining_installments: Decimal
    floor: BalanceFloor


@dataclass(frozen=True)
class TerminationRule:
    code: TerminationCode
    applies: Callable[[MonthSnapshot], bool]
    describe: Callable[[MonthSnapshot], str]
    # age/minimum-balance rules are switched off while calibrating
    limit_rule: bool = False


@dataclass(frozen=True)
class TerminationReason:
    status: RunStatus
    code: TerminationCode
    description: str
    termination_date: date
    remaining_balance: Decimal
    age_at_termination: int

    @property
    def month(self) -> str:
        return month_label(self.termination_date)


def _describe_minimum(s: MonthSnapshot) -> str:
    text = (
        f"Terminated: starting balance ({s.starting_balance:.2f}) reached or fell below "
        f"the minimum allowed ({s.floor.amount:.2f})"
    )
    if s.floor.from_first_payment:
        return text + " (set from the first payment amount)."
    return text + "."


RULES: Tuple[TerminationRule, ...] = (
    TerminationRule(
        code=TerminationCode.BALANCE_DEPLETED,
        applies=lambda s: s.starting_balance <= 0,
        describe=lambda s: f"Terminated: starting balance is zero or negative ({s.starting_balance:.2f}).",
    ),
    TerminationRule(
        code=TerminationCode.TERM_EXHAUSTED,
        applies=lambda s: (
            s.params.payout_type is PayoutType.FIXED_TERM and s.remaining_installments <= 0
        ),
        describe=lambda s: (
            f"Terminated: all {s.params.payout_parameter * INSTALLMENTS_PER_YEAR} installments of the "
            f"{s.params.payout_parameter}-year term were paid."
        ),
    ),
    TerminationRule(
        code=TerminationCode.MAX_AGE,
        applies=lambda s: s.params.max_age > 0 and s.age >= s.params.max_age,
        describe=lambda s: f"Terminated: age ({s.age}) reached or exceeded the maximum allowed ({s.params.max_age}).",
        limit_rule=True,
    ),
    TerminationRule(
        code=TerminationCode.MINIMUM_BALANCE,
        applies=lambda s: s.floor.amount > 0 and s.starting_balance <= s.floor.amount,
        describe=_describe_minimum,
        limit_rule=True,
    ),
)


def first_applicable(
    snapshot: MonthSnapshot,
    suppress_limits: bool = False,
    rules: Sequence[TerminationRule] = RULES,
) -> Optional[TerminationRule]:
    for rule in rules:
        if suppress_limits and rule.limit_rule:
            continue
        if rule.applies(snapshot):
            return rule
    return None


def effective_minimum_balance(
    params: ProjectionParameters, suppress_limits: bool, context: Context
) -> BalanceFloor:
    """
    The balance floor that stops the run.

    An explicit minimum is used as given. With no minimum (0) the floor is the
    first payment clamped to [0, initial balance], so the run stops once a
    payment of the original size can't be fully covered. Suppressed runs with
    no minimum use a zero floor.
    """
    if params.minimum_balance > 0:
        return BalanceFloor(params.minimum_balance)
    if suppress_limits or params.initial_balance <= 0:
        return BalanceFloor(_ZERO)

    payment = first_payment(params, context)
    amount = max(_ZERO, min(payment, params.initial_balance))
    return BalanceFloor(amount, from_first_payment=True)


def horizon_exceeded(
    cursor: date, horizon_date: date, months_elapsed: int, horizon_months: int
) -> bool:
    # the month count catches day-clamped cursors that trail the horizon date
    return cursor > horizon_date or months_elapsed >= horizon_months


def describe_horizon(max_projection_years: int) -> str:
    return f"Interrupted: projection exceeded the limit of {max_projection_years} years."
