from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Context, Decimal
from enum import Enum
from typing import Callable, Dict

from backend.core.config import Ceilings
from backend.core.errors import LimitExceededError, ParameterValidationError
from backend.core.rates import Number, to_decimal

_ZERO = Decimal(0)
_HUNDRED = Decimal(100)

# one extra (13th) installment per year, paid in December
INSTALLMENTS_PER_YEAR = 13
DECEMBER = 12


class PayoutType(str, Enum):
    FIXED_AMOUNT = "FIXED_AMOUNT"
    PERCENT_MONTHLY = "PERCENT_MONTHLY"
    PERCENT_ANNUAL = "PERCENT_ANNUAL"
    FIXED_TERM = "FIXED_TERM"


@dataclass(frozen=True)
class ProjectionParameters:
    """
    Inputs for one projection run. Numbers are coerced to Decimal on creation.

      - annual_return_rate: percent a year (10 means 10%)
      - minimum_balance: 0 means "derive the floor from the first payment"
      - max_age: 0 means no age limit
      - payout_parameter: amount, percent or years depending on payout_type
    """

    initial_balance: Decimal
    benefit_start_date: date
    client_birth_date: date
    annual_return_rate: Decimal
    payout_type: PayoutType
    payout_parameter: Decimal
    minimum_balance: Decimal = _ZERO
    max_age: int = 0
    max_projection_years: int = 100
    ceilings: Ceilings = field(default_factory=Ceilings)

    def __post_init__(self) -> None:
        for name in ("initial_balance", "annual_return_rate", "payout_parameter", "minimum_balance"):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))
        object.__setattr__(self, "payout_type", PayoutType(self.payout_type))

        if self.initial_balance < 0:
            raise ParameterValidationError("initial balance cannot be negative", "initialBalance")
        if self.minimum_balance < 0:
            raise ParameterValidationError("minimum balance cannot be negative", "minimumBalance")
        if self.payout_parameter < 0:
            raise ParameterValidationError("payout parameter cannot be negative", "payoutParameter")
        if self.payout_type is PayoutType.FIXED_TERM and self.payout_parameter <= 0:
            raise ParameterValidationError("fixed term must be greater than zero years", "payoutParameter")
        if self.max_age < 0:
            raise ParameterValidationError("max age cannot be negative", "maxAge")
        if self.max_projection_years < 1:
            raise ParameterValidationError("max projection years must be at least 1", "maxProjectionYears")
        validate_ceilings(self.ceilings)

    @property
    def horizon_months(self) -> int:
        return self.max_projection_years * 12


@dataclass
class PayoutState:
    """Per-run accumulators the payout rules read and update."""

    annual_amount: Decimal = _ZERO
    remaining_installments: Decimal = _ZERO

    @classmethod
    def start(cls, params: ProjectionParameters, context: Context) -> "PayoutState":
        state = cls()
        if params.payout_type is PayoutType.PERCENT_ANNUAL:
            state.annual_amount = _percent_of(params.initial_balance, params.payout_parameter, context)
        elif params.payout_type is PayoutType.FIXED_TERM:
            state.remaining_installments = context.multiply(
                params.payout_parameter, Decimal(INSTALLMENTS_PER_YEAR)
            )
        return state

    def consume(self, payout_type: PayoutType, month: int) -> None:
        if payout_type is PayoutType.FIXED_TERM:
            self.remaining_installments -= installments_for_month(month)


def installments_for_month(month: int) -> Decimal:
    return Decimal(2) if month == DECEMBER else Decimal(1)


def _percent_of(balance: Decimal, percent: Decimal, context: Context) -> Decimal:
    return context.multiply(balance, context.divide(percent, _HUNDRED))


# --- one evaluator per payout type ---


def _fixed_amount(parameter: Decimal, starting: Decimal, month: int, state: PayoutState, context: Context) -> Decimal:
    return parameter


def _percent_monthly(parameter: Decimal, starting: Decimal, month: int, state: PayoutState, context: Context) -> Decimal:
    return _percent_of(starting, parameter, context)


def _percent_annual(parameter: Decimal, starting: Decimal, month: int, state: PayoutState, context: Context) -> Decimal:
    # recomputed each January, held through December
    if month == 1:
        state.annual_amount = _percent_of(starting, parameter, context)
    return state.annual_amount


def _fixed_term(parameter: Decimal, starting: Decimal, month: int, state: PayoutState, context: Context) -> Decimal:
    if state.remaining_installments <= 0:
        return _ZERO
    return context.divide(starting, state.remaining_installments)


Evaluator = Callable[[Decimal, Decimal, int, PayoutState, Context], Decimal]

EVALUATORS: Dict[PayoutType, Evaluator] = {
    PayoutType.FIXED_AMOUNT: _fixed_amount,
    PayoutType.PERCENT_MONTHLY: _percent_monthly,
    PayoutType.PERCENT_ANNUAL: _percent_annual,
    PayoutType.FIXED_TERM: _fixed_term,
}

if set(EVALUATORS) != set(PayoutType):
    raise RuntimeError("every PayoutType needs an evaluator")


def gross_benefit(
    payout_type: PayoutType,
    parameter: Decimal,
    starting_balance: Decimal,
    month: int,
    state: PayoutState,
    context: Context,
) -> Decimal:
    """Base benefit for the month, before the December doubling. Never negative."""
    amount = EVALUATORS[payout_type](parameter, starting_balance, month, state, context)
    return max(amount, _ZERO)


def first_payment(params: ProjectionParameters, context: Context) -> Decimal:
    """The first month's payment, doubled when benefits start in December."""
    base = gross_benefit(
        params.payout_type,
        params.payout_parameter,
        params.initial_balance,
        params.benefit_start_date.month,
        PayoutState.start(params, context),
        context,
    )
    if params.benefit_start_date.month == DECEMBER:
        return context.multiply(base, Decimal(2))
    return base


def validate_ceilings(ceilings: Ceilings) -> None:
    for name, loc in (
        ("max_percent", "maxPercent"),
        ("max_term_years", "maxTermYears"),
        ("max_fixed_value", "maxFixedValue"),
    ):
        if getattr(ceilings, name) < 0:
            raise ParameterValidationError(f"{loc} cannot be negative", loc)


def validate_ceiling(payout_type: PayoutType, parameter: Number, ceilings: Ceilings) -> None:
    """Raise LimitExceededError when ``parameter`` is above the ceiling for its type."""
    value = to_decimal(parameter)

    if payout_type in (PayoutType.PERCENT_MONTHLY, PayoutType.PERCENT_ANNUAL):
        if value > to_decimal(ceilings.max_percent):
            raise LimitExceededError(
                f"balance percentage ({value}%) exceeds the maximum allowed of {ceilings.max_percent}%",
                ceilings.max_percent,
            )
    elif payout_type is PayoutType.FIXED_TERM:
        if value > to_decimal(ceilings.max_term_years):
            raise LimitExceededError(
                f"term ({value} years) exceeds the maximum allowed of {ceilings.max_term_years} years",
                ceilings.max_term_years,
            )
    elif payout_type is PayoutType.FIXED_AMOUNT:
        if value > to_decimal(ceilings.max_fixed_value):
            raise LimitExceededError(
                f"fixed amount ({value:.2f}) exceeds the maximum allowed of {ceilings.max_fixed_value:.2f}",
                ceilings.max_fixed_value,
            )
