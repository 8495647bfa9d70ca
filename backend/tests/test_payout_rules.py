from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from backend.core.config import Ceilings, EngineConfig
from backend.core.errors import LimitExceededError, ParameterValidationError
from backend.domain.payout import (
    EVALUATORS,
    PayoutState,
    PayoutType,
    ProjectionParameters,
    first_payment,
    gross_benefit,
    validate_ceiling,
)

CTX = EngineConfig().context()


def make_params(**overrides) -> ProjectionParameters:
    values = dict(
        initial_balance=100000,
        benefit_start_date=date(2025, 1, 1),
        client_birth_date=date(1960, 6, 15),
        annual_return_rate=0,
        payout_type=PayoutType.FIXED_AMOUNT,
        payout_parameter=1000,
    )
    values.update(overrides)
    return ProjectionParameters(**values)


def test_every_payout_type_has_an_evaluator():
    assert set(EVALUATORS) == set(PayoutType)


def test_parameters_are_coerced_to_decimal():
    params = make_params(payout_parameter=0.1, payout_type="PERCENT_MONTHLY")

    assert params.payout_parameter == Decimal("0.1")
    assert params.payout_type is PayoutType.PERCENT_MONTHLY
    assert params.horizon_months == 1200


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"initial_balance": -1}, "initialBalance"),
        ({"minimum_balance": -5}, "minimumBalance"),
        ({"payout_parameter": -1}, "payoutParameter"),
        ({"payout_type": PayoutType.FIXED_TERM, "payout_parameter": 0}, "payoutParameter"),
        ({"max_projection_years": 0}, "maxProjectionYears"),
        ({"ceilings": Ceilings(max_percent=-1)}, "maxPercent"),
    ],
)
def test_invalid_parameters_are_rejected(overrides, field):
    with pytest.raises(ParameterValidationError) as exc_info:
        make_params(**overrides)

    assert exc_info.value.field == field


def test_fixed_amount_is_constant():
    state = PayoutState()
    for balance in (Decimal(100000), Decimal(10)):
        assert gross_benefit(PayoutType.FIXED_AMOUNT, Decimal(1000), balance, 3, state, CTX) == 1000


def test_percent_monthly_follows_the_balance():
    state = PayoutState()
    assert gross_benefit(PayoutType.PERCENT_MONTHLY, Decimal(1), Decimal(99000), 2, state, CTX) == Decimal(990)


def test_percent_annual_is_recomputed_only_in_january():
    params = make_params(payout_type=PayoutType.PERCENT_ANNUAL, payout_parameter=1)
    state = PayoutState.start(params, CTX)
    assert state.annual_amount == Decimal(1000)

    # held mid-year regardless of the balance
    assert gross_benefit(PayoutType.PERCENT_ANNUAL, Decimal(1), Decimal(50000), 5, state, CTX) == 1000
    # January resets it from the current balance
    assert gross_benefit(PayoutType.PERCENT_ANNUAL, Decimal(1), Decimal(50000), 1, state, CTX) == 500
    assert gross_benefit(PayoutType.PERCENT_ANNUAL, Decimal(1), Decimal(80000), 2, state, CTX) == 500


def test_fixed_term_divides_by_remaining_installments():
    params = make_params(payout_type=PayoutType.FIXED_TERM, payout_parameter=10)
    state = PayoutState.start(params, CTX)
    assert state.remaining_installments == 130

    assert gross_benefit(PayoutType.FIXED_TERM, Decimal(10), Decimal(130000), 1, state, CTX) == 1000

    state.consume(PayoutType.FIXED_TERM, 11)
    state.consume(PayoutType.FIXED_TERM, 12)
    assert state.remaining_installments == 127


def test_fixed_term_pays_nothing_once_installments_run_out():
    state = PayoutState(remaining_installments=Decimal(0))
    assert gross_benefit(PayoutType.FIXED_TERM, Decimal(5), Decimal(1000), 4, state, CTX) == 0


def test_installments_are_only_tracked_for_fixed_term():
    state = PayoutState(remaining_installments=Decimal(10))
    state.consume(PayoutType.FIXED_AMOUNT, 12)
    assert state.remaining_installments == 10


@pytest.mark.parametrize(
    "payout_type, parameter, start, expected",
    [
        (PayoutType.FIXED_AMOUNT, 1000, date(2025, 1, 1), Decimal(1000)),
        (PayoutType.FIXED_AMOUNT, 1000, date(2025, 12, 1), Decimal(2000)),
        (PayoutType.PERCENT_MONTHLY, 1, date(2025, 4, 1), Decimal(1000)),
        (PayoutType.PERCENT_ANNUAL, 1.5, date(2025, 6, 1), Decimal(1500)),
        (PayoutType.FIXED_TERM, 4, date(2025, 12, 1), Decimal(100000) / 52 * 2),
    ],
)
def test_first_payment(payout_type, parameter, start, expected):
    params = make_params(payout_type=payout_type, payout_parameter=parameter, benefit_start_date=start)
    assert abs(first_payment(params, CTX) - expected) < Decimal("1e-18")


@pytest.mark.parametrize(
    "payout_type, parameter",
    [
        (PayoutType.PERCENT_MONTHLY, 2.5),
        (PayoutType.PERCENT_ANNUAL, 3),
        (PayoutType.FIXED_TERM, 26),
        (PayoutType.FIXED_AMOUNT, 50000.01),
    ],
)
def test_parameters_above_ceiling_are_rejected(payout_type, parameter):
    with pytest.raises(LimitExceededError) as exc_info:
        validate_ceiling(payout_type, parameter, Ceilings())

    assert exc_info.value.errors[0]["loc"] == ["payoutParameter"]


def test_parameters_at_ceiling_are_accepted():
    ceilings = Ceilings()
    validate_ceiling(PayoutType.PERCENT_ANNUAL, 2, ceilings)
    validate_ceiling(PayoutType.FIXED_TERM, 25, ceilings)
    validate_ceiling(PayoutType.FIXED_AMOUNT, 50000, ceilings)
