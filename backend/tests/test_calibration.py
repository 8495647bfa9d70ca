from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

import backend.core.calibration as calibration_module
from backend.core.calibration import (
    bisect_fixed_amount,
    calibrate,
    full_duration,
    sample_percent_annual,
    target_months_for,
)
from backend.core.config import Ceilings
from backend.core.errors import ComputationError, InvalidRateError
from backend.core.projection import ProbeOptions, run_probe
from backend.domain.payout import PayoutType, ProjectionParameters
from backend.domain.termination import TerminationCode
from backend.models import CalibrationRequest


def make_request(**overrides) -> CalibrationRequest:
    values = dict(
        initialBalance=120000,
        benefitStartDate="2025-01-01",
        clientBirthDate="1960-06-15",
        annualReturnRate=0,
        targetDurationYears=10,
    )
    values.update(overrides)
    return CalibrationRequest.model_validate(values)


def factory(initial_balance=120000, rate=0):
    def make_params(payout_type: PayoutType, parameter: Decimal) -> ProjectionParameters:
        return ProjectionParameters(
            initial_balance=initial_balance,
            benefit_start_date=date(2025, 1, 1),
            client_birth_date=date(1960, 6, 15),
            annual_return_rate=rate,
            payout_type=payout_type,
            payout_parameter=parameter,
            ceilings=Ceilings(),
        )

    return make_params


def test_target_months_rounds_fractional_years():
    assert target_months_for(10) == 120
    assert target_months_for(2.5) == 30
    assert target_months_for(0.01) == 1


def test_fixed_term_is_capped_at_ceiling():
    response = calibrate(make_request(targetDurationYears=30, maxTermYears=25))

    assert response.results.fixedTermYears == 25
    assert response.results.fixedTermCapped is True
    assert response.ceilingsApplied.maxTermYears == 25


def test_fixed_term_within_ceiling_is_the_target():
    response = calibrate(make_request(targetDurationYears=10))

    assert response.results.fixedTermYears == 10
    assert response.results.fixedTermCapped is False


def test_fixed_amount_lasts_the_target_at_zero_return():
    """
    120k over 10 years of 13 payments is 923.08 a month; anything up to
    120k / 128 still empties the account exactly in the last December.
    """
    amount = calibrate(make_request()).results.fixedAmount

    assert 120000 / 130 - 0.01 <= amount < 120000 / 128

    probe = run_probe(
        factory()(PayoutType.FIXED_AMOUNT, Decimal(str(amount))),
        ProbeOptions(target_months=120, suppress_limits=True),
    )
    assert probe.reached_target
    assert probe.final_balance <= Decimal("0.01")


def test_fixed_amount_with_returns_pays_more_than_without():
    flat = bisect_fixed_amount(factory(), 120, Decimal(10000))
    growing = bisect_fixed_amount(factory(rate=6), 120, Decimal(10000))

    assert growing > flat


def test_fixed_amount_search_respects_upper_bound():
    amount = bisect_fixed_amount(factory(), 12, Decimal(500))
    assert amount <= 500


def test_fixed_amount_search_aborts_on_computation_error(monkeypatch):
    def _broken_probe(*args, **kwargs):
        raise ComputationError("boom")

    monkeypatch.setattr(calibration_module, "run_probe", _broken_probe)

    assert bisect_fixed_amount(factory(), 120, Decimal(10000)) is None
    response = calibrate(make_request())
    assert response.results.fixedAmount is None
    assert response.results.fixedAmountCapped is False


def test_percent_annual_beats_every_phase_one_sample():
    make_params = factory()
    chosen = sample_percent_annual(make_params, 120, 2.0)

    assert Decimal(0) <= chosen <= Decimal(2)

    def score(percent):
        return abs(full_duration(make_params, percent, 1200) - 120)

    grid = [Decimal(2) / 5 * i for i in range(6)]
    assert score(chosen) <= min(score(p) for p in grid)


def test_percent_annual_calibration_is_deterministic():
    first = calibrate(make_request(annualReturnRate=5))
    second = calibrate(make_request(annualReturnRate=5))

    assert first.results.percentAnnual == second.results.percentAnnual
    assert first.results.percentAnnualCapped is False


def test_percent_annual_skipped_without_ceiling():
    response = calibrate(make_request(maxPercent=0))

    assert response.results.percentAnnual is None
    assert response.results.percentAnnualCapped is False


def test_bad_sample_does_not_abort_sampling(monkeypatch):
    real_run_projection = calibration_module.run_projection
    seen = []

    def _flaky(params, config=None):
        seen.append(params.payout_parameter)
        if params.payout_parameter == Decimal("0.4"):
            raise ComputationError("ill-conditioned sample")
        return real_run_projection(params)

    monkeypatch.setattr(calibration_module, "run_projection", _flaky)
    chosen = sample_percent_annual(factory(), 120, 2.0)

    assert Decimal("0.4") in seen
    assert chosen is not None
    assert chosen != Decimal("0.4")


def test_invalid_rate_fails_the_request():
    with pytest.raises(InvalidRateError):
        calibrate(make_request(annualReturnRate=-100))


def record_samples(monkeypatch):
    """Wrap run_projection and keep (percent, duration) in call order."""
    real_run_projection = calibration_module.run_projection
    seen = []

    def _recording(params, config=None):
        result = real_run_projection(params)
        duration = result.months
        if result.termination.code is TerminationCode.MAX_HORIZON:
            duration = 1200
        seen.append((params.payout_parameter, duration))
        return result

    monkeypatch.setattr(calibration_module, "run_projection", _recording)
    return seen


def phase_one_winner(samples, target_months):
    best, best_score = Decimal(0), None
    for percent, duration in samples:
        score = abs(duration - target_months)
        if best_score is None or score < best_score:
            best, best_score = percent, score
    return best


@pytest.mark.parametrize(
    "target_months, expected_winner",
    [
        (120, None),
        # nothing is drawn at 0%, so it runs to the horizon
        (1200, Decimal(0)),
        # the highest percent empties the account fastest
        (12, Decimal(2)),
    ],
)
def test_second_phase_refines_around_the_first_phase_winner(monkeypatch, target_months, expected_winner):
    seen = record_samples(monkeypatch)
    sample_percent_annual(factory(), target_months, 2.0)

    percents = [percent for percent, _ in seen]
    assert len(percents) == len(set(percents))

    phase1, phase2 = seen[:6], percents[6:]
    assert [p for p, _ in phase1] == [Decimal("0.4") * i for i in range(6)]
    assert phase2

    winner = phase_one_winner(phase1, target_months)
    if expected_winner is not None:
        assert winner == expected_winner
    low = max(Decimal(0), winner - Decimal("0.2"))
    high = min(Decimal(2), winner + Decimal("0.2"))
    assert all(low <= p <= high for p in phase2)

    if winner == 0:
        assert min(phase2) > 0
    elif winner == 2:
        assert max(phase2) < 2
