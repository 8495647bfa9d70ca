"""
Parameter calibration: which payout parameter makes the benefit last the target duration?

  - FIXED_TERM: the term is the duration, only capped to the ceiling
  - FIXED_AMOUNT: duration falls monotonically with the amount -> bisection
  - PERCENT_ANNUAL: duration is not monotonic in the percent -> two-phase grid sampling
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from functools import partial
from typing import Callable, List, Optional, Tuple

from backend.core.config import DEFAULT_ENGINE_CONFIG, Ceilings, EngineConfig
from backend.core.errors import ComputationError, LimitExceededError
from backend.core.projection import ProbeOptions, run_probe, run_projection
from backend.core.rates import monthly_rate, to_decimal
from backend.domain.payout import PayoutType, ProjectionParameters, validate_ceilings
from backend.domain.termination import TerminationCode
from backend.models import CalibrationRequest
from backend.schemas.payout import CalibrationResponse, CalibrationResults, CeilingsApplied

logger = logging.getLogger(__name__)

_ZERO = Decimal(0)
_TWO = Decimal(2)

ParamsFactory = Callable[[PayoutType, Decimal], ProjectionParameters]


@dataclass(frozen=True)
class Sample:
    percent: Decimal
    duration: Optional[int]  # None when the sample was invalid

    def score(self, target_months: int) -> Optional[int]:
        if self.duration is None:
            return None
        return abs(self.duration - target_months)


def target_months_for(years: float) -> int:
    months = (to_decimal(years) * 12).to_integral_value(rounding=ROUND_HALF_UP)
    return max(int(months), 1)


def calibrate(
    request: CalibrationRequest, config: EngineConfig = DEFAULT_ENGINE_CONFIG
) -> CalibrationResponse:
    """
    Find, per payout type, the parameter that lasts ``targetDurationYears``.

    Only validation of the request itself raises; a bad probe never aborts the
    whole calibration.
    """
    ceilings = request.ceilings()
    validate_ceilings(ceilings)
    # raises InvalidRateError before any probe runs
    monthly_rate(request.annualReturnRate, config.context())

    target_months = target_months_for(request.targetDurationYears)
    make_params: ParamsFactory = partial(
        _make_params, request=request, ceilings=ceilings, config=config
    )

    upper = min(
        config.context().divide(to_decimal(request.initialBalance), Decimal(12)),
        to_decimal(ceilings.max_fixed_value),
    )
    fixed_amount = bisect_fixed_amount(make_params, target_months, upper, config)
    fixed_amount, fixed_amount_capped = _cap(fixed_amount, ceilings.max_fixed_value)

    percent_annual = sample_percent_annual(
        make_params, target_months, ceilings.max_percent, config
    )
    percent_annual, percent_annual_capped = _cap(percent_annual, ceilings.max_percent)

    fixed_term_years = request.targetDurationYears
    fixed_term_capped = False
    if fixed_term_years > ceilings.max_term_years:
        fixed_term_years = ceilings.max_term_years
        fixed_term_capped = True

    logger.info(
        "calibrated %s years: fixed=%s percent=%s term=%s",
        request.targetDurationYears,
        fixed_amount,
        percent_annual,
        fixed_term_years,
    )

    return CalibrationResponse(
        targetDurationYears=request.targetDurationYears,
        ceilingsApplied=CeilingsApplied(
            maxPercent=ceilings.max_percent,
            maxTermYears=ceilings.max_term_years,
            maxFixedValue=ceilings.max_fixed_value,
        ),
        results=CalibrationResults(
            fixedAmount=_rounded(fixed_amount, "0.01"),
            fixedAmountCapped=fixed_amount_capped,
            percentAnnual=_rounded(percent_annual, "0.0001"),
            percentAnnualCapped=percent_annual_capped,
            fixedTermYears=fixed_term_years,
            fixedTermCapped=fixed_term_capped,
        ),
    )


def _make_params(
    payout_type: PayoutType,
    parameter: Decimal,
    *,
    request: CalibrationRequest,
    ceilings: Ceilings,
    config: EngineConfig,
) -> ProjectionParameters:
    # no explicit floor and no age limit while calibrating
    return ProjectionParameters(
        initial_balance=request.initialBalance,
        benefit_start_date=request.benefitStartDate,
        client_birth_date=request.clientBirthDate,
        annual_return_rate=request.annualReturnRate,
        payout_type=payout_type,
        payout_parameter=parameter,
        minimum_balance=_ZERO,
        max_age=0,
        max_projection_years=config.max_projection_years,
        ceilings=ceilings,
    )


def bisect_fixed_amount(
    make_params: ParamsFactory,
    target_months: int,
    upper: Decimal,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> Optional[Decimal]:
    """
    Bisection on the monthly amount over [0, upper].

    Each midpoint runs a light, limit-suppressed probe cut off at the target:
    running dry early means the amount is too high, reaching the target with
    money left means it is too low. Returns None if a probe breaks down.
    """
    ctx = config.context()
    tolerance = Decimal(config.bisection_tolerance)
    options = ProbeOptions(target_months=target_months, light=True, suppress_limits=True)

    low, high = _ZERO, to_decimal(upper)
    best: Optional[Decimal] = None

    for _ in range(config.bisection_max_iterations):
        if abs(high - low) < tolerance:
            break
        mid = ctx.divide(ctx.add(low, high), _TWO)
        if mid == low or mid == high:
            break

        try:
            probe = run_probe(make_params(PayoutType.FIXED_AMOUNT, mid), options, config)
        except ComputationError as exc:
            logger.error("fixed amount probe failed at %s: %s", mid, exc)
            return None

        if not probe.valid:
            high = mid
        elif probe.stopped_for_balance and probe.months_elapsed < target_months:
            high = mid
        elif probe.reached_target and abs(probe.final_balance) <= tolerance:
            best = mid
            break
        elif probe.months_elapsed >= target_months and probe.final_balance > tolerance:
            low = best = mid
        elif probe.stopped_for_balance:
            high = mid
        else:
            low = best = mid

    if best is not None:
        return best
    # TODO: fuzz this fallback against rate/ceiling combinations; it is not
    # guaranteed to leave a near-zero balance at the target month.
    return ctx.divide(ctx.add(low, high), _TWO)


def full_duration(
    make_params: ParamsFactory,
    percent: Decimal,
    horizon_months: int,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> Optional[int]:
    """Months a full PERCENT_ANNUAL projection lasts, or None for an invalid sample."""
    try:
        result = run_projection(make_params(PayoutType.PERCENT_ANNUAL, percent), config)
    except LimitExceededError as exc:
        logger.warning("sample %s%% skipped: %s", percent, exc)
        return None
    except ComputationError as exc:
        logger.warning("sample %s%% failed: %s", percent, exc)
        return None

    if result.termination.code is TerminationCode.MAX_HORIZON:
        return horizon_months
    return result.months


def sample_percent_annual(
    make_params: ParamsFactory,
    target_months: int,
    max_percent: float,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> Optional[Decimal]:
    """
    Two-phase grid search on the annual percentage.

    Phase 1 scores ``sample_points`` evenly spaced percents over [0, max_percent]
    by |duration - target|. Phase 2 samples the same number of points in a
    window of half a phase-1 step around the phase-1 winner. The best score
    over both phases wins; ties keep the earlier sample.
    """
    ceiling = to_decimal(max_percent)
    if ceiling <= 0:
        logger.info("percent annual search skipped (ceiling %s)", max_percent)
        return None

    ctx = config.context()
    n = config.sample_points
    horizon_months = config.max_projection_years * 12
    evaluate = partial(full_duration, make_params, horizon_months=horizon_months, config=config)

    step = ctx.divide(ceiling, Decimal(n - 1))
    phase1 = [ctx.multiply(step, Decimal(i)) for i in range(n)]
    samples1 = _run_samples(phase1, evaluate, target_months)

    best_overall, best_score = _best(samples1, target_months, (_ZERO, None))
    best_phase1 = best_overall
    logger.info("phase 1 best: %s%% (diff %s months)", best_phase1, best_score)

    half_step = ctx.divide(step, _TWO)
    window_low = max(_ZERO, ctx.subtract(best_phase1, half_step))
    window_high = min(ceiling, ctx.add(best_phase1, half_step))
    step2 = ctx.divide(ctx.subtract(window_high, window_low), Decimal(n - 1))
    phase2 = [
        ctx.add(window_low, ctx.multiply(step2, Decimal(i)))
        for i in range(n)
    ]
    phase2 = [p for p in phase2 if p not in phase1 and p <= ceiling]
    samples2 = _run_samples(phase2, evaluate, target_months)

    best_overall, best_score = _best(samples2, target_months, (best_overall, best_score))
    logger.info("phase 2 best: %s%% (diff %s months)", best_overall, best_score)
    return best_overall


def _run_samples(
    points: List[Decimal], evaluate: Callable[[Decimal], Optional[int]], target_months: int
) -> List[Sample]:
    samples = []
    for percent in points:
        sample = Sample(percent, evaluate(percent))
        logger.debug("sample %s%%: duration %s, diff %s", percent, sample.duration, sample.score(target_months))
        samples.append(sample)
    return samples


def _best(
    samples: List[Sample], target_months: int, start: Tuple[Decimal, Optional[int]]
) -> Tuple[Decimal, Optional[int]]:
    best_percent, best_score = start
    for sample in samples:
        score = sample.score(target_months)
        if score is None:
            continue
        if best_score is None or score < best_score:
            best_percent, best_score = sample.percent, score
    return best_percent, best_score


def _cap(value: Optional[Decimal], ceiling: float) -> Tuple[Optional[Decimal], bool]:
    if value is None:
        return None, False
    limit = to_decimal(ceiling)
    if value > limit:
        return limit, True
    return value, False


def _rounded(value: Optional[Decimal], places: str) -> Optional[float]:
    if value is None:
        return None
    return float(value.quantize(Decimal(places), rounding=ROUND_HALF_UP))
