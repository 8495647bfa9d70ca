from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Context, Decimal, DecimalException
from typing import List, Optional, Tuple, Union, overload

from backend.core.config import DEFAULT_ENGINE_CONFIG, EngineConfig
from backend.core.errors import ComputationError, LimitExceededError
from backend.core.rates import add_months, full_years_between, month_label, monthly_rate
from backend.domain.payout import (
    DECEMBER,
    PayoutState,
    ProjectionParameters,
    gross_benefit,
    validate_ceiling,
)
from backend.domain.termination import (
    BalanceFloor,
    MonthSnapshot,
    RunStatus,
    TerminationCode,
    TerminationReason,
    describe_horizon,
    effective_minimum_balance,
    first_applicable,
    horizon_exceeded,
)

logger = logging.getLogger(__name__)

_ZERO = Decimal(0)
_TWO = Decimal(2)


# -----------------------------
# Results
# -----------------------------


@dataclass(frozen=True)
class MonthRecord:
    month: str  # MM/YYYY
    age: int
    starting_balance: Decimal
    gross_benefit: Decimal  # before the December doubling
    paid_benefit: Decimal
    interest: Decimal
    ending_balance: Decimal


@dataclass(frozen=True)
class ProjectionResult:
    series: Tuple[MonthRecord, ...]
    termination: TerminationReason

    @property
    def months(self) -> int:
        return len(self.series)


@dataclass(frozen=True)
class ProbeResult:
    months_elapsed: int
    final_balance: Decimal
    reached_target: bool
    stopped_for_balance: bool
    # False when the parameter broke its ceiling under suppressed limits
    valid: bool = True


@dataclass(frozen=True)
class ProbeOptions:
    """
    Calibration-only switches:
      - target_months: stop as soon as this many months were simulated
      - light: skip building MonthRecords
      - suppress_limits: ignore max age / minimum balance, force a zero floor
    """

    target_months: Optional[int] = None
    light: bool = True
    suppress_limits: bool = False


@dataclass(frozen=True)
class RunSettings:
    """Everything a run needs, resolved once before the first month."""

    context: Context
    monthly_rate: Decimal
    floor: BalanceFloor
    horizon_date: date
    horizon_months: int
    target_months: Optional[int]
    record: bool
    suppress_limits: bool

    @classmethod
    def resolve(
        cls,
        params: ProjectionParameters,
        probe: Optional[ProbeOptions],
        config: EngineConfig,
    ) -> "RunSettings":
        context = config.context()
        suppress = probe.suppress_limits if probe else False
        return cls(
            context=context,
            monthly_rate=monthly_rate(params.annual_return_rate, context),
            floor=effective_minimum_balance(params, suppress, context),
            horizon_date=_shift(params.benefit_start_date, params.horizon_months),
            horizon_months=params.horizon_months,
            target_months=probe.target_months if probe else None,
            record=not (probe and probe.light),
            suppress_limits=suppress,
        )


@dataclass
class _RunOutcome:
    records: List[MonthRecord]
    months: int
    balance: Decimal
    cursor: date
    status: RunStatus
    code: TerminationCode
    description: str


# -----------------------------
# Engine
# -----------------------------


@overload
def project(
    params: ProjectionParameters,
    probe: None = None,
    config: EngineConfig = ...,
) -> ProjectionResult: ...


@overload
def project(
    params: ProjectionParameters,
    probe: ProbeOptions,
    config: EngineConfig = ...,
) -> ProbeResult: ...


def project(
    params: ProjectionParameters,
    probe: Optional[ProbeOptions] = None,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> Union[ProjectionResult, ProbeResult]:
    """
    Simulate the payout phase month by month until a termination rule fires.

    Without ``probe`` the full series and the termination reason are returned;
    with it, only the summary the calibrator needs.

    Raises LimitExceededError when the parameter is above its ceiling (unless
    limits are suppressed), InvalidRateError for rates at or below -100% and
    ComputationError when the decimal arithmetic breaks down.
    """
    try:
        validate_ceiling(params.payout_type, params.payout_parameter, params.ceilings)
    except LimitExceededError:
        if probe is None or not probe.suppress_limits:
            raise
        return ProbeResult(
            months_elapsed=0,
            final_balance=params.initial_balance,
            reached_target=False,
            stopped_for_balance=False,
            valid=False,
        )

    try:
        settings = RunSettings.resolve(params, probe, config)
    except DecimalException as exc:
        raise ComputationError(f"could not prepare the run: {exc.__class__.__name__}") from exc
    outcome = _simulate(params, settings)

    if probe is not None:
        return ProbeResult(
            months_elapsed=outcome.months,
            final_balance=outcome.balance,
            reached_target=outcome.code is TerminationCode.TARGET_REACHED,
            stopped_for_balance=outcome.code is TerminationCode.BALANCE_DEPLETED,
        )

    termination = TerminationReason(
        status=outcome.status,
        code=outcome.code,
        description=outcome.description,
        termination_date=outcome.cursor,
        remaining_balance=outcome.balance,
        age_at_termination=full_years_between(params.client_birth_date, outcome.cursor),
    )
    logger.debug(
        "projection %s after %d months (%s)",
        termination.code.value,
        outcome.months,
        termination.month,
    )
    return ProjectionResult(series=tuple(outcome.records), termination=termination)


def run_projection(
    params: ProjectionParameters, config: EngineConfig = DEFAULT_ENGINE_CONFIG
) -> ProjectionResult:
    return project(params, None, config)


def run_probe(
    params: ProjectionParameters,
    options: ProbeOptions,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> ProbeResult:
    return project(params, options, config)


def _simulate(params: ProjectionParameters, settings: RunSettings) -> _RunOutcome:
    ctx = settings.context
    rate = settings.monthly_rate

    balance = params.initial_balance
    cursor = params.benefit_start_date
    state = PayoutState.start(params, ctx)
    records: List[MonthRecord] = []
    months = 0

    try:
        while True:
            age = full_years_between(params.client_birth_date, cursor)

            # 1) termination rules at the start of the month
            snapshot = MonthSnapshot(
                params=params,
                starting_balance=balance,
                age=age,
                remaining_installments=state.remaining_installments,
                floor=settings.floor,
            )
            rule = first_applicable(snapshot, settings.suppress_limits)
            if rule is not None:
                return _RunOutcome(
                    records, months, balance, cursor,
                    RunStatus.TERMINATED, rule.code, rule.describe(snapshot),
                )

            # 2) benefit for the month, doubled in December
            month = cursor.month
            gross = gross_benefit(
                params.payout_type, params.payout_parameter, balance, month, state, ctx
            )
            due = ctx.multiply(gross, _TWO) if month == DECEMBER else gross

            # 3) pay, then accrue interest on what is left
            paid = max(_ZERO, min(due, balance))
            after_payment = ctx.subtract(balance, paid)
            interest = ctx.multiply(after_payment, rate) if after_payment > 0 else _ZERO
            ending = ctx.add(after_payment, interest)
            _ensure_finite(gross, paid, interest, ending)

            if settings.record:
                records.append(
                    MonthRecord(
                        month=month_label(cursor),
                        age=age,
                        starting_balance=balance,
                        gross_benefit=gross,
                        paid_benefit=paid,
                        interest=interest,
                        ending_balance=ending,
                    )
                )

            # 4) advance
            balance = ending
            cursor = _shift(cursor, 1)
            months += 1
            state.consume(params.payout_type, month)

            if settings.target_months and months >= settings.target_months:
                return _RunOutcome(
                    records, months, balance, cursor,
                    RunStatus.INTERRUPTED, TerminationCode.TARGET_REACHED,
                    f"Stopped: reached the target of {settings.target_months} months.",
                )
            if horizon_exceeded(cursor, settings.horizon_date, months, settings.horizon_months):
                return _RunOutcome(
                    records, months, balance, cursor,
                    RunStatus.INTERRUPTED, TerminationCode.MAX_HORIZON,
                    describe_horizon(params.max_projection_years),
                )
    except DecimalException as exc:
        raise ComputationError(
            f"arithmetic failure after {months} months: {exc.__class__.__name__}"
        ) from exc


def _shift(value: date, months: int) -> date:
    try:
        return add_months(value, months)
    except (ValueError, OverflowError) as exc:
        raise ComputationError(f"date out of range: {exc}") from exc


def _ensure_finite(*values: Decimal) -> None:
    for value in values:
        if not value.is_finite():
            raise ComputationError(f"non-finite value in projection: {value}")


__all__ = [
    "MonthRecord",
    "ProjectionResult",
    "ProbeResult",
    "ProbeOptions",
    "RunSettings",
    "project",
    "run_projection",
    "run_probe",
]
