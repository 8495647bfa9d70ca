"""Response contracts for the payout endpoints."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from backend.core.projection import MonthRecord, ProjectionResult
from backend.domain.eligibility import REQUIRED_AGE, REQUIRED_MEMBERSHIP_MONTHS, Eligibility
from backend.domain.termination import TerminationReason

CENT = Decimal("0.01")


def money(value: Decimal) -> float:
    return float(value.quantize(CENT, rounding=ROUND_HALF_UP))


class MonthRecordOut(BaseModel):
    """One simulated month, rounded to cents."""

    month: str = Field(..., description="MM/YYYY")
    age: int
    startingBalance: float
    grossBenefit: float
    paidBenefit: float
    interest: float
    endingBalance: float

    @classmethod
    def from_record(cls, record: MonthRecord) -> "MonthRecordOut":
        return cls(
            month=record.month,
            age=record.age,
            startingBalance=money(record.starting_balance),
            grossBenefit=money(record.gross_benefit),
            paidBenefit=money(record.paid_benefit),
            interest=money(record.interest),
            endingBalance=money(record.ending_balance),
        )


class TerminationOut(BaseModel):
    status: str
    code: str
    description: str
    terminationDate: str = Field(..., description="MM/YYYY")
    remainingBalance: float
    ageAtTermination: int

    @classmethod
    def from_reason(cls, reason: TerminationReason) -> "TerminationOut":
        return cls(
            status=reason.status.value,
            code=reason.code.value,
            description=reason.description,
            terminationDate=reason.month,
            remainingBalance=money(reason.remaining_balance),
            ageAtTermination=reason.age_at_termination,
        )


class ProjectionResponse(BaseModel):
    series: List[MonthRecordOut]
    termination: TerminationOut

    @classmethod
    def from_result(cls, result: ProjectionResult) -> "ProjectionResponse":
        return cls(
            series=[MonthRecordOut.from_record(r) for r in result.series],
            termination=TerminationOut.from_reason(result.termination),
        )


class CeilingsApplied(BaseModel):
    maxPercent: float
    maxTermYears: float
    maxFixedValue: float


class CalibrationResults(BaseModel):
    # None when the search was skipped or aborted
    fixedAmount: Optional[float]
    fixedAmountCapped: bool
    percentAnnual: Optional[float]
    percentAnnualCapped: bool
    fixedTermYears: float
    fixedTermCapped: bool


class CalibrationResponse(BaseModel):
    targetDurationYears: float
    ceilingsApplied: CeilingsApplied
    results: CalibrationResults


class FirstBenefitResponse(BaseModel):
    payoutType: str
    payoutParameter: float
    firstBenefit: float
    note: Optional[str] = None


class EligibilityDetails(BaseModel):
    requiredAge: int
    calculatedAge: int
    ageMet: bool
    requiredMembershipMonths: int
    calculatedMembershipMonths: float
    membershipMet: bool


class EligibilityResponse(BaseModel):
    isEligible: bool
    details: EligibilityDetails

    @classmethod
    def from_eligibility(cls, result: Eligibility) -> "EligibilityResponse":
        return cls(
            isEligible=result.eligible,
            details=EligibilityDetails(
                requiredAge=REQUIRED_AGE,
                calculatedAge=result.age,
                ageMet=result.age_met,
                requiredMembershipMonths=REQUIRED_MEMBERSHIP_MONTHS,
                calculatedMembershipMonths=float(result.membership_months),
                membershipMet=result.membership_met,
            ),
        )
