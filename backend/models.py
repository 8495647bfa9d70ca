from __future__ import annotations

from datetime import MAXYEAR, date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from backend.core.config import DEFAULT_ENGINE_CONFIG, Ceilings
from backend.domain.payout import PayoutType, ProjectionParameters


def _check_horizon(start: date, years: int) -> None:
    if start.year + years > MAXYEAR:
        raise ValueError(
            f"benefitStartDate plus {years} projection years must end by year {MAXYEAR}"
        )


class CeilingFields(BaseModel):
    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    maxPercent: float = Field(default=2.0, ge=0)
    maxTermYears: float = Field(default=25.0, ge=0)
    maxFixedValue: float = Field(default=50000.0, ge=0)

    def ceilings(self) -> Ceilings:
        return Ceilings(
            max_percent=self.maxPercent,
            max_term_years=self.maxTermYears,
            max_fixed_value=self.maxFixedValue,
        )


class ProjectionRequest(CeilingFields):
    initialBalance: float = Field(ge=0)
    benefitStartDate: date
    clientBirthDate: date
    # percent a year; the engine rejects -100 and below
    annualReturnRate: float
    payoutType: PayoutType
    payoutParameter: float = Field(ge=0)
    minimumBalance: float = Field(default=0.0, ge=0)
    maxAge: int = Field(default=0, ge=0, le=150)
    maxProjectionYears: int = Field(default=100, ge=1, le=150)

    @model_validator(mode="after")
    def ensure_validity(self) -> "ProjectionRequest":
        if self.clientBirthDate > self.benefitStartDate:
            raise ValueError("clientBirthDate must be on or before benefitStartDate")
        _check_horizon(self.benefitStartDate, self.maxProjectionYears)
        if self.payoutType is PayoutType.FIXED_TERM and self.payoutParameter <= 0:
            raise ValueError("payoutParameter must be greater than zero years for FIXED_TERM")
        return self

    def to_parameters(self) -> ProjectionParameters:
        return ProjectionParameters(
            initial_balance=self.initialBalance,
            benefit_start_date=self.benefitStartDate,
            client_birth_date=self.clientBirthDate,
            annual_return_rate=self.annualReturnRate,
            payout_type=self.payoutType,
            payout_parameter=self.payoutParameter,
            minimum_balance=self.minimumBalance,
            max_age=self.maxAge,
            max_projection_years=self.maxProjectionYears,
            ceilings=self.ceilings(),
        )


class CalibrationRequest(CeilingFields):
    initialBalance: float = Field(gt=0)
    benefitStartDate: date
    clientBirthDate: date
    annualReturnRate: float
    targetDurationYears: float = Field(gt=0, le=150)

    @model_validator(mode="after")
    def ensure_validity(self) -> "CalibrationRequest":
        if self.clientBirthDate > self.benefitStartDate:
            raise ValueError("clientBirthDate must be on or before benefitStartDate")
        _check_horizon(self.benefitStartDate, DEFAULT_ENGINE_CONFIG.max_projection_years)
        return self


class FirstBenefitRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    initialBalance: float = Field(gt=0)
    benefitStartDate: date
    payoutType: PayoutType
    payoutParameter: float = Field(ge=0)

    @model_validator(mode="after")
    def ensure_validity(self) -> "FirstBenefitRequest":
        if self.payoutType is PayoutType.FIXED_TERM and self.payoutParameter <= 0:
            raise ValueError("payoutParameter must be greater than zero years for FIXED_TERM")
        return self


class EligibilityRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    dateOfBirth: date
    planMembershipYears: float = Field(ge=0)
    # defaults to today
    referenceDate: Optional[date] = None

    @model_validator(mode="after")
    def ensure_validity(self) -> "EligibilityRequest":
        if self.referenceDate is not None and self.dateOfBirth > self.referenceDate:
            raise ValueError("dateOfBirth must be on or before referenceDate")
        return self
