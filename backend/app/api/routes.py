"""HTTP routes for the payout API."""

import logging
from datetime import date
from http import HTTPStatus
from typing import Any, Dict

from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from backend.core.calibration import calibrate
from backend.core.config import DEFAULT_ENGINE_CONFIG
from backend.core.errors import ComputationError, ParameterValidationError
from backend.core.projection import run_projection
from backend.domain.eligibility import check_eligibility
from backend.domain.payout import INSTALLMENTS_PER_YEAR, PayoutType, ProjectionParameters, first_payment
from backend.models import CalibrationRequest, EligibilityRequest, FirstBenefitRequest, ProjectionRequest
from backend.schemas.payout import EligibilityResponse, FirstBenefitResponse, ProjectionResponse, money

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__)


@api_bp.errorhandler(ValidationError)
def _handle_validation_error(exc: ValidationError):
    """Convert Pydantic validation errors into JSON responses."""
    logger.warning("rejected %s: %d validation error(s)", request.path, exc.error_count())
    detail = exc.errors(include_url=False, include_context=False, include_input=False)
    return jsonify({"detail": detail}), HTTPStatus.BAD_REQUEST


@api_bp.errorhandler(ParameterValidationError)
def _handle_parameter_error(exc: ParameterValidationError):
    logger.warning("rejected %s: %s", request.path, exc)
    return jsonify({"detail": exc.errors}), HTTPStatus.BAD_REQUEST


@api_bp.errorhandler(ComputationError)
def _handle_computation_error(exc: ComputationError):
    logger.exception("computation failed on %s", request.path)
    return (
        jsonify({"detail": "internal error while computing the projection"}),
        HTTPStatus.INTERNAL_SERVER_ERROR,
    )


def _payload() -> Dict[str, Any]:
    raw_payload = request.get_json(force=True, silent=True)
    if not isinstance(raw_payload, dict):
        raise ParameterValidationError("request body must be a JSON object")
    return raw_payload


@api_bp.get("/ping")
def ping() -> Any:
    """Health-check endpoint."""
    return jsonify({"message": "pong"})


@api_bp.post("/payout/projection")
def projection() -> Any:
    """Month-by-month payout projection with its termination reason."""
    payload = ProjectionRequest.model_validate(_payload())
    result = run_projection(payload.to_parameters())
    return jsonify(ProjectionResponse.from_result(result).model_dump())


@api_bp.post("/payout/calibration")
def calibration() -> Any:
    """Payout parameters that make the balance last the target duration."""
    payload = CalibrationRequest.model_validate(_payload())
    return jsonify(calibrate(payload).model_dump())


@api_bp.post("/payout/first-benefit")
def first_benefit() -> Any:
    """Estimate of the first month's benefit for a payout type."""
    payload = FirstBenefitRequest.model_validate(_payload())
    params = ProjectionParameters(
        initial_balance=payload.initialBalance,
        benefit_start_date=payload.benefitStartDate,
        client_birth_date=payload.benefitStartDate,
        annual_return_rate=0,
        payout_type=payload.payoutType,
        payout_parameter=payload.payoutParameter,
    )
    amount = first_payment(params, DEFAULT_ENGINE_CONFIG.context())

    note = None
    if payload.payoutType in (PayoutType.PERCENT_MONTHLY, PayoutType.PERCENT_ANNUAL):
        note = "First month only; later payments follow the balance."
    elif payload.payoutType is PayoutType.FIXED_TERM:
        installments = payload.payoutParameter * INSTALLMENTS_PER_YEAR
        note = f"Spread over {installments:g} installments ({INSTALLMENTS_PER_YEAR} per year)."
    if payload.benefitStartDate.month == 12:
        note = ((note + " ") if note else "") + "Includes the December extra payment."

    response = FirstBenefitResponse(
        payoutType=payload.payoutType.value,
        payoutParameter=payload.payoutParameter,
        firstBenefit=money(amount),
        note=note,
    )
    return jsonify(response.model_dump())


@api_bp.post("/payout/eligibility")
def eligibility() -> Any:
    """Whether the client may start receiving benefits."""
    payload = EligibilityRequest.model_validate(_payload())
    on = payload.referenceDate or date.today()
    result = check_eligibility(
        payload.dateOfBirth, payload.planMembershipYears, on, DEFAULT_ENGINE_CONFIG.context()
    )
    return jsonify(EligibilityResponse.from_eligibility(result).model_dump())
