"""Error taxonomy shared by the projection engine, the calibrator and the API."""

from __future__ import annotations

from typing import Dict, List, Optional


class PayoutError(Exception):
    """Base class for every error raised by the payout engine."""


class ParameterValidationError(PayoutError, ValueError):
    """A missing, malformed or out-of-range input.

    ``errors`` mirrors the shape of pydantic's ``ValidationError.errors()`` so
    the HTTP layer can render both the same way.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field
        self.errors: List[Dict[str, object]] = [
            {"loc": [field] if field else [], "msg": message}
        ]


class InvalidRateError(ParameterValidationError):
    def __init__(self, message: str):
        super().__init__(message, field="annualReturnRate")


class LimitExceededError(ParameterValidationError):
    """The payout parameter is above its configured ceiling."""

    def __init__(self, message: str, ceiling: float):
        super().__init__(message, field="payoutParameter")
        self.ceiling = ceiling


class ComputationError(PayoutError, ArithmeticError):
    """Arithmetic in a single run produced NaN, infinity or a decimal signal."""
