"""
Engine configuration.
Ceilings, safety caps and the decimal context every run computes in.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Context, DivisionByZero, InvalidOperation, Overflow
from typing import Tuple

DEFAULT_CORS_ORIGINS: Tuple[str, ...] = (
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
)


@dataclass(frozen=True)
class Ceilings:
    max_percent: float = 2.0
    max_term_years: float = 25.0
    max_fixed_value: float = 50000.0


@dataclass(frozen=True)
class EngineConfig:
    # precision below 9 digits loses cents on seven-figure balances
    precision: int = 28
    rounding: str = ROUND_HALF_UP

    max_projection_years: int = 100

    # calibrator safety caps
    bisection_max_iterations: int = 100
    bisection_tolerance: str = "0.01"
    sample_points: int = 6

    def __post_init__(self) -> None:
        if self.precision < 9:
            raise ValueError("precision must be at least 9 significant digits")
        if self.sample_points < 2:
            raise ValueError("sample_points must be at least 2")

    def context(self) -> Context:
        """Fresh context per run; trapped signals surface as exceptions."""
        return Context(
            prec=self.precision,
            rounding=self.rounding,
            traps=[InvalidOperation, Overflow, DivisionByZero],
        )


@dataclass(frozen=True)
class AppConfig:
    cors_origins: Tuple[str, ...] = field(default=DEFAULT_CORS_ORIGINS)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AppConfig":
        raw_origins = os.environ.get("PAYOUT_CORS_ORIGINS", "")
        origins = tuple(o.strip() for o in raw_origins.split(",") if o.strip())
        return cls(
            cors_origins=origins or DEFAULT_CORS_ORIGINS,
            log_level=os.environ.get("PAYOUT_LOG_LEVEL", "INFO").upper(),
        )


DEFAULT_ENGINE_CONFIG = EngineConfig()
