from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum
from typing import Union

MAX_ERROR = sys.float_info.max


class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    SIMULATION = "simulation"
    STABILITY = "stability"
    FIELD_WRITE = "field_write"
    CANCELLED = "cancelled"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class FlightSummary:
    apogee_m: float
    flight_time_s: float


@dataclass(frozen=True)
class EvaluationFailed:
    kind: FailureKind
    reason: str

    @property
    def total_error(self) -> float:
        return MAX_ERROR


@dataclass(frozen=True)
class StabilityPenalty:
    """Stability outside the configured window; graded so the search can climb back."""

    total_error: float
    stability: float


@dataclass(frozen=True)
class Scored:
    total_error: float
    altitude_score: float
    duration_score: float
    apogee_m: float
    flight_time_s: float
    stability: float


SimulationOutcome = Union[FlightSummary, EvaluationFailed]
Evaluation = Union[Scored, StabilityPenalty, EvaluationFailed]
