from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal, Mapping

from airtune.engine.optimizer.errors import InvalidConfigError

THICKNESS = "thickness"
ROOT_CHORD = "root_chord"
HEIGHT = "height"
FIN_COUNT = "fin_count"
NOSE_LENGTH = "nose_length"
NOSE_WALL_THICKNESS = "nose_wall_thickness"
PARAMETER_KEYS = (THICKNESS, ROOT_CHORD, HEIGHT, FIN_COUNT, NOSE_LENGTH, NOSE_WALL_THICKNESS)

ALTITUDE_SCORE = "altitude_score"
DURATION_SCORE = "duration_score"
STAGE1_PARACHUTE = "stage1_parachute"
STAGE2_PARACHUTE = "stage2_parachute"
STAGE_KEYS = (STAGE1_PARACHUTE, STAGE2_PARACHUTE)

NO_PARACHUTE = "None"

Algorithm = Literal["nelder_mead", "grid"]


@dataclass(frozen=True)
class Range:
    """Closed interval where either side may be unbounded (±inf)."""

    min: float = -math.inf
    max: float = math.inf

    def __post_init__(self):
        if math.isnan(self.min) or math.isnan(self.max):
            raise InvalidConfigError("range bounds must be numbers")
        if self.min > self.max:
            raise InvalidConfigError(f"range minimum {self.min} exceeds maximum {self.max}")

    @classmethod
    def of(cls, lower: float | None, upper: float | None) -> "Range":
        return cls(
            min=-math.inf if lower is None else float(lower),
            max=math.inf if upper is None else float(upper),
        )

    @property
    def unbounded(self) -> bool:
        return math.isinf(self.min) and math.isinf(self.max)

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max

    def distance(self, value: float) -> float:
        if value < self.min:
            return self.min - value
        if value > self.max:
            return value - self.max
        return 0.0


@dataclass(frozen=True)
class OptimizationConfig:
    ork_path: str = "rocket.ork"
    altitude_range: Range = field(default_factory=Range)
    duration_range: Range = field(default_factory=Range)
    stability_range: Range = field(default_factory=Range)
    enabled: Mapping[str, bool] = field(default_factory=dict)
    algorithm: Algorithm = "nelder_mead"

    def __post_init__(self):
        if self.algorithm not in ("nelder_mead", "grid"):
            raise InvalidConfigError(f"unknown algorithm: {self.algorithm}")
        object.__setattr__(self, "enabled", MappingProxyType(dict(self.enabled)))

    def is_enabled(self, key: str) -> bool:
        return bool(self.enabled.get(key, True))


@dataclass(frozen=True)
class OriginalSnapshot:
    values: Mapping[str, float]
    stage_presets: tuple[Any, Any]
    stage_names: tuple[str, str]


@dataclass(frozen=True)
class BestResult:
    values: Mapping[str, float]
    stage1_parachute: str
    stage2_parachute: str
    apogee_m: float
    flight_time_s: float
    altitude_score: float
    duration_score: float
    total_error: float

    def parachute(self, stage: int) -> str:
        return self.stage1_parachute if stage == 1 else self.stage2_parachute

    def as_dict(self) -> dict[str, float]:
        return {
            **self.values,
            "apogee": self.apogee_m,
            "duration": self.flight_time_s,
            "altitude_score": self.altitude_score,
            "duration_score": self.duration_score,
            "total_score": self.total_error,
        }
