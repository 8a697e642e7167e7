from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Iterator

from airtune.core.units import cm_to_m, identity, m_to_cm
from airtune.engine.optimizer import interfaces
from airtune.engine.optimizer.errors import InvalidBoundsError
from airtune.engine.optimizer.interfaces import Component
from airtune.engine.optimizer.models import (
    FIN_COUNT,
    HEIGHT,
    NOSE_LENGTH,
    NOSE_WALL_THICKNESS,
    ROOT_CHORD,
    THICKNESS,
    OptimizationConfig,
)

logger = logging.getLogger("airtune.optimizer")

_MIN_STEP = 0.01
_MIN_INTEGER_STEP = 1.0


@dataclass
class Parameter:
    """One tunable quantity. Bounds and values are raw units (cm, or a count)."""

    key: str
    label: str
    unit: str
    absolute_min: float
    absolute_max: float
    step: float
    to_model: Callable[[float], float]
    from_model: Callable[[float], float]
    integer: bool = False
    current_min: float = field(init=False)
    current_max: float = field(init=False)
    last_value: float | None = None

    def __post_init__(self):
        self.current_min = self.absolute_min
        self.current_max = self.absolute_max

    @property
    def display_name(self) -> str:
        return f"{self.label} ({self.unit})" if self.unit else self.label

    def clamp(self, value: float) -> float:
        clamped = max(self.current_min, min(self.current_max, float(value)))
        if self.integer:
            clamped = float(math.floor(clamped + 0.5))
        return clamped


def default_parameters() -> list[Parameter]:
    return [
        Parameter(THICKNESS, "Fin Thickness", "cm", 0.0, math.inf, 0.05, cm_to_m, m_to_cm),
        Parameter(ROOT_CHORD, "Root Chord", "cm", 0.0, math.inf, 1.0, cm_to_m, m_to_cm),
        Parameter(HEIGHT, "Fin Height", "cm", 0.0, math.inf, 1.0, cm_to_m, m_to_cm),
        Parameter(FIN_COUNT, "Number of Fins", "", 1.0, math.inf, 1.0, identity, identity, integer=True),
        Parameter(NOSE_LENGTH, "Nose Cone Length", "cm", 0.0, math.inf, 1.0, cm_to_m, m_to_cm),
        Parameter(
            NOSE_WALL_THICKNESS, "Nose Cone Wall Thickness", "cm", 0.0, math.inf, 0.05, cm_to_m, m_to_cm
        ),
    ]


def _log_to_logger(message: str, level: int = logging.INFO) -> None:
    logger.log(level, message)


def _recompute_step(param: Parameter) -> float:
    low, high = param.current_min, param.current_max
    floor = _MIN_INTEGER_STEP if param.integer else _MIN_STEP
    if abs(high - low) < 1e-9:
        step = 0.0
    elif math.isinf(low) or math.isinf(high):
        bounded = low if not math.isinf(low) else high
        step = floor if math.isinf(bounded) else max(abs(bounded) * 0.1, floor)
    else:
        step = max((high - low) / 10.0, floor)
    if param.integer:
        step = max(_MIN_INTEGER_STEP, float(round(step)))
    return step


class ParameterSet:
    """Bounds manager for the six geometric parameters."""

    def __init__(
        self,
        parameters: list[Parameter] | None = None,
        log: Callable[..., None] | None = None,
    ):
        self._parameters = parameters if parameters is not None else default_parameters()
        self._log = log or _log_to_logger

    def __iter__(self) -> Iterator[Parameter]:
        return iter(self._parameters)

    def __len__(self) -> int:
        return len(self._parameters)

    def keys(self) -> list[str]:
        return [param.key for param in self._parameters]

    def resolve_key(self, name: str) -> str:
        for param in self._parameters:
            if name == param.key:
                return param.key
        for param in self._parameters:
            if name.startswith(param.label):
                return param.key
        return name.lower().replace(" ", "")

    def find(self, name: str) -> Parameter | None:
        key = self.resolve_key(name)
        return next((param for param in self._parameters if param.key == key), None)

    def get(self, name: str) -> Parameter:
        param = self.find(name)
        if param is None:
            raise InvalidBoundsError(f"unknown parameter: {name}")
        return param

    def enabled(self, config: OptimizationConfig) -> list[Parameter]:
        return [param for param in self._parameters if config.is_enabled(param.key)]

    def apply_physical_limits(
        self,
        nose_base_radius_cm: float,
        body_tube_length_cm: float,
        body_tube_radius_cm: float,
    ) -> None:
        limits = {
            NOSE_WALL_THICKNESS: nose_base_radius_cm,
            ROOT_CHORD: body_tube_length_cm,
            HEIGHT: body_tube_radius_cm * 3.0,
        }
        for key, limit in limits.items():
            param = self.get(key)
            param.absolute_max = min(param.absolute_max, limit)
            param.current_max = param.absolute_max
            self._log(f"Updated {key} max bound to: {limit:.2f} cm")

    def update_bounds(
        self,
        name: str,
        user_min: float | None = None,
        user_max: float | None = None,
    ) -> Parameter:
        lower = -math.inf if user_min is None else float(user_min)
        upper = math.inf if user_max is None else float(user_max)
        if lower > upper and not math.isinf(upper) and not math.isinf(lower):
            raise InvalidBoundsError("Minimum value must be less than or equal to maximum value")

        param = self.get(name)
        effective_min = max(param.absolute_min, lower)
        effective_max = min(param.absolute_max, upper)

        if effective_min > effective_max:
            if lower > param.absolute_max:
                effective_min = effective_max = param.absolute_max
            elif upper < param.absolute_min:
                effective_min = effective_max = param.absolute_min
            else:
                effective_min = effective_max
            self._log(
                f"Warning: Bounds conflict for {name}. "
                f"Clamped range to [{effective_min:.2f}, {effective_max:.2f}]",
                logging.WARNING,
            )

        if param.integer:
            if not math.isinf(effective_min):
                effective_min = float(math.ceil(effective_min))
            if not math.isinf(effective_max):
                effective_max = float(math.floor(effective_max))
            if effective_min > effective_max:
                effective_min = effective_max

        param.current_min = effective_min
        param.current_max = effective_max
        param.step = _recompute_step(param)
        self._log(
            f"Updated bounds for {name}: Effective Range=[{effective_min:.2f}, "
            f"{effective_max:.2f}], Step={param.step:.2f}"
        )
        return param


@dataclass(frozen=True)
class FieldBinding:
    """Maps a parameter onto one numeric field of an airframe component."""

    parameter: Parameter
    component: Component
    field: str

    def read_raw(self) -> float:
        return self.parameter.from_model(float(self.component.get_value(self.field)))

    def write_raw(self, raw_value: float) -> None:
        if self.parameter.integer:
            self.component.set_value(self.field, int(math.floor(raw_value + 0.5)))
        else:
            self.component.set_value(self.field, self.parameter.to_model(raw_value))


def build_bindings(
    parameters: ParameterSet,
    fin_set: Component,
    nose_cone: Component,
) -> dict[str, FieldBinding]:
    targets = {
        THICKNESS: (fin_set, interfaces.FIN_THICKNESS),
        ROOT_CHORD: (fin_set, interfaces.FIN_ROOT_CHORD),
        HEIGHT: (fin_set, interfaces.FIN_HEIGHT),
        FIN_COUNT: (fin_set, interfaces.FIN_COUNT),
        NOSE_LENGTH: (nose_cone, interfaces.NOSE_LENGTH),
        NOSE_WALL_THICKNESS: (nose_cone, interfaces.NOSE_WALL_THICKNESS),
    }
    bindings: dict[str, FieldBinding] = {}
    for param in parameters:
        component, field_name = targets[param.key]
        bindings[param.key] = FieldBinding(parameter=param, component=component, field=field_name)
    return bindings
