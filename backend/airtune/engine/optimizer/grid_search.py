"""Legacy phased grid search.

Each phase enumerates the full Cartesian grid of the enabled parameters. After the
first phase every range is re-centred on the best point found and its step halved.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable

import numpy as np

from airtune.engine.optimizer.nelder_mead import Objective, ProgressListener
from airtune.engine.optimizer.parameters import Parameter

PHASES = 5
GOOD_ENOUGH_ERROR = 1.0
UNBOUNDED_CANDIDATES = (0.1, 0.5, 1.0, 2.0, 5.0)
GEOMETRIC_COUNT = 5
MAX_GRID_FIN_COUNT = 8
MIN_STEP = 0.01


@dataclass(frozen=True)
class GridSearchResult:
    point: np.ndarray | None
    value: float
    phases: int
    evaluations: int
    stopped: bool


def grid_values(param: Parameter) -> list[float]:
    low, high, step = param.current_min, param.current_max, param.step
    if param.integer:
        start = int(math.ceil(low)) if math.isfinite(low) else 1
        stop = int(math.floor(high)) if math.isfinite(high) else MAX_GRID_FIN_COUNT
        stop = max(start, min(stop, MAX_GRID_FIN_COUNT))
        return [float(value) for value in range(start, stop + 1)]
    if math.isinf(low) and math.isinf(high):
        return list(UNBOUNDED_CANDIDATES)
    if math.isinf(high) or math.isinf(low):
        anchor = low if math.isfinite(low) else high
        base = abs(anchor) if abs(anchor) > 1e-9 else max(step, MIN_STEP)
        direction = 1.0 if math.isfinite(low) else -1.0
        offsets = [0.0] + [base * 2**k for k in range(GEOMETRIC_COUNT - 1)]
        return [anchor + direction * offset for offset in offsets]
    if high - low < 1e-9 or step <= 0:
        return [low] if high - low < 1e-9 else [low, high]
    count = int(math.floor((high - low) / step + 1e-9))
    values = [low + i * step for i in range(count + 1)]
    if values[-1] < high - 1e-9:
        values.append(high)
    return values


class PhasedGridSearch:
    def __init__(
        self,
        objective: Objective,
        parameters: list[Parameter],
        phases: int = PHASES,
        good_enough: float = GOOD_ENOUGH_ERROR,
        should_stop: Callable[[], bool] | None = None,
        progress_listener: ProgressListener | None = None,
    ):
        self.objective = objective
        self.parameters = parameters
        self.phases = phases
        self.good_enough = good_enough
        self.should_stop = should_stop
        self.progress_listener = progress_listener
        self.evaluations = 0
        self._best_point: np.ndarray | None = None
        self._best_value = math.inf

    def _stopped(self) -> bool:
        return bool(self.should_stop and self.should_stop())

    def _done(self) -> bool:
        return self._stopped() or self._best_value < self.good_enough

    def search(self) -> GridSearchResult:
        saved = [(p.current_min, p.current_max, p.step) for p in self.parameters]
        phases_run = 0
        try:
            for phase in range(self.phases):
                if self._done():
                    break
                if phase > 0 and self._best_point is not None:
                    self._narrow(saved)
                grids = [grid_values(param) for param in self.parameters]
                total = max(1, int(np.prod([len(grid) for grid in grids])))
                phases_run += 1
                counter = [0]
                self._enumerate(grids, 0, np.zeros(len(self.parameters)), phase, total, counter)
        finally:
            for param, (low, high, step) in zip(self.parameters, saved):
                param.current_min, param.current_max, param.step = low, high, step
        return GridSearchResult(
            point=None if self._best_point is None else self._best_point.copy(),
            value=self._best_value,
            phases=phases_run,
            evaluations=self.evaluations,
            stopped=self._stopped(),
        )

    def _enumerate(
        self,
        grids: list[list[float]],
        depth: int,
        point: np.ndarray,
        phase: int,
        total: int,
        counter: list[int],
    ) -> None:
        if depth == len(grids):
            value = float(self.objective(point.copy()))
            self.evaluations += 1
            counter[0] += 1
            if value < self._best_value:
                self._best_value = value
                self._best_point = point.copy()
            if self.progress_listener is not None:
                self.progress_listener(phase, counter[0], total, self.phases)
            return
        for candidate in grids[depth]:
            if self._done():
                return
            point[depth] = candidate
            self._enumerate(grids, depth + 1, point, phase, total, counter)

    def _narrow(self, saved: list[tuple[float, float, float]]) -> None:
        for index, param in enumerate(self.parameters):
            center = float(self._best_point[index])
            floor_low, ceiling_high, _ = saved[index]
            if param.integer:
                param.current_min = max(floor_low, center - 1.0)
                param.current_max = min(ceiling_high, center + 1.0)
                param.step = 1.0
                continue
            half_width = param.step if param.step > 0 else MIN_STEP
            param.current_min = max(floor_low, center - half_width)
            param.current_max = min(ceiling_high, center + half_width)
            param.step = max(half_width / 2.0, MIN_STEP)
