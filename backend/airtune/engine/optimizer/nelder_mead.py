"""Nelder-Mead simplex minimisation over an opaque objective."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np

REFLECTION = 1.0
EXPANSION = 2.0
CONTRACTION = 0.5
SHRINK = 0.5
MAX_ITERATIONS = 100
TOLERANCE = 1e-4
PERTURBATION = 0.05

Objective = Callable[[np.ndarray], float]
ProgressListener = Callable[[int, int, int, int], None]


@dataclass(frozen=True)
class NelderMeadResult:
    point: np.ndarray
    value: float
    iterations: int
    evaluations: int
    converged: bool
    stopped: bool


class NelderMead:
    def __init__(
        self,
        objective: Objective,
        dimensions: int,
        tolerance: float = TOLERANCE,
        max_iterations: int = MAX_ITERATIONS,
        reflection: float = REFLECTION,
        expansion: float = EXPANSION,
        contraction: float = CONTRACTION,
        shrink: float = SHRINK,
        perturbation: float = PERTURBATION,
        should_stop: Callable[[], bool] | None = None,
    ):
        if dimensions < 1:
            raise ValueError("dimensions must be at least 1")
        self.objective = objective
        self.dimensions = dimensions
        self.tolerance = tolerance
        self.max_iterations = max_iterations
        self.reflection = reflection
        self.expansion = expansion
        self.contraction = contraction
        self.shrink = shrink
        self.perturbation = perturbation
        self.should_stop = should_stop
        self.evaluations = 0
        self._progress_listener: ProgressListener | None = None
        self._base_step = 0
        self._total_steps = 1

    def set_progress_listener(
        self, listener: ProgressListener | None, base_step: int = 0, total_steps: int = 1
    ) -> None:
        """Report iterations as steps ``base_step + i`` out of ``total_steps``."""
        self._progress_listener = listener
        self._base_step = base_step
        self._total_steps = max(1, total_steps)

    def _evaluate(self, point: np.ndarray) -> float:
        self.evaluations += 1
        return float(self.objective(point.copy()))

    def _stopped(self) -> bool:
        return bool(self.should_stop and self.should_stop())

    def _result(
        self, simplex: np.ndarray, values: np.ndarray, iterations: int, converged: bool, stopped: bool
    ) -> NelderMeadResult:
        best = int(np.argsort(values, kind="stable")[0])
        return NelderMeadResult(
            point=simplex[best].copy(),
            value=float(values[best]),
            iterations=iterations,
            evaluations=self.evaluations,
            converged=converged,
            stopped=stopped,
        )

    def minimize(self, initial: Sequence[float]) -> NelderMeadResult:
        n = self.dimensions
        start = np.asarray(initial, dtype=float)
        if start.shape != (n,):
            raise ValueError(f"initial point must have {n} coordinates")

        simplex = np.tile(start, (n + 1, 1))
        values = np.empty(n + 1)
        values[0] = self._evaluate(simplex[0])
        for i in range(n):
            if abs(simplex[i + 1, i]) > 1e-9:
                simplex[i + 1, i] *= 1.0 + self.perturbation
            else:
                simplex[i + 1, i] = self.perturbation
            values[i + 1] = self._evaluate(simplex[i + 1])

        for iteration in range(self.max_iterations):
            if self._progress_listener is not None:
                self._progress_listener(0, self._base_step + iteration, self._total_steps, 1)
            if self._stopped():
                return self._result(simplex, values, iteration, converged=False, stopped=True)

            order = np.argsort(values, kind="stable")
            best, second_worst, worst = order[0], order[-2], order[-1]

            spread = float(np.max(np.abs(values[order[1:]] - values[best])))
            if spread < self.tolerance:
                return self._result(simplex, values, iteration, converged=True, stopped=False)

            centroid = simplex[order[:-1]].mean(axis=0)

            reflected = centroid + self.reflection * (centroid - simplex[worst])
            f_reflected = self._evaluate(reflected)

            if values[best] <= f_reflected < values[second_worst]:
                simplex[worst], values[worst] = reflected, f_reflected
                continue

            if f_reflected < values[best]:
                expanded = centroid + self.expansion * (reflected - centroid)
                f_expanded = self._evaluate(expanded)
                if f_expanded < f_reflected:
                    simplex[worst], values[worst] = expanded, f_expanded
                else:
                    simplex[worst], values[worst] = reflected, f_reflected
                continue

            if f_reflected < values[worst]:
                contracted = centroid + self.contraction * (reflected - centroid)
            else:
                contracted = centroid - self.contraction * (centroid - simplex[worst])
            f_contracted = self._evaluate(contracted)
            if f_contracted < values[worst]:
                simplex[worst], values[worst] = contracted, f_contracted
                continue

            anchor = simplex[best].copy()
            for index in order[1:]:
                simplex[index] = anchor + self.shrink * (simplex[index] - anchor)
                values[index] = self._evaluate(simplex[index])

        return self._result(simplex, values, self.max_iterations, converged=False, stopped=False)
