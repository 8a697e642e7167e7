from __future__ import annotations

import itertools
from dataclasses import dataclass

from airtune.engine.optimizer.context import RunContext, RunHooks
from airtune.engine.optimizer.grid_search import PhasedGridSearch
from airtune.engine.optimizer.interfaces import ParachuteCatalog
from airtune.engine.optimizer.models import Algorithm
from airtune.engine.optimizer.nelder_mead import MAX_ITERATIONS, NelderMead
from airtune.engine.optimizer.parameters import Parameter
from airtune.engine.optimizer.scoring import ScoringFunction
from airtune.engine.optimizer.stages import ParachuteStage, stage_options


@dataclass(frozen=True)
class DrivePlan:
    combinations: list[tuple[str, str]]
    total_steps: int


class ParachuteCombinationDriver:
    """Runs one search per stage-1 x stage-2 parachute combination."""

    def __init__(
        self,
        context: RunContext,
        scoring: ScoringFunction,
        stages: list[ParachuteStage],
        catalog: ParachuteCatalog,
        hooks: RunHooks,
        algorithm: Algorithm = "nelder_mead",
        max_iterations: int = MAX_ITERATIONS,
    ):
        self.context = context
        self.scoring = scoring
        self.stages = stages
        self.catalog = catalog
        self.hooks = hooks
        self.algorithm = algorithm
        self.max_iterations = max_iterations
        self.tried = 0

    def options(self) -> tuple[list[str], list[str]]:
        presets = None
        if any(stage.enabled for stage in self.stages):
            presets = list(self.catalog.list_presets())
        first, second = (stage_options(stage, self.catalog, presets) for stage in self.stages)
        return first, second

    def plan(self, enabled: list[Parameter]) -> DrivePlan:
        first, second = self.options()
        combinations = list(itertools.product(first, second))
        per_combination = self.max_iterations if enabled else 1
        return DrivePlan(
            combinations=combinations,
            total_steps=max(1, len(combinations) * per_combination),
        )

    def run(self, plan: DrivePlan, enabled: list[Parameter]) -> None:
        total_combinations = max(1, len(plan.combinations))
        for index, (stage1, stage2) in enumerate(plan.combinations, start=1):
            with self.context.lock:
                if self.context.cancelled:
                    break
                self.stages[0].select(stage1)
                self.stages[1].select(stage2)
                for stage in self.stages:
                    stage.apply(self.catalog, self.hooks.log)
            self.tried += 1
            self.hooks.log(f"--- Starting Optimization for Parachutes: S1={stage1}, S2={stage2} ---")

            if enabled:
                self._search(enabled, (index - 1) * self.max_iterations, plan.total_steps)
            else:
                self.scoring.evaluate([], enabled)
                self.hooks.progress(0, index, total_combinations, 1)

            self.hooks.log(
                f"--- Finished Optimization for Parachutes: S1={stage1}, S2={stage2}. "
                f"Current Best Error: {self.context.best_error:.2f} ---"
            )

    def _initial_guess(self, enabled: list[Parameter]) -> list[float]:
        return [param.clamp(self.scoring.snapshot.values[param.key]) for param in enabled]

    def _grid_progress(self, base_step: int, total_steps: int):
        """Maps grid phase progress onto this combination's slot of the run."""
        slot = self.max_iterations

        def report(phase: int, current: int, total: int, phases: int) -> None:
            fraction = (phase + current / max(1, total)) / max(1, phases)
            step = base_step + min(slot, int(slot * fraction))
            self.hooks.progress(0, step, total_steps, 1)

        return report

    def _search(self, enabled: list[Parameter], base_step: int, total_steps: int) -> None:
        objective = self.scoring.objective(enabled)
        should_stop = lambda: self.context.cancelled  # noqa: E731
        if self.algorithm == "grid":
            PhasedGridSearch(
                objective,
                enabled,
                should_stop=should_stop,
                progress_listener=self._grid_progress(base_step, total_steps),
            ).search()
            return
        optimizer = NelderMead(
            objective,
            len(enabled),
            max_iterations=self.max_iterations,
            should_stop=should_stop,
        )
        optimizer.set_progress_listener(self.hooks.progress, base_step, total_steps)
        optimizer.minimize(self._initial_guess(enabled))
