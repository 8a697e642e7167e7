"""Top-level orchestration of one airframe optimization run."""

from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from airtune.core.units import m_to_cm
from airtune.engine.optimizer import interfaces
from airtune.engine.optimizer.context import RunContext, RunHooks
from airtune.engine.optimizer.errors import AirframeSetupError, NoOptimizedResultError
from airtune.engine.optimizer.gateway import EvaluationGateway
from airtune.engine.optimizer.interfaces import (
    Airframe,
    AirframeRepository,
    FlightSimulator,
    ParachuteCatalog,
    StabilityCalculator,
)
from airtune.engine.optimizer.models import BestResult, OptimizationConfig, OriginalSnapshot
from airtune.engine.optimizer.parachutes import ParachuteCombinationDriver
from airtune.engine.optimizer.parameters import FieldBinding, Parameter, ParameterSet, build_bindings
from airtune.engine.optimizer.scoring import ScoringFunction
from airtune.engine.optimizer.stages import ParachuteStage, build_stages


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class RunOutcome:
    state: RunState
    best: BestResult | None
    evaluations: int
    combinations: int

    @property
    def improved(self) -> bool:
        return self.best is not None


class RunController:
    """Owns the airframe, its original snapshot and the state of the current run.

    Call ``initialize()`` once after construction, then any number of
    ``update_bounds()`` / ``run()`` calls. ``cancel()`` may be called from any thread.
    """

    def __init__(
        self,
        airframe: Airframe,
        simulator: FlightSimulator,
        stability: StabilityCalculator,
        catalog: ParachuteCatalog,
        hooks: RunHooks | None = None,
        gateway: EvaluationGateway | None = None,
        parameters: ParameterSet | None = None,
    ):
        self.airframe = airframe
        self.stability = stability
        self.catalog = catalog
        self.hooks = hooks or RunHooks()
        self.gateway = gateway or EvaluationGateway(simulator)
        self.parameters = parameters or ParameterSet(log=self.hooks.log)
        self.state = RunState.IDLE
        self.context = RunContext()
        # guards state and the context swap
        self._state_lock = threading.Lock()
        self.bindings: dict[str, FieldBinding] = {}
        self.stages: list[ParachuteStage] = []
        self.snapshot: OriginalSnapshot | None = None

    def initialize(self) -> None:
        fin_set = self.airframe.fin_set()
        body_tube = self.airframe.body_tube()
        nose_cone = self.airframe.nose_cone()
        missing = [
            name
            for name, component in (
                ("elliptical fin set", fin_set),
                ("body tube", body_tube),
                ("nose cone", nose_cone),
            )
            if component is None
        ]
        if missing:
            raise AirframeSetupError(f"Required components not found: {', '.join(missing)}")

        self.parameters.apply_physical_limits(
            nose_base_radius_cm=m_to_cm(nose_cone.get_value(interfaces.NOSE_BASE_RADIUS)),
            body_tube_length_cm=m_to_cm(body_tube.get_value(interfaces.TUBE_LENGTH)),
            body_tube_radius_cm=m_to_cm(body_tube.get_value(interfaces.TUBE_OUTER_RADIUS)),
        )
        self.bindings = build_bindings(self.parameters, fin_set, nose_cone)
        self.stages = build_stages(self.airframe, self.catalog)
        values = {key: binding.read_raw() for key, binding in self.bindings.items()}
        self.snapshot = OriginalSnapshot(
            values=MappingProxyType(values),
            stage_presets=(self.stages[0].original_preset, self.stages[1].original_preset),
            stage_names=(self.stages[0].original_name, self.stages[1].original_name),
        )
        self.hooks.log("Airframe initialized: " + ", ".join(f"{k}={v:.2f}" for k, v in values.items()))

    def _require_initialized(self) -> OriginalSnapshot:
        if self.snapshot is None:
            raise AirframeSetupError("initialize() must be called first")
        return self.snapshot

    def update_bounds(
        self, name: str, user_min: float | None = None, user_max: float | None = None
    ) -> Parameter:
        return self.parameters.update_bounds(name, user_min, user_max)

    def get_parameter(self, name: str) -> Parameter:
        return self.parameters.get(name)

    def initial_values(self) -> dict[str, float]:
        return dict(self._require_initialized().values)

    def has_stage1_parachute(self) -> bool:
        return bool(self.stages) and self.stages[0].present

    def has_stage2_parachute(self) -> bool:
        return len(self.stages) > 1 and self.stages[1].present

    def run(self, config: OptimizationConfig) -> RunOutcome:
        snapshot = self._require_initialized()
        enabled = self.parameters.enabled(config)
        invalid = [p.key for p in enabled if p.absolute_min > p.absolute_max]
        if invalid:
            raise AirframeSetupError(f"Invalid absolute bounds for: {', '.join(invalid)}")

        context = RunContext()
        with self._state_lock:
            self.context = context
            self.state = RunState.RUNNING
        for param in self.parameters:
            param.last_value = None
        for stage in self.stages:
            stage.enabled = stage.present and config.is_enabled(stage.key)
            stage.current = stage.original_name

        if not enabled and not any(stage.enabled for stage in self.stages):
            self.hooks.log("No parameters enabled for optimization.")
            self.hooks.progress(0, 1, 1, 1)
            with self._state_lock:
                self.state = RunState.CANCELLED if context.cancelled else RunState.COMPLETED
            return RunOutcome(self.state, None, 0, 0)

        scoring = ScoringFunction(
            context=context,
            airframe=self.airframe,
            parameters=self.parameters,
            bindings=self.bindings,
            stages=self.stages,
            catalog=self.catalog,
            stability=self.stability,
            gateway=self.gateway,
            config=config,
            snapshot=snapshot,
            hooks=self.hooks,
        )
        driver = ParachuteCombinationDriver(
            context, scoring, self.stages, self.catalog, self.hooks, algorithm=config.algorithm
        )
        try:
            plan = driver.plan(enabled)
            self.hooks.log(
                f"Starting optimization: {len(enabled)} parameter(s), "
                f"{len(plan.combinations)} parachute combination(s), algorithm={config.algorithm}"
            )
            driver.run(plan, enabled)
        except Exception:
            with self._state_lock, context.lock:
                self.state = RunState.FAILED
                context.clear_best()
                if not context.reverted:
                    self._revert_locked()
                    context.reverted = True
            raise

        self.hooks.progress(0, plan.total_steps, plan.total_steps, 1)
        with self._state_lock, context.lock:
            if context.cancelled:
                context.clear_best()
                if not context.reverted:
                    self._revert_locked()
                    context.reverted = True
                self.state = RunState.CANCELLED
            elif context.best is None:
                self._revert_locked()
                self.state = RunState.COMPLETED
            else:
                self._apply_best_locked(context.best)
                self.state = RunState.COMPLETED
        self._log_final_results()
        return RunOutcome(self.state, context.best, context.evaluations, driver.tried)

    def cancel(self) -> bool:
        """Stop the running run and revert the airframe; False when nothing is running."""
        with self._state_lock:
            if self.state is not RunState.RUNNING:
                self.hooks.log(f"Cancel ignored: optimization is {self.state.value}.", logging.DEBUG)
                return False
            context = self.context
            context.cancel()
        with context.lock:
            context.clear_best()
            if not context.reverted:
                self._revert_locked()
                context.reverted = True
        self.hooks.log("Optimization cancelled. Reverted to original values.")
        return True

    def has_best_values(self) -> bool:
        return self.context.best is not None

    def best_values(self) -> dict[str, float]:
        best = self.context.best
        return best.as_dict() if best is not None else {}

    def best_parachute(self, stage: int) -> str:
        best = self.context.best
        if best is not None:
            return best.parachute(stage)
        return self.stages[stage - 1].current if self.stages else ""

    def set_stage_parachute(self, stage: int, name: str) -> None:
        if stage not in (1, 2):
            raise ValueError(f"stage must be 1 or 2, got {stage}")
        target = self.stages[stage - 1]
        with self.context.lock:
            target.enabled = target.present
            target.select(name)
            best = self.context.best
            if best is not None:
                field_name = "stage1_parachute" if stage == 1 else "stage2_parachute"
                self.context.best = dataclasses.replace(best, **{field_name: name})

    def revert_to_original_values(self) -> None:
        self._require_initialized()
        with self.context.lock:
            self._revert_locked()

    def apply_best_values(self) -> None:
        best = self.context.best
        if best is None:
            raise NoOptimizedResultError("No optimized values available")
        with self.context.lock:
            self._apply_best_locked(best)

    def save_optimized_design(self, repository: AirframeRepository, path: str) -> list[str]:
        if not self.has_best_values():
            raise NoOptimizedResultError("No optimized values to save")
        self.apply_best_values()
        warnings = repository.save(self.airframe, path)
        for warning in warnings:
            self.hooks.log(f"Save warning: {warning}", logging.WARNING)
        self.hooks.log(f"Optimized design saved to {path}")
        return warnings

    def _revert_locked(self) -> None:
        snapshot = self._require_initialized()
        for key, binding in self.bindings.items():
            binding.write_raw(snapshot.values[key])
        for stage in self.stages:
            stage.restore(self.catalog)
        self.airframe.refresh()

    def _apply_best_locked(self, best: BestResult) -> None:
        for key, binding in self.bindings.items():
            binding.write_raw(best.values[key])
        for stage in self.stages:
            stage.select(best.parachute(stage.number))
            stage.apply(self.catalog, self.hooks.log)
        self.airframe.refresh()

    def _log_final_results(self) -> None:
        best = self.context.best
        if best is None:
            self.hooks.log("=== Optimization Complete (No improvement found or cancelled early) ===")
            return
        lines = [
            "=== Optimization Complete ===",
            f"Altitude Score: {best.altitude_score:.2f}",
            f"Duration Score: {best.duration_score:.2f}",
            f"Total Score: {best.total_error:.2f}",
            f"Apogee: {best.apogee_m:.1f} m",
            f"Duration: {best.flight_time_s:.2f} s",
        ]
        for param in self.parameters:
            lines.append(f"{param.display_name}: {best.values[param.key]:.2f}")
        lines.append(f"Stage 1 Parachute: {best.stage1_parachute}")
        lines.append(f"Stage 2 Parachute: {best.stage2_parachute}")
        self.hooks.log("\n".join(lines))
