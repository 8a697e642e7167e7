from __future__ import annotations

import logging
import math
from typing import Any, Callable, Sequence

from airtune.engine.optimizer.context import RunContext, RunHooks
from airtune.engine.optimizer.gateway import EvaluationGateway
from airtune.engine.optimizer.interfaces import Airframe, ParachuteCatalog, StabilityCalculator
from airtune.engine.optimizer.models import (
    ALTITUDE_SCORE,
    DURATION_SCORE,
    BestResult,
    OptimizationConfig,
    OriginalSnapshot,
    Range,
)
from airtune.engine.optimizer.parameters import FieldBinding, Parameter, ParameterSet
from airtune.engine.optimizer.results import (
    Evaluation,
    EvaluationFailed,
    FailureKind,
    Scored,
    StabilityPenalty,
)
from airtune.engine.optimizer.stages import ParachuteStage

DURATION_WEIGHT = 4.0
STABILITY_PENALTY_BASE = 1000.0
STABILITY_PENALTY_SCALE = 100.0


def range_score(value: float, target: Range, weight: float = 1.0) -> float:
    """Zero inside ``target`` (bounds inclusive), else weighted distance to the violated bound."""
    return target.distance(value) * weight


def altitude_score(apogee_m: float, target: Range) -> float:
    return range_score(apogee_m, target)


def duration_score(flight_time_s: float, target: Range) -> float:
    return range_score(flight_time_s, target, DURATION_WEIGHT)


def stability_penalty(stability: float, target: Range) -> float:
    return STABILITY_PENALTY_BASE + target.distance(stability) * STABILITY_PENALTY_SCALE


def _fmt(value: float | None, format_spec: str) -> str:
    if value is None or math.isnan(value):
        return "nan"
    return format(value, format_spec)


class ScoringFunction:
    """Turns a parameter vector into a total error by editing and simulating the airframe.

    Side effect: offers every successful evaluation to the run's best-result record.
    """

    def __init__(
        self,
        context: RunContext,
        airframe: Airframe,
        parameters: ParameterSet,
        bindings: dict[str, FieldBinding],
        stages: list[ParachuteStage],
        catalog: ParachuteCatalog,
        stability: StabilityCalculator,
        gateway: EvaluationGateway,
        config: OptimizationConfig,
        snapshot: OriginalSnapshot,
        hooks: RunHooks,
    ):
        self.context = context
        self.airframe = airframe
        self.parameters = parameters
        self.bindings = bindings
        self.stages = stages
        self.catalog = catalog
        self.stability = stability
        self.gateway = gateway
        self.config = config
        self.snapshot = snapshot
        self.hooks = hooks

    def objective(self, enabled: list[Parameter]) -> Callable[[Sequence[float]], float]:
        def evaluate(point: Sequence[float]) -> float:
            return self.evaluate(point, enabled).total_error

        return evaluate

    def evaluate(self, values: Sequence[float], enabled: list[Parameter]) -> Evaluation:
        if self.context.cancelled:
            return EvaluationFailed(FailureKind.CANCELLED, "cancelled")

        with self.context.lock:
            if self.context.cancelled:
                return EvaluationFailed(FailureKind.CANCELLED, "cancelled")
            self.context.evaluations += 1
            failure = self._apply_values(values, enabled)
            if failure is not None:
                return failure
            for stage in self.stages:
                stage.apply(self.catalog, self.hooks.log)
            try:
                self.airframe.refresh()
                stability = float(self.stability.compute_margin(self.airframe))
            except Exception as exc:
                self._log_current("Failed (NM Eval)", reason=f"Eval Error: {exc}")
                return EvaluationFailed(FailureKind.UNEXPECTED, f"Eval Error: {exc}")

            if self.context.cancelled:
                return EvaluationFailed(FailureKind.CANCELLED, "cancelled")
            if math.isnan(stability):
                self._log_current("Skipping (NM)", stability=stability, reason="Invalid CP/Stability")
                return EvaluationFailed(FailureKind.STABILITY, "Invalid CP/Stability")
            if not self.config.stability_range.contains(stability):
                self._log_current("Skipping (NM)", stability=stability, reason="Stability out of range")
                return StabilityPenalty(
                    total_error=stability_penalty(stability, self.config.stability_range),
                    stability=stability,
                )

        outcome = self.gateway.run_simulation(self.airframe)

        with self.context.lock:
            if self.context.cancelled:
                return EvaluationFailed(FailureKind.CANCELLED, "cancelled")
            if isinstance(outcome, EvaluationFailed):
                self._log_current("Failed (NM Sim)", stability=stability, reason=outcome.reason)
                return outcome
            return self._record(outcome.apogee_m, outcome.flight_time_s, stability, enabled)

    def current_raw_values(self, enabled: list[Parameter]) -> dict[str, float]:
        enabled_keys = {param.key for param in enabled}
        values: dict[str, float] = {}
        for param in self.parameters:
            if param.key in enabled_keys and param.last_value is not None:
                values[param.key] = param.last_value
            else:
                values[param.key] = self.snapshot.values[param.key]
        return values

    def _apply_values(self, values: Sequence[float], enabled: list[Parameter]) -> EvaluationFailed | None:
        for param, candidate in zip(enabled, values):
            raw_value = param.clamp(candidate)
            param.last_value = raw_value
            try:
                self.bindings[param.key].write_raw(raw_value)
            except Exception as exc:
                self.hooks.log(
                    f"Error setting parameter {param.key} to {raw_value}: {exc}", logging.WARNING
                )
                return EvaluationFailed(FailureKind.FIELD_WRITE, str(exc))
        return None

    def _record(
        self,
        apogee_m: float,
        flight_time_s: float,
        stability: float,
        enabled: list[Parameter],
    ) -> Scored:
        alt_score = (
            altitude_score(apogee_m, self.config.altitude_range)
            if self.config.is_enabled(ALTITUDE_SCORE)
            else 0.0
        )
        dur_score = (
            duration_score(flight_time_s, self.config.duration_range)
            if self.config.is_enabled(DURATION_SCORE)
            else 0.0
        )
        total = alt_score + dur_score
        raw_values = self.current_raw_values(enabled)
        stage1, stage2 = self.stages[0].current, self.stages[1].current

        candidate = BestResult(
            values=raw_values,
            stage1_parachute=stage1,
            stage2_parachute=stage2,
            apogee_m=apogee_m,
            flight_time_s=flight_time_s,
            altitude_score=alt_score,
            duration_score=dur_score,
            total_error=total,
        )
        if self.context.offer(candidate):
            self._log_current(
                "Best (NM)",
                stability=stability,
                apogee=apogee_m,
                duration=flight_time_s,
                alt_score=alt_score,
                dur_score=dur_score,
            )

        interim: dict[str, Any] = {
            **raw_values,
            "stage1_parachute": stage1,
            "stage2_parachute": stage2,
            "apogee": apogee_m,
            "duration": flight_time_s,
            "altitude_score": alt_score,
            "duration_score": dur_score,
            "total_score": total,
        }
        self.hooks.interim(interim)
        self.hooks.log(self._interim_line(interim), logging.DEBUG)
        self.hooks.status(self._status_line(enabled, total))
        return Scored(
            total_error=total,
            altitude_score=alt_score,
            duration_score=dur_score,
            apogee_m=apogee_m,
            flight_time_s=flight_time_s,
            stability=stability,
        )

    @staticmethod
    def _interim_line(interim: dict[str, Any]) -> str:
        parts = ["INTERIM:"]
        for key, value in interim.items():
            if key in ("stage1_parachute", "stage2_parachute"):
                parts.append(f"{key}={value}|")
            elif key in ("apogee", "altitude_score"):
                parts.append(f"{key}={value:.1f}|")
            else:
                parts.append(f"{key}={value:.2f}|")
        return "".join(parts).rstrip("|")

    def _status_line(self, enabled: list[Parameter], total: float) -> str:
        parts = [f"{param.key}={param.last_value:.2f}" for param in enabled]
        for stage in self.stages:
            if stage.enabled:
                parts.append(f"S{stage.number}P={stage.current[:5]}")
        parts.append(f"Err={total:.2f}")
        return " ".join(parts)

    def _log_current(
        self,
        status: str,
        stability: float = math.nan,
        apogee: float = math.nan,
        duration: float = math.nan,
        alt_score: float = math.nan,
        dur_score: float = math.nan,
        reason: str | None = None,
    ) -> None:
        parts = [f"{status}:"]
        for param in self.parameters:
            value = param.last_value if param.last_value is not None else self.snapshot.values[param.key]
            parts.append(f" {param.key}={value:.2f}")
        parts.append(f" S1P={self.stages[0].current} S2P={self.stages[1].current}")
        if not math.isnan(apogee):
            parts.append(f" | Apogee={apogee:.1f}m (Δ={_fmt(alt_score, '.1f')})")
        if not math.isnan(duration):
            parts.append(f" | Duration={duration:.2f}s (Δ={_fmt(dur_score, '.2f')})")
        if not math.isnan(alt_score) and not math.isnan(dur_score):
            parts.append(f" | Total Score={alt_score + dur_score:.2f}")
        if not math.isnan(stability):
            parts.append(f" | Stability={stability:.2f} cal")
        if reason is not None:
            parts.append(f" | Reason={reason}")
        level = logging.WARNING if status.startswith("Failed") else logging.INFO
        self.hooks.log("".join(parts), level)
