"""Glue between a queued job and one optimization run over an .ork design."""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from typing import Any, Callable

from airtune.api.v1.schemas import AirframeOptimizationRequest
from airtune.core.config import Settings, get_settings
from airtune.engine.optimizer.context import RunHooks
from airtune.engine.optimizer.controller import RunController
from airtune.engine.optimizer.gateway import EvaluationGateway
from airtune.engine.optimizer.interfaces import (
    AirframeRepository,
    FlightSimulator,
    ParachuteCatalog,
    StabilityCalculator,
)

logger = logging.getLogger("airtune.backend")

LOG_TAIL_LINES = 50


class JobProgressReporter:
    """Collects run hooks into a progress document and flushes it at a bounded rate.

    Each flush also polls ``should_cancel``; when it turns true the bound controller
    is cancelled.
    """

    def __init__(
        self,
        flush: Callable[[dict[str, Any]], None] | None = None,
        should_cancel: Callable[[], bool] | None = None,
        interval_s: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._flush = flush
        self._should_cancel = should_cancel
        self.interval_s = interval_s
        self._clock = clock
        self._last_flush = -math.inf
        self._lock = threading.Lock()
        self._controller: RunController | None = None
        self._log_tail: deque[str] = deque(maxlen=LOG_TAIL_LINES)
        self.cancel_requested = False
        self.progress: dict[str, Any] = {
            "current": 0,
            "total": 1,
            "phase": 0,
            "total_phases": 1,
            "fraction": 0.0,
            "status": None,
            "interim": None,
        }

    def bind(self, controller: RunController) -> None:
        self._controller = controller

    def hooks(self) -> RunHooks:
        return RunHooks(
            on_log=self.on_log,
            on_status=self.on_status,
            on_progress=self.on_progress,
            on_interim=self.on_interim,
        )

    def on_log(self, message: str) -> None:
        with self._lock:
            self._log_tail.extend(message.splitlines() or [""])

    def on_status(self, message: str) -> None:
        with self._lock:
            self.progress["status"] = message

    def on_interim(self, record: dict[str, Any]) -> None:
        with self._lock:
            self.progress["interim"] = dict(record)

    def on_progress(self, phase: int, current: int, total: int, total_phases: int) -> None:
        with self._lock:
            total = max(1, total)
            self.progress.update(
                current=current,
                total=total,
                phase=phase,
                total_phases=total_phases,
                fraction=min(1.0, max(0.0, current / total)),
            )
        self.flush()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {**self.progress, "log_tail": list(self._log_tail)}

    def flush(self, force: bool = False) -> None:
        now = self._clock()
        if not force and now - self._last_flush < self.interval_s:
            return
        self._last_flush = now
        if self._flush is not None:
            self._flush(self.snapshot())
        if self._should_cancel is not None and not self.cancel_requested and self._should_cancel():
            self.cancel_requested = True
            logger.info("cancel requested, stopping optimization")
            if self._controller is not None:
                self._controller.cancel()


def _openrocket_collaborators() -> tuple[AirframeRepository, FlightSimulator, StabilityCalculator, ParachuteCatalog]:
    from airtune.engine.openrocket.airframe import OpenRocketRepository
    from airtune.engine.openrocket.presets import OpenRocketParachuteCatalog
    from airtune.engine.openrocket.simulation import BarrowmanStability, OpenRocketSimulator

    return OpenRocketRepository(), OpenRocketSimulator(), BarrowmanStability(), OpenRocketParachuteCatalog()


def run_airframe_optimization(
    params: dict[str, Any],
    reporter: JobProgressReporter | None = None,
    collaborators: tuple[AirframeRepository, FlightSimulator, StabilityCalculator, ParachuteCatalog]
    | None = None,
    settings: Settings | None = None,
) -> dict[str, Any]:
    request = AirframeOptimizationRequest.model_validate(params)
    settings = settings or get_settings()
    reporter = reporter or JobProgressReporter(interval_s=settings.progress_flush_interval_s)
    repository, simulator, stability, catalog = collaborators or _openrocket_collaborators()

    airframe = repository.load(request.ork_path)
    controller = RunController(
        airframe,
        simulator,
        stability,
        catalog,
        hooks=reporter.hooks(),
        gateway=EvaluationGateway.from_settings(simulator, settings),
    )
    reporter.bind(controller)
    controller.initialize()
    for key, bounds in request.bounds.items():
        controller.update_bounds(key, bounds.min, bounds.max)

    outcome = controller.run(request.to_config())
    reporter.flush(force=True)

    saved_path = None
    save_warnings: list[str] = []
    target = request.resolved_save_path()
    if target and outcome.improved:
        save_warnings = controller.save_optimized_design(repository, target)
        saved_path = target

    return {
        "state": outcome.state.value,
        "improved": outcome.improved,
        "best_values": controller.best_values(),
        "initial_values": controller.initial_values(),
        "stage1_parachute": controller.best_parachute(1),
        "stage2_parachute": controller.best_parachute(2),
        "evaluations": outcome.evaluations,
        "combinations": outcome.combinations,
        "saved_path": saved_path,
        "save_warnings": save_warnings,
    }


def inspect_airframe(
    path: str,
    collaborators: tuple[AirframeRepository, FlightSimulator, StabilityCalculator, ParachuteCatalog]
    | None = None,
) -> dict[str, Any]:
    repository, simulator, stability, catalog = collaborators or _openrocket_collaborators()
    controller = RunController(repository.load(path), simulator, stability, catalog)
    controller.initialize()
    initial = controller.initial_values()
    return {
        "path": path,
        "parameters": [
            {
                "key": param.key,
                "display_name": param.display_name,
                "unit": param.unit,
                "initial_value": initial[param.key],
                "absolute_min": param.absolute_min,
                "absolute_max": param.absolute_max if math.isfinite(param.absolute_max) else None,
                "integer": param.integer,
            }
            for param in controller.parameters
        ],
        "parachute_stages": [
            {"stage": stage.number, "present": stage.present, "name": stage.original_name}
            for stage in controller.stages
        ],
    }
