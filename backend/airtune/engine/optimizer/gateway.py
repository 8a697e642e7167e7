from __future__ import annotations

import logging
import math
import threading
import time
from typing import Callable

from airtune.core.config import Settings
from airtune.engine.optimizer.deadline import DeadlineExceeded, run_with_deadline
from airtune.engine.optimizer.interfaces import Airframe, FlightSimulator
from airtune.engine.optimizer.results import (
    EvaluationFailed,
    FailureKind,
    FlightSummary,
    SimulationOutcome,
)

logger = logging.getLogger("airtune.optimizer")

SIMULATION_TIMEOUT_S = 2.0
SIMULATION_ATTEMPTS = 2
SIMULATION_BACKOFF_S = 0.1


class EvaluationGateway:
    """One simulator invocation under a hard timeout, retried with a short backoff."""

    def __init__(
        self,
        simulator: FlightSimulator,
        timeout_s: float = SIMULATION_TIMEOUT_S,
        attempts: int = SIMULATION_ATTEMPTS,
        backoff_s: float = SIMULATION_BACKOFF_S,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self._simulator = simulator
        self.timeout_s = timeout_s
        self.attempts = attempts
        self.backoff_s = backoff_s
        self._sleep = sleep
        # worker of the last expired attempt, possibly still inside the simulator
        self._straggler: threading.Thread | None = None

    @classmethod
    def from_settings(cls, simulator: FlightSimulator, settings: Settings) -> "EvaluationGateway":
        return cls(
            simulator,
            timeout_s=settings.simulation_timeout_ms / 1000.0,
            attempts=settings.simulation_attempts,
            backoff_s=settings.simulation_backoff_ms / 1000.0,
        )

    def run_simulation(self, airframe: Airframe) -> SimulationOutcome:
        outcome: SimulationOutcome | None = None
        for attempt in range(1, self.attempts + 1):
            outcome = self._attempt(airframe)
            if isinstance(outcome, FlightSummary):
                return outcome
            logger.warning(
                "simulation attempt %d/%d failed: %s", attempt, self.attempts, outcome.reason
            )
            if attempt < self.attempts:
                self._sleep(self.backoff_s)
        return outcome  # type: ignore[return-value]

    def _attempt(self, airframe: Airframe) -> SimulationOutcome:
        if not self._straggler_finished():
            return EvaluationFailed(FailureKind.TIMEOUT, "Previous simulation attempt is still running")
        subject = airframe.detach()
        try:
            summary = run_with_deadline(
                lambda: self._simulator.simulate(subject),
                self.timeout_s,
                name="airtune-simulation",
            )
        except DeadlineExceeded as exc:
            self._simulator.interrupt()
            self._straggler = exc.worker
            return EvaluationFailed(FailureKind.TIMEOUT, "Simulation timed out")
        except Exception as exc:
            return EvaluationFailed(FailureKind.SIMULATION, f"Sim Error: {exc}")
        if not (math.isfinite(summary.apogee_m) and math.isfinite(summary.flight_time_s)):
            return EvaluationFailed(FailureKind.SIMULATION, "Sim Error: non-finite flight data")
        return summary

    def _straggler_finished(self) -> bool:
        straggler = self._straggler
        if straggler is None:
            return True
        straggler.join(self.timeout_s)
        if straggler.is_alive():
            logger.warning("previous simulation attempt still running; not starting another")
            return False
        self._straggler = None
        return True
