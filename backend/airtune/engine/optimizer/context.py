from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Callable

from airtune.engine.optimizer.models import BestResult

logger = logging.getLogger("airtune.optimizer")

LogHook = Callable[[str], None]
StatusHook = Callable[[str], None]
ProgressHook = Callable[[int, int, int, int], None]
InterimHook = Callable[[dict[str, Any]], None]


@dataclass
class RunHooks:
    """Callbacks consumed by whatever is driving a run (API worker, tests, a UI).

    Every hook is optional. A raising hook is logged and otherwise ignored.
    """

    on_log: LogHook | None = None
    on_status: StatusHook | None = None
    on_progress: ProgressHook | None = None
    on_interim: InterimHook | None = None

    def log(self, message: str, level: int = logging.INFO) -> None:
        logger.log(level, message)
        self._call("on_log", self.on_log, message)

    def status(self, message: str) -> None:
        self._call("on_status", self.on_status, message)

    def progress(self, phase: int, current: int, total: int, total_phases: int) -> None:
        self._call("on_progress", self.on_progress, phase, current, total, total_phases)

    def interim(self, record: dict[str, Any]) -> None:
        self._call("on_interim", self.on_interim, record)

    @staticmethod
    def _call(name: str, hook: Callable[..., None] | None, *args: Any) -> None:
        if hook is None:
            return
        try:
            hook(*args)
        except Exception:
            logger.exception("optimizer hook %s raised", name)


class RunContext:
    """Mutable state of one optimization run: cancel flag and best-so-far."""

    def __init__(self):
        self._cancelled = threading.Event()
        self.lock = threading.RLock()
        self.best: BestResult | None = None
        self.best_error = math.inf
        self.evaluations = 0
        self.reverted = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def offer(self, candidate: BestResult) -> bool:
        """Keep ``candidate`` if it is strictly better than the current best."""
        if candidate.total_error < self.best_error:
            self.best = candidate
            self.best_error = candidate.total_error
            return True
        return False

    def clear_best(self) -> None:
        self.best = None
        self.best_error = math.inf
