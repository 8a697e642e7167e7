"""Run a blocking call with a hard deadline.

The call runs on its own daemon thread. On expiry the caller stops waiting and gets
the still-running thread back on the exception, so it can decide when to start the
next call. Daemon threads cannot block interpreter shutdown.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class DeadlineExceeded(TimeoutError):
    def __init__(self, message: str, worker: threading.Thread | None = None):
        super().__init__(message)
        self.worker = worker


@dataclass
class _Attempt(Generic[T]):
    value: T | None = None
    error: BaseException | None = None


def run_with_deadline(
    func: Callable[[], T],
    timeout_s: float,
    name: str = "deadline-call",
) -> T:
    attempt: _Attempt[T] = _Attempt()
    finished = threading.Event()

    def target() -> None:
        try:
            attempt.value = func()
        except BaseException as exc:  # re-raised on the calling thread
            attempt.error = exc
        finally:
            finished.set()

    worker = threading.Thread(target=target, name=name, daemon=True)
    worker.start()
    if not finished.wait(timeout_s):
        raise DeadlineExceeded(f"call did not finish within {timeout_s:.3f}s", worker)
    if attempt.error is not None:
        raise attempt.error
    return attempt.value  # type: ignore[return-value]
