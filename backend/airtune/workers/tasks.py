import logging
from functools import partial
from typing import Any

from airtune.core.config import get_settings
from airtune.db.queries import is_cancel_requested, update_job, update_job_progress
from airtune.services.airframe_optimization import JobProgressReporter, run_airframe_optimization
from airtune.workers.celery_app import celery_app

logger = logging.getLogger("airtune.backend.worker")


def _json_safe(value):
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, float) and value != value:
        return None
    if hasattr(value, "item"):
        return value.item()
    return value


@celery_app.task(bind=True, name="run_airframe_optimization")
def run_airframe_optimization_task(self, job_id: str, params: dict[str, Any]) -> None:
    if is_cancel_requested(job_id):
        logger.info("job %s cancelled before start", job_id)
        update_job(job_id, status="cancelled")
        return
    update_job(job_id, status="running")
    reporter = JobProgressReporter(
        flush=partial(update_job_progress, job_id),
        should_cancel=partial(is_cancel_requested, job_id),
        interval_s=get_settings().progress_flush_interval_s,
    )
    try:
        result = run_airframe_optimization(params, reporter)
        status = "cancelled" if result["state"] == "cancelled" else "completed"
        update_job(job_id, status=status, result=_json_safe(result))
    except Exception as exc:
        logger.exception("airframe optimization failed: %s", exc)
        update_job(job_id, status="failed", error=str(exc))
        raise
