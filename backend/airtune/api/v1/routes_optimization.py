import logging

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from airtune.api.v1.schemas import (
    AirframeOptimizationRequest,
    JobResponse,
    OptimizationSummary,
    SavedSettingsRunRequest,
)
from airtune.core.config import get_settings
from airtune.core.user_settings import load_user_settings
from airtune.db.queries import FINISHED_STATUSES, fetch_job, insert_job, request_job_cancel
from airtune.workers.tasks import run_airframe_optimization_task

router = APIRouter(tags=["optimization"])
logger = logging.getLogger("airtune.backend")

JOB_TYPE = "airframe_optimize"


def _load_job(job_id: str) -> dict:
    job = fetch_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="job not found")
    if job.get("type") != JOB_TYPE:
        raise HTTPException(status_code=400, detail=f"job is not {JOB_TYPE}")
    return job


def _enqueue(request: AirframeOptimizationRequest) -> JobResponse:
    try:
        request.to_config()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    params = request.model_dump()
    job_id = insert_job(job_type=JOB_TYPE, params=params)
    run_airframe_optimization_task.apply_async(args=(job_id, params), task_id=job_id)
    logger.info("queued airframe optimization %s for %s", job_id, request.ork_path)
    return JobResponse(**fetch_job(job_id))


@router.post("/optimize/airframe", response_model=JobResponse)
def enqueue_airframe_optimization(request: AirframeOptimizationRequest):
    return _enqueue(request)


@router.post("/optimize/airframe/from-settings", response_model=JobResponse)
def enqueue_from_saved_settings(request: SavedSettingsRunRequest):
    """Queue a run from the persisted user settings, optionally for another design."""
    settings = load_user_settings(get_settings().user_settings_path)
    try:
        optimization = AirframeOptimizationRequest.from_user_settings(settings, request.ork_path)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    optimization.save_path = request.save_path
    optimization.save_in_place = request.save_in_place
    return _enqueue(optimization)


@router.get("/optimize/airframe/{job_id}", response_model=JobResponse)
def get_airframe_optimization(job_id: str):
    return JobResponse(**_load_job(job_id))


@router.post("/optimize/airframe/{job_id}/cancel", response_model=JobResponse)
def cancel_airframe_optimization(job_id: str):
    job = _load_job(job_id)
    if job["status"] in FINISHED_STATUSES or not request_job_cancel(job_id):
        raise HTTPException(status_code=409, detail=f"job already {job['status']}")
    logger.info("cancel requested for %s", job_id)
    return JobResponse(**fetch_job(job_id))


@router.get("/optimize/airframe/{job_id}/summary", response_model=OptimizationSummary)
def get_airframe_optimization_summary(job_id: str):
    job = _load_job(job_id)
    if job["status"] not in FINISHED_STATUSES:
        raise HTTPException(status_code=409, detail=f"job is {job['status']}")
    if job["status"] == "failed" or not job.get("result"):
        return OptimizationSummary(job_id=job_id, state=job["status"], improved=False)
    result = job["result"]
    return OptimizationSummary(
        job_id=job_id,
        state=result.get("state", job["status"]),
        improved=bool(result.get("improved")),
        best_values=result.get("best_values") or {},
        initial_values=result.get("initial_values") or {},
        stage1_parachute=result.get("stage1_parachute") or "",
        stage2_parachute=result.get("stage2_parachute") or "",
        evaluations=result.get("evaluations") or 0,
        combinations=result.get("combinations") or 0,
        saved_path=result.get("saved_path"),
        save_warnings=result.get("save_warnings") or [],
    )
