import uuid
from datetime import datetime, timezone
from typing import Any

from psycopg2.extras import Json

from airtune.db.session import transaction

JOB_STATUSES = ("queued", "running", "completed", "cancelled", "failed")
FINISHED_STATUSES = ("completed", "cancelled", "failed")

_JOB_COLUMNS = (
    "id",
    "type",
    "status",
    "params",
    "progress",
    "result",
    "error",
    "cancel_requested",
    "created_at",
    "updated_at",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_jobs_table() -> None:
    with transaction() as cur:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS jobs (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                status TEXT NOT NULL,
                params JSONB NOT NULL,
                progress JSONB,
                result JSONB,
                error TEXT,
                cancel_requested BOOLEAN NOT NULL DEFAULT FALSE,
                created_at TIMESTAMPTZ NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        # databases created before progress reporting existed
        cur.execute("ALTER TABLE jobs ADD COLUMN IF NOT EXISTS progress JSONB")
        cur.execute(
            "ALTER TABLE jobs ADD COLUMN IF NOT EXISTS cancel_requested BOOLEAN NOT NULL DEFAULT FALSE"
        )


def insert_job(job_type: str, params: dict[str, Any]) -> str:
    job_id = str(uuid.uuid4())
    now = _now()
    with transaction() as cur:
        cur.execute(
            """
            INSERT INTO jobs (id, type, status, params, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (job_id, job_type, "queued", Json(params), now, now),
        )
    return job_id


def update_job(
    job_id: str,
    status: str,
    result: dict[str, Any] | None = None,
    error: str | None = None,
) -> None:
    if status not in JOB_STATUSES:
        raise ValueError(f"unknown job status: {status}")
    with transaction() as cur:
        cur.execute(
            """
            UPDATE jobs
            SET status = %s,
                result = %s,
                error = %s,
                updated_at = %s
            WHERE id = %s
            """,
            (status, Json(result) if result is not None else None, error, _now(), job_id),
        )


def update_job_progress(job_id: str, progress: dict[str, Any]) -> None:
    with transaction() as cur:
        cur.execute(
            "UPDATE jobs SET progress = %s, updated_at = %s WHERE id = %s",
            (Json(progress), _now(), job_id),
        )


def request_job_cancel(job_id: str) -> bool:
    """Flag a queued or running job for cancellation; False if it already finished."""
    with transaction() as cur:
        cur.execute(
            """
            UPDATE jobs
            SET cancel_requested = TRUE,
                updated_at = %s
            WHERE id = %s AND status NOT IN %s
            """,
            (_now(), job_id, FINISHED_STATUSES),
        )
        return cur.rowcount > 0


def is_cancel_requested(job_id: str) -> bool:
    with transaction() as cur:
        cur.execute("SELECT cancel_requested FROM jobs WHERE id = %s", (job_id,))
        row = cur.fetchone()
    return bool(row and row[0])


def fetch_job(job_id: str) -> dict[str, Any] | None:
    with transaction() as cur:
        cur.execute(f"SELECT {', '.join(_JOB_COLUMNS)} FROM jobs WHERE id = %s", (job_id,))
        row = cur.fetchone()
    if not row:
        return None
    return dict(zip(_JOB_COLUMNS, row))
