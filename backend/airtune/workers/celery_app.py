from celery import Celery

from airtune.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "airtune_backend",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["airtune.workers.tasks"],
)

celery_app.conf.update(
    task_soft_time_limit=settings.celery_task_soft_time_limit,
    task_time_limit=settings.celery_task_time_limit,
    task_track_started=True,
    # one long optimization per worker process at a time
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    broker_transport_options={"visibility_timeout": settings.celery_task_time_limit},
)
