"""Celery application configuration."""

from celery import Celery

from reelcast.core.config import settings

celery_app = Celery(
    "reelcast",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.TRANSCODE_TIMEOUT_SECONDS,
    # Encodes are CPU bound; bound the pool and hand out one job at a time
    worker_concurrency=settings.TRANSCODE_MAX_WORKERS,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

celery_app.autodiscover_tasks(["reelcast.modules.transcoding"])
