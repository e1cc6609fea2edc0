"""Celery application configuration.

Only the retention sweep runs here; merge requests are served in-process
by the API and are not queued.
"""

from celery import Celery

from app.core.config import settings

celery_app = Celery(
    "video_merger",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=3600,
    worker_prefetch_multiplier=1,
)

celery_app.autodiscover_tasks(["app.modules.retention"])
