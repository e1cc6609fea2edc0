"""Retention Celery tasks."""

from celery.schedules import crontab

from app.core.celery_app import celery_app
from app.core.logging import bind_correlation_id
from app.modules.retention.service import RetentionSweeper


@celery_app.task(name="app.modules.retention.tasks.sweep_expired_videos")
def sweep_expired_videos() -> dict:
    """Delete merged videos past the retention window."""
    with bind_correlation_id(f"retention-{sweep_expired_videos.request.id or 'local'}"):
        report = RetentionSweeper().sweep()
    return report.to_dict()


# Daily at 02:00 UTC
RETENTION_BEAT_SCHEDULE = {
    "sweep-expired-videos": {
        "task": "app.modules.retention.tasks.sweep_expired_videos",
        "schedule": crontab(hour=2, minute=0),
    },
}

celery_app.conf.beat_schedule.update(RETENTION_BEAT_SCHEDULE)
