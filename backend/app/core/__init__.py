"""Core application components."""

from app.core.celery_app import celery_app
from app.core.config import settings

__all__ = ["celery_app", "settings"]
