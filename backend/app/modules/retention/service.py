"""Retention sweep over delivered artifacts.

Deletes merged videos older than the retention window. One failed
deletion never stops the sweep, and a failed listing ends the run
without raising so the scheduler keeps firing.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import Settings, settings
from app.core.logging import log_error, log_info, log_warning
from app.core.metrics import RETENTION_DELETIONS_TOTAL, RETENTION_SWEEPS_TOTAL
from app.core.storage import S3Storage, get_storage
from app.core.tracing import create_span
from app.modules.merge.exceptions import SweepItemError

logger = logging.getLogger(__name__)

STORAGE_ERRORS = (BotoCoreError, ClientError)


@dataclass(frozen=True)
class RetentionConfig:
    retention_days: int = 30
    max_items: int = 100

    @classmethod
    def from_settings(cls, source: Settings = settings) -> "RetentionConfig":
        return cls(
            retention_days=source.RETENTION_DAYS,
            max_items=source.RETENTION_MAX_ITEMS_PER_SWEEP,
        )


@dataclass
class SweepReport:
    """Outcome of one sweep."""
    cutoff: datetime
    matched: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    listing_failed: bool = False

    def to_dict(self) -> dict:
        return {
            "cutoff": self.cutoff.isoformat(),
            "matched": len(self.matched),
            "deleted": self.deleted,
            "failed": self.failed,
            "listing_failed": self.listing_failed,
        }


class RetentionSweeper:
    """Deletes artifacts whose creation time is before now minus the window."""

    def __init__(self, storage: Optional[S3Storage] = None, config: Optional[RetentionConfig] = None):
        self.storage = storage or get_storage()
        self.config = config or RetentionConfig.from_settings()

    def cutoff_for(self, now: datetime) -> datetime:
        return now - timedelta(days=self.config.retention_days)

    def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Run one sweep and report what happened.

        Never raises for storage errors: listing failures are reported on
        the returned report, per-item failures are collected in `failed`.
        """
        now = now or datetime.now(timezone.utc)
        report = SweepReport(cutoff=self.cutoff_for(now))
        log_info(logger, "Starting retention sweep", cutoff=report.cutoff.isoformat())

        with create_span("retention.sweep", {"retention_days": self.config.retention_days}):
            try:
                expired = self.storage.list_objects_before(report.cutoff, limit=self.config.max_items)
            except STORAGE_ERRORS as e:
                report.listing_failed = True
                RETENTION_SWEEPS_TOTAL.labels(outcome="listing_failed").inc()
                log_error(logger, "Retention sweep could not list artifacts", e)
                return report

            report.matched = [obj.key for obj in expired]
            log_info(logger, "Found expired videos", count=len(expired))

            for obj in expired:
                try:
                    self._delete(obj.key)
                except SweepItemError as e:
                    report.failed.append(obj.key)
                    RETENTION_DELETIONS_TOTAL.labels(outcome="failed").inc()
                    log_warning(logger, "Failed to delete expired video", key=e.key, error=str(e.cause))
                    continue
                report.deleted.append(obj.key)
                RETENTION_DELETIONS_TOTAL.labels(outcome="deleted").inc()

        RETENTION_SWEEPS_TOTAL.labels(outcome="completed").inc()
        log_info(
            logger,
            "Retention sweep completed",
            deleted=len(report.deleted),
            failed=len(report.failed),
        )
        return report

    def _delete(self, key: str) -> None:
        try:
            self.storage.delete(key)
        except STORAGE_ERRORS as e:
            raise SweepItemError(key, e) from e
        log_info(logger, "Deleted expired video", key=key)
