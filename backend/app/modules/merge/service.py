"""Merge pipeline orchestration.

fetch -> concatenate -> plan (optional transform) -> deliver -> cleanup.
Steps run strictly in sequence for one request; blocking encoder and
storage calls run in the default executor so concurrent requests proceed.
"""

import asyncio
import contextvars
import functools
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from app.core.logging import bind_correlation_id, log_error, log_info
from app.core.metrics import MERGE_OUTPUT_BYTES, MERGE_PIPELINE_DURATION_SECONDS, MERGE_REQUESTS_TOTAL
from app.core.storage import S3Storage
from app.core.tracing import create_span
from app.modules.merge.delivery import DeliveryResult, RemoteDeliveryClient
from app.modules.merge.exceptions import ConfigurationError
from app.modules.merge.fetcher import VideoFetcher
from app.modules.merge.ffmpeg import FFmpegEncoder
from app.modules.merge.models import (
    MergeSession,
    PipelineConfig,
    ProcessingType,
    SessionOutcome,
    format_megabytes,
)
from app.modules.merge.planner import DeliveryPlanner
from app.modules.merge.schemas import MergeResponse, ProcessingInfo
from app.modules.merge.workspace import SessionWorkspace

logger = logging.getLogger(__name__)


async def _run_blocking(func: Callable, *args: Any) -> Any:
    """Run a blocking call in the executor, keeping log/trace context."""
    loop = asyncio.get_running_loop()
    ctx = contextvars.copy_context()
    return await loop.run_in_executor(None, functools.partial(ctx.run, func, *args))


class MergeService:
    """Runs one merge pipeline per call."""

    def __init__(
        self,
        config: PipelineConfig,
        storage: S3Storage,
        fetcher: Optional[VideoFetcher] = None,
        encoder: Optional[FFmpegEncoder] = None,
        planner: Optional[DeliveryPlanner] = None,
        delivery: Optional[RemoteDeliveryClient] = None,
    ):
        self.config = config
        self.storage = storage
        self.fetcher = fetcher or VideoFetcher()
        self.encoder = encoder or FFmpegEncoder(config.ffmpeg_path, config.ffprobe_path)
        self.planner = planner or DeliveryPlanner(config, self.encoder)
        self.delivery = delivery or RemoteDeliveryClient(storage, chunk_size=config.chunk_size)

    async def merge(self, video_urls: list[str]) -> MergeResponse:
        """Merge the videos and deliver the result.

        Every local file created for the session is removed before this
        returns or raises.

        Raises:
            ConfigurationError: If storage credentials are missing
            FetchError: If any URL cannot be downloaded
            ConcatenationError: If the encoder cannot join the files
            DeliveryAttemptError: If the primary upload fails with a non-retryable error
            DeliveryError: If the upload fallback chain ended without success
        """
        if not self.storage.config.is_configured:
            raise ConfigurationError("Storage configuration missing")

        session = MergeSession(source_urls=list(video_urls))
        started = time.perf_counter()

        with bind_correlation_id(session.session_id):
            log_info(logger, "New merge request", session_id=session.session_id, videos=len(video_urls))
            try:
                with SessionWorkspace(self.config.staging_dir, session.session_id) as workspace:
                    result = await self._run(session, workspace)
            except Exception as e:
                session.outcome = SessionOutcome.FAILURE
                MERGE_REQUESTS_TOTAL.labels(outcome=session.outcome.value).inc()
                log_error(logger, "Error during video merge process", e, session_id=session.session_id)
                raise
            finally:
                MERGE_PIPELINE_DURATION_SECONDS.observe(time.perf_counter() - started)

            session.outcome = SessionOutcome.SUCCESS
            MERGE_REQUESTS_TOTAL.labels(outcome=session.outcome.value).inc()
            MERGE_OUTPUT_BYTES.observe(session.final_size)
            response = self.build_response(session, result)
            log_info(
                logger,
                "Merge completed successfully",
                public_id=response.public_id,
                upload_type=response.upload_type,
                file_size=response.file_size,
                processing=response.processing.type,
            )
            return response

    async def _run(self, session: MergeSession, workspace: SessionWorkspace) -> DeliveryResult:
        with create_span("merge.fetch", {"videos": len(session.source_urls)}):
            session.staged_paths = await self.fetcher.fetch_all(session.source_urls, workspace)
        session.sizes["staged"] = sum(p.stat().st_size for p in session.staged_paths)

        session.concat_path = workspace.concat_path()
        with create_span("merge.concat"):
            session.sizes["concatenated"] = await _run_blocking(
                self.encoder.concat,
                session.staged_paths,
                session.concat_path,
                workspace.manifest_path(),
            )
        log_info(logger, "Merged video size", size=format_megabytes(session.original_size))

        with create_span("merge.plan", {"size_bytes": session.original_size}):
            await _run_blocking(self.planner.prepare, session, workspace)

        session.public_id = f"merged_{int(time.time() * 1000)}_{session.session_id}"
        with create_span("merge.deliver", {"strategy": session.strategy.value}):
            result = await _run_blocking(
                self.delivery.deliver,
                session.final_path,
                session.public_id,
                session.strategy,
            )
        session.public_id = result.public_id
        return result

    def build_response(self, session: MergeSession, result: DeliveryResult) -> MergeResponse:
        applied = session.processing is not ProcessingType.NONE
        final_size = format_megabytes(session.final_size)
        return MergeResponse(
            video_url=result.url,
            public_id=result.public_id,
            videos_processed=len(session.source_urls),
            file_size=final_size,
            original_size=format_megabytes(session.original_size) if applied else final_size,
            processing=ProcessingInfo(
                applied=applied,
                type=session.processing.value,
                quality_preserved=session.processing.quality_preserved,
            ),
            auto_delete=f"{self.config.retention_days} days",
            quality_preservation=session.processing.quality_label,
            upload_type=result.strategy.value,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
