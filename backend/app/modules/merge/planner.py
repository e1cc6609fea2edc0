"""Size-tiered delivery planning.

One table of size tiers drives both decisions made about a concatenated
artifact: which pre-upload transform may be attempted and which upload
strategy delivers it. Tiers cover (previous upper, upper] in bytes.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from app.core.logging import log_info, log_warning
from app.core.metrics import TRANSFORMS_TOTAL
from app.modules.merge.exceptions import TransformError
from app.modules.merge.ffmpeg import FFmpegEncoder
from app.modules.merge.models import (
    DeliveryStrategy,
    MergeSession,
    PipelineConfig,
    ProcessingType,
    TransformHint,
    format_megabytes,
)
from app.modules.merge.workspace import SessionWorkspace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SizeTier:
    upper: Optional[int]  # inclusive; None for the open-ended last tier
    strategy: DeliveryStrategy
    transform: TransformHint

    def accepts(self, size: int) -> bool:
        return self.upper is None or size <= self.upper


def build_size_tiers(config: PipelineConfig) -> tuple[SizeTier, ...]:
    """Merge strategy bounds and transform marks into one ordered table."""
    strategy_bounds = [
        (config.direct_max_bytes, DeliveryStrategy.DIRECT),
        (config.async_max_bytes, DeliveryStrategy.ASYNC_EAGER),
        (config.chunked_max_bytes, DeliveryStrategy.CHUNKED),
    ]
    breakpoints = sorted({
        config.direct_max_bytes,
        config.async_max_bytes,
        config.chunked_max_bytes,
        config.resize_threshold_bytes,
        config.compress_threshold_bytes,
    })

    def strategy_for(upper: Optional[int]) -> DeliveryStrategy:
        if upper is not None:
            for bound, strategy in strategy_bounds:
                if upper <= bound:
                    return strategy
        return DeliveryStrategy.STREAMED

    def transform_for(lower: int) -> TransformHint:
        # Sizes in the tier are all strictly greater than `lower`.
        if lower >= config.compress_threshold_bytes:
            return TransformHint.RESIZE_THEN_COMPRESS
        if lower >= config.resize_threshold_bytes:
            return TransformHint.RESIZE
        return TransformHint.NONE

    tiers = []
    lower = 0
    for upper in [*breakpoints, None]:
        tiers.append(SizeTier(upper=upper, strategy=strategy_for(upper), transform=transform_for(lower)))
        if upper is not None:
            lower = upper
    return tuple(tiers)


class DeliveryPlanner:
    """Decides transforms and upload strategy from artifact byte size."""

    def __init__(self, config: PipelineConfig, encoder: Optional[FFmpegEncoder] = None):
        self.config = config
        self.encoder = encoder or FFmpegEncoder(config.ffmpeg_path, config.ffprobe_path)
        self.tiers = build_size_tiers(config)

    def tier_for(self, size: int) -> SizeTier:
        for tier in self.tiers:
            if tier.accepts(size):
                return tier
        return self.tiers[-1]

    def select_strategy(self, size: int) -> DeliveryStrategy:
        """Primary upload strategy for a final artifact size."""
        return self.tier_for(size).strategy

    def prepare(self, session: MergeSession, workspace: SessionWorkspace) -> Path:
        """Run any allowed transform and pick the delivery strategy.

        Transform failures are absorbed: the pipeline falls back to the best
        artifact it already has. Sets `final_path`, `processing` and
        `strategy` on the session.
        """
        current_path = session.concat_path
        current_size = session.original_size
        hint = self.tier_for(current_size).transform

        if hint is not TransformHint.NONE:
            log_info(
                logger,
                "Large file detected, attempting quality-preserving resize",
                size=format_megabytes(current_size),
            )
            resized = self._attempt(
                "resize",
                lambda out: self.encoder.resize(
                    current_path, out, self.config.resize_max_width, self.config.resize_max_height
                ),
                workspace.transform_path("resized"),
                current_size,
                workspace,
            )
            if resized is not None:
                current_path, current_size = resized
                session.sizes["resized"] = current_size
                session.processing = ProcessingType.RESIZED

        if hint is TransformHint.RESIZE_THEN_COMPRESS and current_size > self.config.compress_threshold_bytes:
            log_info(logger, "Trying compression for very large file", size=format_megabytes(current_size))
            source_path = current_path
            compressed = self._attempt(
                "compress",
                lambda out: self.encoder.compress(source_path, out, self.config.compress_target_mb),
                workspace.transform_path("compressed"),
                current_size,
                workspace,
            )
            if compressed is not None:
                if source_path != session.concat_path:
                    workspace.release(source_path)
                current_path, current_size = compressed
                session.sizes["compressed"] = current_size
                session.processing = ProcessingType.COMPRESSED

        session.final_path = current_path
        session.sizes["final"] = current_size
        session.strategy = self.select_strategy(current_size)
        log_info(
            logger,
            "Delivery planned",
            processing=session.processing.value,
            strategy=session.strategy.value,
            size=format_megabytes(current_size),
        )
        return current_path

    def _attempt(self, operation, run, output_path: Path, current_size: int, workspace: SessionWorkspace):
        """Run one transform; return (path, size) only if it shrank the artifact."""
        try:
            result = run(output_path)
        except (TransformError, OSError) as e:
            TRANSFORMS_TOTAL.labels(transform=operation, outcome="failed").inc()
            log_warning(logger, f"{operation.capitalize()} failed, keeping current artifact", error=str(e))
            workspace.release(output_path)
            return None

        if result is None:
            TRANSFORMS_TOTAL.labels(transform=operation, outcome="skipped").inc()
            workspace.release(output_path)
            return None

        if result.file_size >= current_size:
            TRANSFORMS_TOTAL.labels(transform=operation, outcome="rejected").inc()
            log_info(
                logger,
                f"{operation.capitalize()} did not reduce size, keeping current artifact",
                before=format_megabytes(current_size),
                after=format_megabytes(result.file_size),
            )
            workspace.release(output_path)
            return None

        TRANSFORMS_TOTAL.labels(transform=operation, outcome="applied").inc()
        log_info(logger, f"{operation.capitalize()} complete", size=format_megabytes(result.file_size))
        return result.output_path, result.file_size
