"""Domain models for the merge pipeline.

Nothing here is persisted: a session lives for one request and all of its
local files are removed before the response is produced.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from app.core.config import Settings, settings

MB = 1024 * 1024
MAX_VIDEOS_PER_REQUEST = 10


class DeliveryStrategy(str, Enum):
    """Upload mechanism used to deliver the final artifact."""
    DIRECT = "direct"
    ASYNC_EAGER = "async_eager"
    CHUNKED = "chunked"
    STREAMED = "streamed"
    RAW_FALLBACK = "raw_fallback"
    UNSIGNED_FALLBACK = "unsigned_fallback"


# Strategies tried after the tiered one, in order.
FALLBACK_CHAIN = (DeliveryStrategy.RAW_FALLBACK, DeliveryStrategy.UNSIGNED_FALLBACK)


class TransformHint(str, Enum):
    """Pre-upload transform allowed for a size tier."""
    NONE = "none"
    RESIZE = "resize"
    RESIZE_THEN_COMPRESS = "resize_then_compress"


class ProcessingType(str, Enum):
    """Transform actually applied to the delivered artifact."""
    NONE = "none"
    RESIZED = "resized"
    COMPRESSED = "compressed"

    @property
    def quality_preserved(self) -> bool:
        return self in (ProcessingType.NONE, ProcessingType.RESIZED)

    @property
    def quality_label(self) -> str:
        return {
            ProcessingType.NONE: "preserved",
            ProcessingType.RESIZED: "high (resolution optimized)",
            ProcessingType.COMPRESSED: "optimized (bitrate reduced)",
        }[self]


class SessionOutcome(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class PipelineConfig:
    """Thresholds and paths for one pipeline instance.

    Sizes are in bytes. Built from settings in production; tests construct
    it directly with other thresholds.
    """
    staging_dir: Path
    direct_max_bytes: int = 50 * MB
    async_max_bytes: int = 100 * MB
    chunked_max_bytes: int = 200 * MB
    resize_threshold_bytes: int = 95 * MB
    compress_threshold_bytes: int = 120 * MB
    compress_target_mb: float = 90
    resize_max_width: int = 1280
    resize_max_height: int = 720
    chunk_size: int = 6_000_000
    retention_days: int = 30
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    @classmethod
    def from_settings(cls, source: Settings = settings) -> "PipelineConfig":
        return cls(
            staging_dir=Path(source.STAGING_DIR),
            direct_max_bytes=int(source.DIRECT_UPLOAD_MAX_MB * MB),
            async_max_bytes=int(source.ASYNC_UPLOAD_MAX_MB * MB),
            chunked_max_bytes=int(source.CHUNKED_UPLOAD_MAX_MB * MB),
            resize_threshold_bytes=int(source.RESIZE_THRESHOLD_MB * MB),
            compress_threshold_bytes=int(source.COMPRESS_THRESHOLD_MB * MB),
            compress_target_mb=source.COMPRESS_TARGET_MB,
            resize_max_width=source.RESIZE_MAX_WIDTH,
            resize_max_height=source.RESIZE_MAX_HEIGHT,
            chunk_size=source.UPLOAD_CHUNK_SIZE,
            retention_days=source.RETENTION_DAYS,
            ffmpeg_path=source.FFMPEG_PATH,
            ffprobe_path=source.FFPROBE_PATH,
        )


@dataclass
class MergeSession:
    """State of one pipeline run."""
    source_urls: list[str]
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    staged_paths: list[Path] = field(default_factory=list)
    concat_path: Optional[Path] = None
    final_path: Optional[Path] = None
    processing: ProcessingType = ProcessingType.NONE
    strategy: Optional[DeliveryStrategy] = None
    public_id: Optional[str] = None
    outcome: SessionOutcome = SessionOutcome.PENDING
    sizes: dict[str, int] = field(default_factory=dict)

    @property
    def original_size(self) -> int:
        return self.sizes.get("concatenated", 0)

    @property
    def final_size(self) -> int:
        return self.sizes.get("final", self.original_size)


def format_megabytes(size_bytes: int) -> str:
    """Render a byte count the way API responses report sizes."""
    return f"{size_bytes / MB:.2f}MB"
