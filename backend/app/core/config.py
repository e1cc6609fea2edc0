"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
No sensitive values should be hardcoded here.
"""

from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "FFmpeg Video Merger API"
    VERSION: str = "2.4.0"
    DEBUG: bool = False
    DOMAIN: Optional[str] = None

    # CORS
    CORS_ORIGINS: list[str] = ["*"]

    # Celery broker (retention sweep schedule)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Local staging area for downloads and encoder output
    STAGING_DIR: str = "./temp"

    # External encoder binaries
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"

    # S3/MinIO/Compatible Storage - REQUIRED for merging
    STORAGE_BUCKET: str = ""
    STORAGE_REGION: str = ""
    STORAGE_ACCESS_KEY: str = ""
    STORAGE_SECRET_KEY: str = ""
    STORAGE_ENDPOINT_URL: Optional[str] = None  # Required for MinIO
    STORAGE_USE_SSL: bool = True
    STORAGE_FOLDER: str = "merged-videos"

    # Public upload profile used when signed uploads are exhausted
    UNSIGNED_UPLOAD_BUCKET: str = ""

    # CDN Configuration (optional)
    CDN_DOMAIN: Optional[str] = None
    CDN_ENABLED: bool = False

    # Delivery tiers (MB)
    DIRECT_UPLOAD_MAX_MB: float = 50
    ASYNC_UPLOAD_MAX_MB: float = 100
    CHUNKED_UPLOAD_MAX_MB: float = 200
    UPLOAD_CHUNK_SIZE: int = 6_000_000

    # Pre-upload transforms (MB)
    RESIZE_THRESHOLD_MB: float = 95
    COMPRESS_THRESHOLD_MB: float = 120
    COMPRESS_TARGET_MB: float = 90
    RESIZE_MAX_WIDTH: int = 1280
    RESIZE_MAX_HEIGHT: int = 720

    # Retention
    RETENTION_DAYS: int = 30
    RETENTION_MAX_ITEMS_PER_SWEEP: int = 100

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def storage_configured(self) -> bool:
        """Whether signed storage credentials are present."""
        return bool(self.STORAGE_BUCKET and self.STORAGE_ACCESS_KEY and self.STORAGE_SECRET_KEY)


settings = Settings()
