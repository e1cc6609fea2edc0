"""API Router for the merge service."""

import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.logging import log_warning
from app.core.storage import get_storage
from app.modules.merge.exceptions import MergeError, ValidationError
from app.modules.merge.models import DeliveryStrategy, PipelineConfig
from app.modules.merge.schemas import ErrorResponse, MergeResponse, validate_merge_request
from app.modules.merge.service import MergeService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["merge"])


def get_merge_service() -> MergeService:
    """Dependency to get a MergeService instance."""
    return MergeService(PipelineConfig.from_settings(), get_storage())


def _error(status_code: int, error: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=error, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@router.post("/merge-videos", response_model=MergeResponse)
async def merge_videos(
    request: Request,
    service: MergeService = Depends(get_merge_service),
):
    """Merge videos in order and upload the result.

    Malformed bodies are rejected with 400 before anything is downloaded.
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error(400, "Request body must be valid JSON", "Invalid request")

    try:
        merge_request = validate_merge_request(body)
    except ValidationError as e:
        log_warning(logger, "Rejected merge request", error=str(e))
        return _error(400, str(e), "Invalid request")

    try:
        response = await service.merge(merge_request.video_urls)
    except MergeError as e:
        return _error(500, str(e), "Failed to merge videos")

    return JSONResponse(content=response.model_dump(by_alias=True))


@router.get("/health", tags=["health"])
async def health_check() -> dict:
    """Health check endpoint."""
    return {
        "status": "OK",
        "service": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "storage": "configured" if settings.storage_configured else "not configured",
        "autoDelete": f"{settings.RETENTION_DAYS} days",
        "uploadStrategies": [strategy.value for strategy in DeliveryStrategy],
    }


@router.get("/")
async def service_info() -> dict:
    """Describe the service and how to call it."""
    return {
        "message": f"{settings.PROJECT_NAME} v{settings.VERSION}",
        "features": [
            "Ordered merge of up to 10 videos without re-encoding",
            "Size-tiered upload strategy with bounded fallback",
            "Resize before compression for large outputs",
            f"Automatic deletion after {settings.RETENTION_DAYS} days",
        ],
        "endpoints": {
            "merge": "POST /merge-videos",
            "health": "GET /health",
            "metrics": "GET /metrics",
        },
        "usage": {
            "method": "POST",
            "url": "/merge-videos",
            "body": {"videoUrls": ["https://example.com/video1.mp4", "https://example.com/video2.mp4"]},
        },
    }
