"""Pydantic schemas for the merge API."""

from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from app.modules.merge.exceptions import ValidationError
from app.modules.merge.models import MAX_VIDEOS_PER_REQUEST


class MergeRequest(BaseModel):
    """Body of a merge request."""
    video_urls: list[str] = Field(
        ...,
        alias="videoUrls",
        min_length=1,
        max_length=MAX_VIDEOS_PER_REQUEST,
        description="Ordered video URLs to merge",
    )

    class Config:
        populate_by_name = True


class ProcessingInfo(BaseModel):
    applied: bool
    type: str
    quality_preserved: bool = Field(..., alias="qualityPreserved")

    class Config:
        populate_by_name = True


class MergeResponse(BaseModel):
    """Successful merge response."""
    success: bool = True
    message: str = "Videos merged successfully"
    video_url: str = Field(..., alias="videoUrl")
    public_id: str = Field(..., alias="publicId")
    videos_processed: int = Field(..., alias="videosProcessed")
    file_size: str = Field(..., alias="fileSize")
    original_size: str = Field(..., alias="originalSize")
    processing: ProcessingInfo
    auto_delete: str = Field(..., alias="autoDelete")
    quality_preservation: str = Field(..., alias="qualityPreservation")
    upload_type: str = Field(..., alias="uploadType")
    timestamp: str

    class Config:
        populate_by_name = True


class ErrorResponse(BaseModel):
    """Failure body shared by client and server errors."""
    success: bool = False
    error: str
    message: str


def validate_merge_request(body: Any) -> MergeRequest:
    """Validate a raw JSON body before any resource is created.

    Raises:
        ValidationError: If `videoUrls` is missing, not a list, empty,
            longer than the limit, or holds anything but non-empty strings
    """
    urls = body.get("videoUrls") if isinstance(body, dict) else None
    if not isinstance(urls, list) or not urls:
        raise ValidationError("videoUrls array is required and must contain at least one URL")
    if len(urls) > MAX_VIDEOS_PER_REQUEST:
        raise ValidationError(f"Maximum {MAX_VIDEOS_PER_REQUEST} videos allowed per merge request")
    if any(not isinstance(url, str) or not url.strip() for url in urls):
        raise ValidationError("Each entry in videoUrls must be a non-empty URL string")

    try:
        return MergeRequest.model_validate({"videoUrls": [url.strip() for url in urls]})
    except PydanticValidationError as e:
        raise ValidationError(str(e)) from e
