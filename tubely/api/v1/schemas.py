from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="Health status indicator.")
    version: str
    storage_backend: str = Field(..., description="Object store uploads are published to.")
    bucket: str
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EnvCheckResponse(BaseModel):
    ffmpeg: bool
    ffprobe: bool


class CreateVideoRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255, json_schema_extra={"example": "Boots on the ground"})
    description: Optional[str] = Field(default=None, max_length=4096)


class VideoResponse(BaseModel):
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    video_url: Optional[str] = Field(default=None, description="Signed, time-limited retrieval URL.")
    thumbnail_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class VideoListResponse(BaseModel):
    videos: List[VideoResponse]


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[Any] = None
    diagnostics: Optional[str] = None


__all__ = [
    "HealthResponse",
    "EnvCheckResponse",
    "CreateVideoRequest",
    "VideoResponse",
    "VideoListResponse",
    "ErrorResponse",
]
