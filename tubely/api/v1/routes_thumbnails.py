from __future__ import annotations

from fastapi import APIRouter, Request, Response

from tubely.api import deps
from tubely.api.uploads import MultipartFileStream, reject_declared_oversize
from tubely.core.errors import NotFoundError
from tubely.services.video_store import parse_video_id

from . import schemas


router = APIRouter(tags=["thumbnails"])


@router.post("/thumbnail_upload/{video_id}", response_model=schemas.VideoResponse)
async def upload_thumbnail(
    video_id: str,
    request: Request,
    service: deps.ThumbnailServiceDependency,
    settings: deps.SettingsDependency,
    context: deps.AuthDependency,
) -> schemas.VideoResponse:
    reject_declared_oversize(request, settings.max_thumbnail_upload_bytes)
    upload = await MultipartFileStream.open(request, field="thumbnail", limit=settings.max_thumbnail_upload_bytes)
    result = await service.upload(
        user_id=context.user_id,
        video_id=video_id,
        stream=upload,
        content_type=upload.content_type,
    )
    return schemas.VideoResponse(**result)


@router.get("/thumbnails/{video_id}")
async def get_thumbnail(video_id: str, request: Request) -> Response:
    thumbnail = deps.get_thumbnail_store(request).get(parse_video_id(video_id))
    if thumbnail is None:
        raise NotFoundError("thumbnail_not_found")
    return Response(content=thumbnail.data, media_type=thumbnail.media_type)


__all__ = ["router"]
