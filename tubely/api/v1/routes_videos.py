from __future__ import annotations

import asyncio

from fastapi import APIRouter, Request, Response, status

from tubely.api import deps
from tubely.api.uploads import MultipartFileStream, reject_declared_oversize
from tubely.services.links import present_video
from tubely.services.video_store import require_owned_video

from . import schemas


router = APIRouter(tags=["videos"])


@router.post("/videos", response_model=schemas.VideoResponse, status_code=status.HTTP_201_CREATED)
async def create_video(
    payload: schemas.CreateVideoRequest,
    store: deps.VideoStoreDependency,
    storage: deps.StorageDependency,
    settings: deps.SettingsDependency,
    context: deps.AuthDependency,
) -> schemas.VideoResponse:
    video = await store.create(user_id=context.user_id, title=payload.title, description=payload.description)
    presented = await asyncio.to_thread(present_video, video, storage, ttl_s=settings.signed_url_ttl_seconds)
    return schemas.VideoResponse(**presented)


@router.get("/videos", response_model=schemas.VideoListResponse)
async def list_videos(
    store: deps.VideoStoreDependency,
    storage: deps.StorageDependency,
    settings: deps.SettingsDependency,
    context: deps.AuthDependency,
) -> schemas.VideoListResponse:
    videos = await store.list_for_user(context.user_id)
    ttl_s = settings.signed_url_ttl_seconds
    presented = await asyncio.to_thread(lambda: [present_video(video, storage, ttl_s=ttl_s) for video in videos])
    return schemas.VideoListResponse(videos=[schemas.VideoResponse(**item) for item in presented])


@router.get("/videos/{video_id}", response_model=schemas.VideoResponse)
async def get_video(
    video_id: str,
    store: deps.VideoStoreDependency,
    storage: deps.StorageDependency,
    settings: deps.SettingsDependency,
    context: deps.AuthDependency,
) -> schemas.VideoResponse:
    video = await require_owned_video(store, video_id, context.user_id)
    presented = await asyncio.to_thread(present_video, video, storage, ttl_s=settings.signed_url_ttl_seconds)
    return schemas.VideoResponse(**presented)


@router.delete("/videos/{video_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_video(
    video_id: str,
    request: Request,
    store: deps.VideoStoreDependency,
    context: deps.AuthDependency,
) -> Response:
    video = await require_owned_video(store, video_id, context.user_id)
    await store.delete(video)
    deps.get_thumbnail_store(request).discard(video.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/video_upload/{video_id}", response_model=schemas.VideoResponse)
async def upload_video(
    video_id: str,
    request: Request,
    service: deps.IngestServiceDependency,
    settings: deps.SettingsDependency,
    context: deps.AuthDependency,
) -> schemas.VideoResponse:
    # Ownership is settled before a single body byte is read.
    await service.authorize(user_id=context.user_id, video_id=video_id)
    reject_declared_oversize(request, settings.max_video_upload_bytes)

    # The part is read straight off the request stream; nothing is spooled before ingest checks it.
    upload = await MultipartFileStream.open(request, field="video", limit=settings.max_video_upload_bytes)
    result = await service.ingest(
        user_id=context.user_id,
        video_id=video_id,
        stream=upload,
        content_type=upload.content_type,
    )
    return schemas.VideoResponse(**result)


__all__ = ["router"]
