from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tubely.core.auth import AuthContext, get_auth_context
from tubely.core.config import Settings, get_settings
from tubely.core.storage import Storage
from tubely.services.ingest_service import ThumbnailService, VideoIngestService
from tubely.services.thumbnails import ThumbnailStore
from tubely.services.video_store import VideoStore


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory = request.app.state.session_factory
    if not isinstance(session_factory, async_sessionmaker):
        raise RuntimeError("session_factory_not_configured")
    async with session_factory() as session:
        yield session


def get_storage(request: Request) -> Storage:
    storage: Storage = request.app.state.storage
    return storage


def get_thumbnail_store(request: Request) -> ThumbnailStore:
    thumbnails: ThumbnailStore = request.app.state.thumbnails
    return thumbnails


def get_app_settings() -> Settings:
    return get_settings()


def get_video_store(session: AsyncSession = Depends(get_session)) -> VideoStore:
    return VideoStore(session)


def get_ingest_service(
    request: Request,
    store: VideoStore = Depends(get_video_store),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
) -> VideoIngestService:
    return VideoIngestService(
        settings,
        storage,
        store,
        runner=request.app.state.tool_runner,
        locks=request.app.state.ingest_locks,
    )


def get_thumbnail_service(
    store: VideoStore = Depends(get_video_store),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
    thumbnails: ThumbnailStore = Depends(get_thumbnail_store),
) -> ThumbnailService:
    return ThumbnailService(settings, storage, store, thumbnails)


AuthDependency = Annotated[AuthContext, Depends(get_auth_context)]
IngestServiceDependency = Annotated[VideoIngestService, Depends(get_ingest_service)]
ThumbnailServiceDependency = Annotated[ThumbnailService, Depends(get_thumbnail_service)]
VideoStoreDependency = Annotated[VideoStore, Depends(get_video_store)]
StorageDependency = Annotated[Storage, Depends(get_storage)]
SettingsDependency = Annotated[Settings, Depends(get_app_settings)]


__all__ = [
    "get_session",
    "get_storage",
    "get_thumbnail_store",
    "get_app_settings",
    "get_video_store",
    "get_ingest_service",
    "get_thumbnail_service",
    "AuthDependency",
    "IngestServiceDependency",
    "ThumbnailServiceDependency",
    "VideoStoreDependency",
    "StorageDependency",
    "SettingsDependency",
]
