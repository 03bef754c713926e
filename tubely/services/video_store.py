from __future__ import annotations

from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tubely.core.errors import AuthorizationError, NotFoundError, StorageError, ValidationError
from tubely.db.models import Video


class VideoStore:
    """Video metadata records keyed by video id."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, video_id: str) -> Video | None:
        try:
            return await self.session.get(Video, video_id, populate_existing=True)
        except SQLAlchemyError as exc:
            raise StorageError(f"metadata_read_failed:{exc}", status_code=500) from exc

    async def create(self, *, user_id: str, title: str, description: str | None = None) -> Video:
        video = Video(id=str(uuid4()), user_id=user_id, title=title, description=description)
        self.session.add(video)
        await self._commit()
        await self.session.refresh(video)
        return video

    async def update(self, video: Video) -> Video:
        self.session.add(video)
        await self._commit()
        await self.session.refresh(video)
        return video

    async def delete(self, video: Video) -> None:
        await self.session.delete(video)
        await self._commit()

    async def list_for_user(self, user_id: str) -> Sequence[Video]:
        stmt = select(Video).where(Video.user_id == user_id).order_by(Video.created_at.desc(), Video.id)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def referenced_locators(self) -> set[str]:
        stmt = select(Video.video_url).where(Video.video_url.is_not(None))
        result = await self.session.execute(stmt)
        return {value for value in result.scalars().all() if value}

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StorageError(f"metadata_write_failed:{exc}", status_code=500) from exc


def parse_video_id(raw: str) -> str:
    try:
        return str(UUID(str(raw)))
    except ValueError as exc:
        raise ValidationError("invalid_video_id") from exc


async def require_owned_video(store: VideoStore, video_id: str, user_id: str) -> Video:
    """Load a record and confirm ``user_id`` owns it."""
    video = await store.get(parse_video_id(video_id))
    if video is None:
        raise NotFoundError("video_not_found")
    if video.user_id != user_id:
        raise AuthorizationError("not_video_owner")
    return video


__all__ = ["VideoStore", "parse_video_id", "require_owned_video"]
