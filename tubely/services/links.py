from __future__ import annotations

from typing import Any

from tubely.core.storage import Locator, Storage
from tubely.db.models import Video


def sign_locator(storage: Storage, locator: Locator, *, ttl_s: int) -> str:
    """Return a time-limited retrieval URL; never mutates remote state."""
    return storage.presign_get(locator.key, expires_s=ttl_s, bucket=locator.bucket)


def present_video(video: Video, storage: Storage, *, ttl_s: int) -> dict[str, Any]:
    """Snapshot a record for callers with its locator swapped for a fresh signed link.

    The ORM instance is left untouched so the signed URL can never be persisted.
    Values that are not ``bucket,key`` locators are passed through as stored.
    """
    video_url = video.video_url
    locator = Locator.parse(video_url)
    if locator is not None:
        video_url = sign_locator(storage, locator, ttl_s=ttl_s)
    return {
        "id": video.id,
        "user_id": video.user_id,
        "title": video.title,
        "description": video.description,
        "video_url": video_url,
        "thumbnail_url": video.thumbnail_url,
        "created_at": video.created_at,
        "updated_at": video.updated_at,
    }


__all__ = ["sign_locator", "present_video"]
