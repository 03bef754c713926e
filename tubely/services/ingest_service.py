from __future__ import annotations

import asyncio
import os
import tempfile
from collections import defaultdict
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Protocol

from tubely.core.config import Settings
from tubely.core.errors import IngestError, NotFoundError, ResourceLimitError, StorageError, ValidationError
from tubely.core.logging import get_logger
from tubely.core.storage import Storage
from tubely.media import ProbeResult, SubprocessRunner, ToolRunner, classify, make_key, probe, remux_faststart
from tubely.media.keys import extension_for
from tubely.media.remux import remux_output_path
from tubely.services.links import present_video
from tubely.services.thumbnails import Thumbnail, ThumbnailStore
from tubely.services.video_store import VideoStore, require_owned_video

CHUNK_SIZE = 1024 * 1024


class UploadStream(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


def normalise_media_type(content_type: str | None) -> str:
    if not content_type:
        raise ValidationError("missing_content_type")
    media_type = content_type.split(";", 1)[0].strip().lower()
    if "/" not in media_type:
        raise ValidationError("malformed_content_type")
    return media_type


async def read_capped(stream: UploadStream, limit: int) -> bytes:
    """Read a whole stream into memory, failing once it exceeds ``limit`` bytes."""
    buffer = bytearray()
    while True:
        chunk = await stream.read(CHUNK_SIZE)
        if not chunk:
            return bytes(buffer)
        buffer.extend(chunk)
        if len(buffer) > limit:
            raise ResourceLimitError("upload_too_large")


class KeyedLocks:
    """In-process asyncio locks keyed by an identifier, dropped once idle."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: defaultdict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                self._holders.pop(key, None)
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


class VideoIngestService:
    """Receive, stage, probe, classify, remux, publish, record and sign one upload.

    Local temporary files are removed on every exit path. A published object is
    never deleted here; if the record update fails it stays orphaned until the
    reconciliation sweep removes it.
    """

    def __init__(
        self,
        settings: Settings,
        storage: Storage,
        store: VideoStore,
        *,
        runner: ToolRunner | None = None,
        locks: KeyedLocks | None = None,
    ):
        self.settings = settings
        self.storage = storage
        self.store = store
        self.runner = runner or SubprocessRunner()
        self.locks = locks or KeyedLocks()
        self.logger = get_logger(component="ingest_service")

    async def authorize(self, *, user_id: str, video_id: str) -> None:
        await require_owned_video(self.store, video_id, user_id)

    async def ingest(
        self,
        *,
        user_id: str,
        video_id: str,
        stream: UploadStream,
        content_type: str | None,
        size_hint: int | None = None,
    ) -> dict[str, Any]:
        logger = self.logger.bind(video_id=video_id, user_id=user_id)
        try:
            video = await require_owned_video(self.store, video_id, user_id)
            media_type = normalise_media_type(content_type)
            if media_type != self.settings.supported_video_content_type:
                raise ValidationError(f"unsupported_content_type:{media_type}")
            if size_hint is not None and size_hint > self.settings.max_video_upload_bytes:
                raise ResourceLimitError("upload_too_large")

            logger.info("ingest_started", content_type=media_type)
            staged: Path | None = None
            try:
                staged = await self._stage(stream, extension_for(media_type), logger)
                geometry = await self._probe(staged)
                logger.info("probe_completed", width=geometry.width, height=geometry.height)
                orientation = classify(geometry)
                logger.info("orientation_classified", orientation=orientation.value)

                remuxed = await self._remux(staged)
                logger.info("remux_completed", size_bytes=remuxed.stat().st_size)

                key = make_key(media_type, orientation)
                locator = await asyncio.to_thread(self.storage.put_file, key, remuxed, content_type=media_type)
                logger.info("object_published", bucket=locator.bucket, key=locator.key)
            finally:
                if staged is not None:
                    self._cleanup(staged, remux_output_path(staged), logger=logger)

            async with self.locks.hold(video.id):
                try:
                    # Re-read under the lock; the record may have changed while we worked.
                    current = await self.store.get(video.id)
                    if current is None:
                        raise NotFoundError("video_not_found")
                    current.video_url = str(locator)
                    current = await self.store.update(current)
                except (NotFoundError, StorageError):
                    logger.error("object_orphaned", bucket=locator.bucket, key=locator.key)
                    raise
            logger.info("video_locator_updated", locator=str(locator))

            return await asyncio.to_thread(
                present_video,
                current,
                self.storage,
                ttl_s=self.settings.signed_url_ttl_seconds,
            )
        except IngestError as exc:
            logger.warning("ingest_failed", category=exc.category, detail=exc.detail, diagnostics=exc.diagnostics)
            raise

    async def _stage(self, stream: UploadStream, suffix: str, logger: Any) -> Path:
        limit = self.settings.max_video_upload_bytes
        staging_dir = self.settings.staging_dir
        if staging_dir is not None:
            Path(staging_dir).mkdir(parents=True, exist_ok=True)

        written = 0
        with tempfile.NamedTemporaryFile(
            delete=False,
            prefix="tubely-upload-",
            suffix=suffix,
            dir=staging_dir,
        ) as tmp:
            path = Path(tmp.name)
            try:
                while True:
                    chunk = await stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > limit:
                        raise ResourceLimitError("upload_too_large")
                    await asyncio.to_thread(tmp.write, chunk)
            except BaseException:
                tmp.close()
                self._cleanup(path, logger=logger)
                raise
        logger.info("upload_staged", path=str(path), size_bytes=written)
        return path

    async def _probe(self, path: Path) -> ProbeResult:
        return await asyncio.to_thread(
            probe,
            path,
            self.runner,
            binary=self.settings.ffprobe_binary,
            timeout=self.settings.tool_timeout_s,
        )

    async def _remux(self, path: Path) -> Path:
        return await asyncio.to_thread(
            remux_faststart,
            path,
            self.runner,
            binary=self.settings.ffmpeg_binary,
            timeout=self.settings.tool_timeout_s,
        )

    @staticmethod
    def _cleanup(*paths: Path, logger: Any) -> None:
        for path in paths:
            if not path.exists():
                continue
            try:
                os.remove(path)
                logger.info("tempfile_removed", path=str(path))
            except OSError as cleanup_error:
                logger.warning("tempfile_cleanup_failed", path=str(path), error=str(cleanup_error))


class ThumbnailService:
    """Store a thumbnail image in memory and point the record at it."""

    def __init__(self, settings: Settings, storage: Storage, store: VideoStore, thumbnails: ThumbnailStore):
        self.settings = settings
        self.storage = storage
        self.store = store
        self.thumbnails = thumbnails
        self.logger = get_logger(component="thumbnail_service")

    async def upload(
        self,
        *,
        user_id: str,
        video_id: str,
        stream: UploadStream,
        content_type: str | None,
        size_hint: int | None = None,
    ) -> dict[str, Any]:
        video = await require_owned_video(self.store, video_id, user_id)
        limit = self.settings.max_thumbnail_upload_bytes
        if size_hint is not None and size_hint > limit:
            raise ResourceLimitError("thumbnail_too_large")

        data = await read_capped(stream, limit)
        if not data:
            raise ValidationError("empty_thumbnail")

        media_type = (content_type or "application/octet-stream").split(";", 1)[0].strip() or "application/octet-stream"
        self.thumbnails.put(video.id, Thumbnail(data=data, media_type=media_type))

        video.thumbnail_url = f"{self.settings.public_base_url.rstrip('/')}/v1/thumbnails/{video.id}"
        video = await self.store.update(video)
        self.logger.info("thumbnail_stored", video_id=video.id, size_bytes=len(data), media_type=media_type)
        return await asyncio.to_thread(present_video, video, self.storage, ttl_s=self.settings.signed_url_ttl_seconds)


__all__ = [
    "CHUNK_SIZE",
    "KeyedLocks",
    "ThumbnailService",
    "UploadStream",
    "VideoIngestService",
    "normalise_media_type",
    "read_capped",
]
