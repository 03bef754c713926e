from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Thumbnail:
    data: bytes
    media_type: str


class ThumbnailStore:
    """Process-local thumbnail blobs keyed by video id."""

    def __init__(self) -> None:
        self._items: dict[str, Thumbnail] = {}
        self._lock = threading.Lock()

    def put(self, video_id: str, thumbnail: Thumbnail) -> None:
        with self._lock:
            self._items[video_id] = thumbnail

    def get(self, video_id: str) -> Thumbnail | None:
        with self._lock:
            return self._items.get(video_id)

    def discard(self, video_id: str) -> None:
        with self._lock:
            self._items.pop(video_id, None)


__all__ = ["Thumbnail", "ThumbnailStore"]
