from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from tubely.core.logging import get_logger
from tubely.core.storage import Locator, Storage
from tubely.media.orientation import Orientation
from tubely.services.video_store import VideoStore


@dataclass(slots=True)
class SweepReport:
    scanned: int = 0
    orphans: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)


async def find_orphans(storage: Storage, store: VideoStore) -> tuple[int, list[str]]:
    """Return the number of objects scanned and the keys no record references.

    Only keys under the orientation prefixes are considered; anything else in
    the bucket is not ours to judge.
    """
    referenced = set()
    for raw in await store.referenced_locators():
        locator = Locator.parse(raw)
        if locator is not None and locator.bucket == storage.bucket:
            referenced.add(locator.key)

    scanned = 0
    orphans: list[str] = []
    for orientation in Orientation:
        keys = await asyncio.to_thread(storage.list_keys, f"{orientation.value}/")
        for key in keys:
            scanned += 1
            if key not in referenced:
                orphans.append(key)
    return scanned, sorted(orphans)


async def sweep_orphans(storage: Storage, store: VideoStore, *, apply: bool = False) -> SweepReport:
    logger = get_logger(component="reconcile", bucket=storage.bucket, apply=apply)
    scanned, orphans = await find_orphans(storage, store)
    report = SweepReport(scanned=scanned, orphans=orphans)
    if apply:
        for key in orphans:
            await asyncio.to_thread(storage.delete, key)
            report.deleted.append(key)
            logger.info("orphan_deleted", key=key)
    logger.info("reconcile_completed", scanned=scanned, orphans=len(orphans), deleted=len(report.deleted))
    return report


__all__ = ["SweepReport", "find_orphans", "sweep_orphans"]
