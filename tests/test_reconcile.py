from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from tubely.core.storage import LocalStorage
from tubely.services.reconcile import find_orphans, sweep_orphans


class LocatorSource:
    def __init__(self, *locators: str):
        self.locators = set(locators)

    async def referenced_locators(self) -> set[str]:
        return self.locators


@pytest.fixture()
def storage(tmp_path: Path) -> LocalStorage:
    storage = LocalStorage(tmp_path / "objects", secret="k", public_base_url="http://testserver")
    payload = tmp_path / "payload.mp4"
    payload.write_bytes(b"data")
    for key in ("landscape/kept.mp4", "landscape/stray.mp4", "portrait/stray.mp4", "exports/report.csv"):
        storage.put_file(key, payload, content_type="video/mp4")
    return storage


def test_find_orphans_only_scans_orientation_prefixes(storage):
    store = LocatorSource("local,landscape/kept.mp4", "tubely-media,portrait/stray.mp4", "https://legacy/video.mp4")
    scanned, orphans = asyncio.run(find_orphans(storage, store))
    assert scanned == 3
    assert orphans == ["landscape/stray.mp4", "portrait/stray.mp4"]


def test_sweep_is_dry_run_by_default(storage):
    report = asyncio.run(sweep_orphans(storage, LocatorSource("local,landscape/kept.mp4")))
    assert report.orphans == ["landscape/stray.mp4", "portrait/stray.mp4"]
    assert report.deleted == []
    assert "landscape/stray.mp4" in storage.list_keys()


def test_sweep_apply_deletes_orphans(storage):
    report = asyncio.run(sweep_orphans(storage, LocatorSource("local,landscape/kept.mp4"), apply=True))
    assert report.deleted == ["landscape/stray.mp4", "portrait/stray.mp4"]
    assert list(storage.list_keys()) == ["exports/report.csv", "landscape/kept.mp4"]
