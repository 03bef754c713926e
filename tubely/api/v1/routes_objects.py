from __future__ import annotations

from fastapi import APIRouter, Query
from fastapi.responses import FileResponse

from tubely.api import deps
from tubely.core.errors import NotFoundError
from tubely.core.storage import LocalStorage


router = APIRouter(prefix="/objects", tags=["objects"])


@router.get("/{key:path}", summary="Retrieve a locally stored object through a signed link")
async def get_object(key: str, storage: deps.StorageDependency, token: str = Query(...)) -> FileResponse:
    if not isinstance(storage, LocalStorage):
        raise NotFoundError("signed_links_served_by_object_store")
    path, media_type = storage.open_signed(key, token)
    return FileResponse(path, media_type=media_type)


__all__ = ["router"]
