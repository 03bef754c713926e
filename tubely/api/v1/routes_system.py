from __future__ import annotations

from fastapi import APIRouter

from tubely.api import deps

from .schemas import HealthResponse


router = APIRouter(tags=["system"])


@router.get("/health", response_model=HealthResponse, summary="Liveness probe with the active storage backend")
async def health(settings: deps.SettingsDependency, storage: deps.StorageDependency) -> HealthResponse:
    return HealthResponse(version=settings.version, storage_backend=settings.storage_backend, bucket=storage.bucket)


__all__ = ["router"]
