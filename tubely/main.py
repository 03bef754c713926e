from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tubely.api.v1 import get_api_router
from tubely.core.config import get_settings
from tubely.core.db import create_engine, create_session_factory
from tubely.core.errors import IngestError
from tubely.core.logging import configure_logging, get_logger
from tubely.core.storage import get_storage
from tubely.media.runner import SubprocessRunner
from tubely.services.ingest_service import KeyedLocks
from tubely.services.thumbnails import ThumbnailStore

logger = get_logger(component="api")


async def handle_ingest_error(request: Request, exc: IngestError) -> JSONResponse:
    logger.info(
        "request_failed",
        path=request.url.path,
        category=exc.category,
        status_code=exc.status_code,
        detail=exc.detail,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def create_app() -> FastAPI:
    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    configure_logging(level=log_level)
    storage = get_storage(settings)
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings
        app.state.storage = storage
        app.state.engine = engine
        app.state.session_factory = session_factory
        app.state.thumbnails = ThumbnailStore()
        app.state.ingest_locks = KeyedLocks()
        if not hasattr(app.state, "tool_runner"):
            app.state.tool_runner = SubprocessRunner()
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan,
        openapi_url="/openapi.json",
        docs_url="/docs",
    )
    app.add_exception_handler(IngestError, handle_ingest_error)
    app.include_router(get_api_router())
    return app


__all__ = ["create_app", "handle_ingest_error"]
