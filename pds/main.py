"""
FastAPI application entrypoint for the personal data store ingestion service.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pds.api.routes import router as api_router
from pds.core.config import get_settings
from pds.core.errors import DataStoreError
from pds.core.logging import configure_logging
from pds.dependencies import get_ingestion_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    scheduler = get_ingestion_scheduler()
    scheduler.start()
    try:
        yield
    finally:
        scheduler.stop()


async def _handle_data_store_error(request: Request, exc: DataStoreError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=int(exc.status_code), content={"error": exc.message})


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Personal Data Store",
        version="0.1.0",
        description="Connects Gmail and Plaid accounts and ingests their data on a schedule.",
        lifespan=_lifespan,
    )
    app.add_exception_handler(DataStoreError, _handle_data_store_error)
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
