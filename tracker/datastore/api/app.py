"""
FastAPI application factory for the datastore HTTP API.

This module creates the FastAPI app with:
- CORS configuration for the frontend
- Datastore lifecycle management (startup sequence on lifespan enter)
- Backup and restore routes under /api/database
- Mapping of datastore errors to HTTP status codes
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .._version import __version__
from ..errors import DatastoreError
from ..service import Datastore, open_datastore
from .config import Settings
from .routes import router, status_for_error

logger = logging.getLogger(__name__)


def create_app(datastore: Datastore | None = None, settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        datastore: Already-open datastore to serve. When None, one is opened
            from the environment on startup and closed on shutdown.
        settings: API settings; loaded from the environment if None
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage datastore lifecycle."""
        if datastore is not None:
            yield
            return

        owned = open_datastore()
        app.state.datastore = owned
        try:
            yield
        finally:
            owned.close()

    app = FastAPI(
        title="Tracker Datastore",
        description="Backup and restore of the time-tracker database.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    if datastore is not None:
        app.state.datastore = datastore

    # CORS for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(DatastoreError)
    async def datastore_error_handler(request: Request, exc: DatastoreError) -> JSONResponse:
        status = status_for_error(exc)
        if status >= 500:
            logger.error(
                f"Datastore error on {request.url.path}: {exc.message}",
                extra={"code": exc.code},
            )
        return JSONResponse(
            status_code=status,
            content={"detail": exc.message, "code": exc.code},
        )

    # API routes
    app.include_router(router, prefix="/api/database")

    # Health endpoint at root
    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "tracker-datastore"}

    return app
