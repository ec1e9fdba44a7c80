"""Help Center FastAPI application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from helpcenter import __version__
from helpcenter.api.api_keys import RateLimiter
from helpcenter.api.middleware import RequestLoggingMiddleware
from helpcenter.api.routes import (
    analytics,
    api_keys,
    articles,
    categories,
    health,
    integrations,
    knowledge_bases,
    public,
    public_api,
    team,
)
from helpcenter.config.settings import settings
from helpcenter.integrations.email import EmailService, build_email_service
from helpcenter.storage.base import NotFoundError, Storage

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _database_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    from sqlalchemy import text

    from helpcenter.db import async_session_factory, engine
    from helpcenter.storage.database import DatabaseStorage

    # Engine is created at import time; just verify connectivity at startup
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    app.state.storage = DatabaseStorage(async_session_factory)
    yield
    await engine.dispose()


def create_app(
    storage: Storage | None = None, email_service: EmailService | None = None
) -> FastAPI:
    """Build the application.

    Args:
        storage: Backend to serve from. When omitted, a database-backed
            storage is created at startup from ``DATABASE_URL``.
        email_service: Outgoing mail for invitations. Defaults to one
            built from the SMTP settings.
    """
    logging.basicConfig(level=settings.LOG_LEVEL)

    app = FastAPI(
        title="Help Center",
        version=__version__,
        lifespan=_database_lifespan if storage is None else None,
    )
    if storage is not None:
        app.state.storage = storage
    app.state.email_service = email_service or build_email_service()
    app.state.api_rate_limiter = RateLimiter(settings.API_RATE_LIMIT_WINDOW_SECONDS)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for module in (
        health,
        knowledge_bases,
        articles,
        categories,
        team,
        analytics,
        integrations,
        api_keys,
        public,
        public_api,
    ):
        app.include_router(module.router)

    # --- Exception handlers ---

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(PermissionError)
    async def permission_error_handler(request: Request, exc: PermissionError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": str(exc)})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app


app = create_app()
