"""repowatch REST API — FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from repowatch import __version__
from repowatch.api.deps import init_runtime, shutdown_runtime
from repowatch.api.errors import register_error_handlers
from repowatch.api.middleware.request_id import RequestIDMiddleware
from repowatch.api.routers import cron, trackers
from repowatch.core.config import Settings
from repowatch.core.logging import setup_logging


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build and return the FastAPI application.

    Runtime components are created on startup, so tests driving the app
    through ``ASGITransport`` (which skips lifespan) supply them via
    ``app.dependency_overrides``.
    """
    setup_logging()

    @asynccontextmanager
    async def _lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
        init_runtime(settings)
        yield
        await shutdown_runtime()

    app = FastAPI(
        title="repowatch",
        version=__version__,
        docs_url="/api/v1/docs",
        openapi_url="/api/v1/openapi.json",
        lifespan=_lifespan,
    )

    register_error_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health", tags=["ops"])
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    app.include_router(cron.router, prefix="/cron", tags=["cron"])
    app.include_router(trackers.router, prefix="/api/v1/trackers", tags=["trackers"])

    return app
