"""Unified error handling — ServiceError + RequestValidationError → JSON."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from repowatch.api.security import CronUnauthorizedError
from repowatch.dao.base import InvalidCursorError
from repowatch.engines.activity_tracker.github_client import GitHubAPIError
from repowatch.services import (
    ConflictError,
    NotFoundError,
    ServiceError,
    ValidationError,
)

_STATUS_MAP: dict[type[ServiceError], int] = {
    NotFoundError: 404,
    ConflictError: 409,
    ValidationError: 422,
}


async def _service_error_handler(_request: Request, exc: ServiceError) -> JSONResponse:
    status = 500
    for cls in type(exc).__mro__:
        if cls in _STATUS_MAP:
            status = _STATUS_MAP[cls]
            break
    return JSONResponse(status_code=status, content={"detail": str(exc)})


async def _validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    messages = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"])
        messages.append(f"{loc}: {err['msg']}")
    return JSONResponse(
        status_code=422,
        content={"detail": "; ".join(messages)},
    )


async def _invalid_cursor_handler(
    _request: Request, exc: InvalidCursorError
) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


async def _github_error_handler(_request: Request, exc: GitHubAPIError) -> JSONResponse:
    return JSONResponse(status_code=502, content={"detail": f"github unavailable: {exc}"})


async def _cron_unauthorized_handler(
    _request: Request, _exc: CronUnauthorizedError
) -> JSONResponse:
    return JSONResponse(status_code=401, content={"error": "Unauthorized"})


def register_error_handlers(app: FastAPI) -> None:
    """Register exception handlers on the app."""
    app.add_exception_handler(ServiceError, _service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(InvalidCursorError, _invalid_cursor_handler)  # type: ignore[arg-type]
    app.add_exception_handler(GitHubAPIError, _github_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(CronUnauthorizedError, _cron_unauthorized_handler)  # type: ignore[arg-type]
