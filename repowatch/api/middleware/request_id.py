"""Request ID middleware — binds a request id to every log line of a request."""

from __future__ import annotations

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

log = structlog.get_logger("repowatch.api")

REQUEST_ID_HEADER = "X-Request-ID"

# liveness probes hit this every few seconds
_QUIET_PATHS = frozenset({"/health"})


def _incoming_request_id(request: Request) -> str:
    raw = request.headers.get(REQUEST_ID_HEADER, "")
    try:
        return str(uuid.UUID(raw))
    except ValueError:
        return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Reuse a valid incoming ``X-Request-ID`` or mint one, and echo it back."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _incoming_request_id(request)
        quiet = request.url.path in _QUIET_PATHS
        tokens = structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            log.exception("request.failed", duration_ms=_since(start))
            raise
        finally:
            structlog.contextvars.reset_contextvars(**tokens)

        if not quiet:
            log.info(
                "request.completed",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=_since(start),
            )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _since(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 1)
