"""
Market Breadth: Request Logger Middleware

Every request gets an id (the caller's X-Request-ID, or a new uuid4). It is
bound into structlog's context, so the breadth, index and Gemini log lines
emitted while serving a dashboard or analysis carry it. It is also echoed
in the response header and in JSON error bodies.
"""

from __future__ import annotations

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

log = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Polled by uptime checks; logged at debug instead of info
_QUIET_PATHS = frozenset({"/health"})


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log method, path, query, status and latency."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        path = request.url.path
        emit = log.debug if path in _QUIET_PATHS else log.info
        start = time.perf_counter()

        # Dashboard config travels in the query string
        emit("request.start", method=request.method, path=path, query=request.url.query or None)

        try:
            response = await call_next(request)
        except Exception:
            log.error(
                "request.error",
                method=request.method,
                path=path,
                latency_ms=round((time.perf_counter() - start) * 1000, 1),
            )
            raise

        emit(
            "request.complete",
            method=request.method,
            path=path,
            status=response.status_code,
            latency_ms=round((time.perf_counter() - start) * 1000, 1),
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
