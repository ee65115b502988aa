"""
Market Breadth: Global Exception Handlers

Consistent, structured error responses for the entire API. Every error
response follows the same JSON schema:
{"error": true, "status_code": ..., "detail": ..., "request_id": ...}
"""

from __future__ import annotations

import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

import structlog

from market_breadth.agents.analyst import AnalysisUnavailableError, InsufficientDataError

log = structlog.get_logger(__name__)


def _error_response(request: Request, status_code: int, detail, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": True,
            "status_code": status_code,
            "detail": detail,
            **extra,
            "request_id": getattr(request.state, "request_id", None),
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions with consistent JSON format."""
        return _error_response(request, exc.status_code, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle Pydantic validation errors -> 422 with field details."""
        errors = [
            {
                "field": ".".join(str(loc) for loc in err.get("loc", [])),
                "message": err.get("msg", ""),
                "type": err.get("type", ""),
            }
            for err in exc.errors()
        ]
        log.warning("validation_error", path=str(request.url.path), errors=errors)
        return _error_response(request, 422, "Validation error", errors=errors)

    @app.exception_handler(InsufficientDataError)
    async def insufficient_data_handler(request: Request, exc: InsufficientDataError):
        log.info("analysis.insufficient_data", path=str(request.url.path))
        return _error_response(request, 422, str(exc))

    @app.exception_handler(AnalysisUnavailableError)
    async def analysis_unavailable_handler(request: Request, exc: AnalysisUnavailableError):
        log.warning("analysis.unavailable", path=str(request.url.path), error=str(exc))
        return _error_response(request, 502, f"AI analysis unavailable: {exc}")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        """Catch-all for unhandled exceptions -> 500 with safe details."""
        log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
            traceback=traceback.format_exc(),
        )
        return _error_response(request, 500, "Internal server error")
