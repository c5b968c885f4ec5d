"""
API middleware stack.

- Request ID injection (X-Request-ID header)
- Structured request/response logging
- Exception handlers mapping tracker errors to HTTP statuses
"""
from __future__ import annotations

import time
import uuid

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from shared.exceptions import (
    ConnectivityError,
    StoreWriteError,
    UpstreamError,
    UpstreamTransientError,
)
from shared.utils.logging import get_logger

logger = get_logger(__name__)

_QUIET_PATHS = ("/health", "/metrics")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Injects a unique X-Request-ID header into every request/response."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs structured request/response information."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in _QUIET_PATHS:
            return await call_next(request)

        start = time.monotonic()
        response = await call_next(request)
        logger.info(
            "http_request",
            method=request.method,
            path=path,
            status=response.status_code,
            duration_ms=round((time.monotonic() - start) * 1000, 2),
            request_id=getattr(request.state, "request_id", "unknown"),
        )
        return response


def _error(request: Request, status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "request_id": getattr(request.state, "request_id", "unknown"),
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register handlers for errors escaping the command surface."""

    @app.exception_handler(UpstreamTransientError)
    @app.exception_handler(ConnectivityError)
    async def upstream_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.warning("upstream_unavailable_for_command", path=request.url.path, error=str(exc))
        return _error(request, 503, "upstream_unavailable", "Riot API is unavailable, try again later")

    @app.exception_handler(UpstreamError)
    async def upstream_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("upstream_error_for_command", path=request.url.path, error=str(exc))
        return _error(request, 502, "upstream_error", str(exc))

    @app.exception_handler(StoreWriteError)
    async def store_write_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("store_write_failed_for_command", path=request.url.path, error=str(exc))
        return _error(request, 500, "store_write_failed", "Tracking state could not be saved")


def setup_middleware(app: FastAPI) -> None:
    """Apply all middleware to the FastAPI app in the correct order."""
    # Last added is outermost: request id must be set before logging reads it.
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    setup_exception_handlers(app)
