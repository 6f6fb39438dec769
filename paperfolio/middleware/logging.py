"""
Paperfolio Logging Middleware
Request logging, correlation ids and unhandled-error logging with structlog.
"""

import time
import traceback
import uuid
from typing import Callable, Iterable, Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from paperfolio.config.settings import settings

logger = structlog.get_logger("paperfolio.api")

DEFAULT_EXCLUDED_PATHS = (
    "/health",
    "/ready",
    "/live",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/favicon.ico",
    # long-lived SSE connections; logging them would report hour-long "requests"
    "/api/stream/",
)

SENSITIVE_HEADERS = ("authorization", "cookie", "x-api-key", "x-rapidapi-key", "x-auth-token")
SLOW_REQUEST_MS = 1000


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


def sanitize_headers(headers: dict) -> dict:
    return {
        key: "***REDACTED***" if any(s in key.lower() for s in SENSITIVE_HEADERS) else value
        for key, value in headers.items()
    }


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log one line per request with timing and status.

    Level follows the outcome: error for 5xx, warning for 4xx and slow
    requests, info otherwise. Every response carries an X-Request-ID header.
    """

    def __init__(self, app: ASGIApp, exclude_paths: Optional[Iterable[str]] = None):
        super().__init__(app)
        self.exclude_paths = tuple(exclude_paths) if exclude_paths is not None else DEFAULT_EXCLUDED_PATHS

    def _should_log(self, path: str) -> bool:
        return not path.startswith(self.exclude_paths)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        if not self._should_log(request.url.path):
            return await call_next(request)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "request_failed",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 3),
                error=str(e),
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        log_data = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "query": str(request.query_params) or None,
            "client_ip": client_ip(request),
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 3),
        }
        if settings.debug:
            log_data["headers"] = sanitize_headers(dict(request.headers))

        if response.status_code >= 500:
            logger.error("server_error", **log_data)
        elif response.status_code >= 400:
            logger.warning("client_error", **log_data)
        elif duration_ms > SLOW_REQUEST_MS:
            logger.warning("slow_request", **log_data)
        else:
            logger.info("request_completed", **log_data)

        response.headers["X-Request-ID"] = request_id
        return response


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id into structlog contextvars for the request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            request_path=request.url.path,
            request_method=request.method,
        )

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Log unhandled exceptions with their traceback, then re-raise."""

    def __init__(self, app: ASGIApp, include_traceback: bool = True):
        super().__init__(app)
        self.include_traceback = include_traceback

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            logger.critical(
                "unhandled_exception",
                request_id=getattr(request.state, "request_id", "unknown"),
                method=request.method,
                path=request.url.path,
                error_type=type(e).__name__,
                error_message=str(e),
                traceback=traceback.format_exc() if self.include_traceback else None,
            )
            raise


__all__ = [
    "RequestLoggingMiddleware",
    "StructuredLoggingMiddleware",
    "ErrorLoggingMiddleware",
    "client_ip",
    "sanitize_headers",
]
