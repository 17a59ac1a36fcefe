"""
Request Logging Middleware
==========================

Logs every HTTP request and response and binds a correlation id for the
duration of the request, so every log line emitted by the engine while
handling it (scheduler, dispatcher, ...) carries the same id.

CORRELATION IDS:
----------------
- Taken from the incoming X-Correlation-ID header when the caller sends one
- Generated (uuid4) otherwise
- Echoed back on the response in the same header
- Cleared when the request finishes so it never leaks into background loops

Request bodies are never logged (post content and webhook secrets live
there), and sensitive headers are redacted.
"""

import time
import uuid
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from src.core.config.constants import HEADER_CORRELATION_ID
from src.core.logging.logger import clear_correlation_id, get_logger, set_correlation_id

logger = get_logger(__name__)


# ============================================================================
# CONFIGURATION
# ============================================================================

SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "x-api-key",
    "x-auth-token",
    "x-webhook-signature",
}

# Probe endpoints are polled constantly; log them at debug
QUIET_PATH_SUFFIXES = ("/health/live", "/health/ready")


# ============================================================================
# REQUEST LOGGING MIDDLEWARE
# ============================================================================


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for logging HTTP requests and responses.

    LOGGING STRATEGY:
    -----------------
    - Request: method, path, query params, headers (sanitized)
    - Response: status code, duration
    - Errors: full exception details, then re-raised for the handlers
    """

    def __init__(self, app, log_level: str = "INFO"):
        super().__init__(app)
        self.log_level = log_level.upper()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(HEADER_CORRELATION_ID) or str(uuid.uuid4())
        set_correlation_id(correlation_id)

        start_time = time.perf_counter()
        method = request.method
        path = request.url.path
        log = logger.debug if path.endswith(QUIET_PATH_SUFFIXES) else logger.info

        log(
            f"Incoming request: {method} {path}",
            method=method,
            path=path,
            query_params=str(request.query_params) if request.query_params else None,
            headers=self._sanitize_headers(dict(request.headers)),
            client_host=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {method} {path}",
                method=method,
                path=path,
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(time.perf_counter() - start_time, 4),
                exc_info=True,
            )
            raise
        else:
            response.headers[HEADER_CORRELATION_ID] = correlation_id
            log(
                f"Request completed: {method} {path}",
                method=method,
                path=path,
                status_code=response.status_code,
                duration_seconds=round(time.perf_counter() - start_time, 4),
            )
            return response
        finally:
            clear_correlation_id()

    def _sanitize_headers(self, headers: dict) -> dict:
        """Replace sensitive header values with "[REDACTED]"."""
        return {
            key: "[REDACTED]" if key.lower() in SENSITIVE_HEADERS else value
            for key, value in headers.items()
        }


# ============================================================================
# HELPER FUNCTION FOR APP REGISTRATION
# ============================================================================


def add_request_logging_middleware(app, log_level: str = "INFO"):
    """
    Add request logging middleware to the FastAPI application.

    Args:
        app: FastAPI application instance
        log_level: Minimum log level for request logs
    """
    app.add_middleware(RequestLoggingMiddleware, log_level=log_level)
    logger.info("Request logging middleware registered", log_level=log_level)
