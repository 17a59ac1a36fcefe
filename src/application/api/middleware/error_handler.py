"""
Error Handling Middleware and Exception Handlers
================================================

WHAT IS CENTRALIZED ERROR HANDLING?
-----------------------------------
Route handlers raise engine exceptions (ValidationError, JobNotFoundError,
RateLimitExceededError, ...) and never build error responses themselves.
This module maps them to HTTP in one place:

    ValidationError (and subclasses)   -> 400
    RequestValidationError (pydantic)  -> 422
    *NotFoundError                     -> 404
    RateLimitExceededError             -> 429 + Retry-After
    any other PublishingEngineError    -> 500

Every error body has the same shape:

    {"error": "<snake_case type>", "message": "...", "details": {...},
     "correlation_id": "..."}

TWO LAYERS:
-----------
1. FastAPI exception handlers (register_exception_handlers) for the known
   engine exceptions
2. ErrorHandlingMiddleware as the last line of defense for anything else,
   so no unhandled exception reaches the ASGI server
"""

import re
import traceback
from collections.abc import Callable

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from src.core.config.constants import HEADER_RETRY_AFTER
from src.core.exceptions import (
    DeliveryNotFoundError,
    IntegrationNotFoundError,
    JobNotFoundError,
    PublishingEngineError,
    RateLimitExceededError,
    ValidationError,
    WebhookNotFoundError,
)
from src.core.logging.logger import get_correlation_id, get_logger

logger = get_logger(__name__)

NOT_FOUND_ERRORS = (JobNotFoundError, WebhookNotFoundError, DeliveryNotFoundError, IntegrationNotFoundError)


def _error_code(exc: BaseException) -> str:
    name = type(exc).__name__.removesuffix("Error")
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def error_response(status_code: int, exc: PublishingEngineError, headers: dict[str, str] | None = None) -> JSONResponse:
    """Build the standard JSON error body for an engine exception."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": _error_code(exc),
            "message": exc.message,
            "details": exc.details,
            "correlation_id": exc.correlation_id or get_correlation_id(),
        },
        headers=headers,
    )


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    logger.info("Request rejected", path=request.url.path, error_type=type(exc).__name__, message=exc.message)
    return error_response(400, exc)


async def not_found_handler(request: Request, exc: PublishingEngineError) -> JSONResponse:
    return error_response(404, exc)


async def rate_limit_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    """
    Rate limit denials are capacity signals: 429 with a Retry-After hint.
    """
    logger.warning(
        "Rate limit exceeded",
        path=request.url.path,
        retry_after_seconds=exc.retry_after_seconds,
    )
    return error_response(429, exc, headers={HEADER_RETRY_AFTER: str(exc.retry_after_seconds)})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "error": "request_validation",
            "message": "Request body failed validation",
            "details": {"errors": exc.errors()},
            "correlation_id": get_correlation_id(),
        },
    )


async def engine_error_handler(request: Request, exc: PublishingEngineError) -> JSONResponse:
    logger.error(
        "Engine error during request",
        path=request.url.path,
        error_type=type(exc).__name__,
        message=exc.message,
        details=exc.details,
    )
    return error_response(500, exc)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register the engine exception handlers.

    Starlette resolves handlers by walking the exception's MRO, so the
    specific classes win over PublishingEngineError.
    """
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(RateLimitExceededError, rate_limit_handler)
    for exc_class in NOT_FOUND_ERRORS:
        app.add_exception_handler(exc_class, not_found_handler)
    app.add_exception_handler(PublishingEngineError, engine_error_handler)


# ============================================================================
# CATCH-ALL MIDDLEWARE
# ============================================================================


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Last line of defense for exceptions no handler claimed.

    Full details are logged server side; the client gets a generic 500
    (with the traceback only when include_traceback is set, i.e. in
    development).
    """

    def __init__(self, app, include_traceback: bool = False):
        super().__init__(app)
        self.include_traceback = include_traceback

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            method = request.method
            path = request.url.path
            error_type = type(e).__name__

            logger.error(
                f"Unhandled exception in request: {method} {path}",
                method=method,
                path=path,
                error_type=error_type,
                error_message=str(e),
                exc_info=True,
            )

            error_body = {
                "error": "internal_server_error",
                "message": "An unexpected error occurred while processing your request",
                "error_type": error_type,
                "correlation_id": get_correlation_id(),
            }
            if self.include_traceback:
                error_body["traceback"] = traceback.format_exc()
                error_body["detail"] = str(e)

            return JSONResponse(status_code=500, content=error_body)


def add_error_handling_middleware(app, include_traceback: bool = False):
    """
    Add error handling middleware to the FastAPI application.

    Add it before the logging middleware so it wraps everything registered
    after it.

    Args:
        app: FastAPI application instance
        include_traceback: Whether to include stack traces in responses
    """
    app.add_middleware(ErrorHandlingMiddleware, include_traceback=include_traceback)
    logger.info("Error handling middleware registered", include_traceback=include_traceback)
