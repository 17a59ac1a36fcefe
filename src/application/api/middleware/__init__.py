"""
Middleware Package
==================

AVAILABLE MIDDLEWARE:
---------------------
1. error_handler: exception handlers plus a catch-all 500 middleware
2. request_logging: request/response logs and correlation ids

MIDDLEWARE ORDERING:
--------------------
Starlette wraps middleware in reverse registration order, so the last one
added runs first on the way in:

Request flow:  Client -> RequestLogging -> ErrorHandling -> Handler
Response flow: Handler -> ErrorHandling -> RequestLogging -> Client

Request logging therefore binds the correlation id before anything else
runs, and the catch-all error response still carries it.

USAGE EXAMPLE:
--------------
    from fastapi import FastAPI
    from src.application.api.middleware import setup_middleware

    app = FastAPI()
    setup_middleware(app)
"""

from fastapi import FastAPI

from src.core.config.settings import get_settings
from src.core.logging.logger import get_logger

from .error_handler import add_error_handling_middleware, register_exception_handlers
from .request_logging import add_request_logging_middleware

logger = get_logger(__name__)


def setup_middleware(app: FastAPI):
    """
    Register exception handlers and middleware in the correct order.

    Args:
        app: FastAPI application instance
    """
    settings = get_settings()

    register_exception_handlers(app)

    # Tracebacks only outside production-like environments
    add_error_handling_middleware(
        app, include_traceback=(settings.app.ENVIRONMENT == "development")
    )
    add_request_logging_middleware(app, log_level=settings.logging.LOG_LEVEL)

    logger.info("All middleware components registered successfully")


__all__ = [
    "setup_middleware",
    "add_error_handling_middleware",
    "add_request_logging_middleware",
    "register_exception_handlers",
]
