#!/usr/bin/env python3
"""
FastAPI Application Entry Point

HTTP surface and process lifecycle of the delivery and scheduling engine.
The lifespan builds one ServiceContainer, starts the background loops and
tears everything down on shutdown.

Run:
    uvicorn src.application.app:app --host 0.0.0.0 --port 8000
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.application.api.middleware import setup_middleware
from src.application.api.routes.admin import router as admin_router
from src.application.api.routes.health import router as health_router
from src.application.api.routes.scheduled_posts import router as scheduled_posts_router
from src.application.api.routes.webhooks import router as webhooks_router
from src.application.container import ServiceContainer
from src.core.config.constants import HEADER_CORRELATION_ID, HEADER_RETRY_AFTER
from src.core.config.settings import get_settings
from src.core.logging.logger import get_logger, setup_logging

logger = get_logger(__name__)


# ============================================================================
# Application Lifespan
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle (startup and shutdown).

    A container injected through create_app(container=...) is used as is;
    otherwise one is built from the current settings.
    """
    container: ServiceContainer | None = getattr(app.state, "container", None)
    if container is None:
        settings = get_settings()
        setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)
        container = ServiceContainer(settings)
        app.state.container = container

    settings = container.settings
    logger.info(
        "Starting publishing engine",
        environment=settings.app.ENVIRONMENT,
        version=settings.app.APP_VERSION,
        workers_enabled=settings.app.WORKERS_ENABLED,
    )

    try:
        await container.start(run_workers=settings.app.WORKERS_ENABLED)
        logger.info("Application startup complete")

        yield

    finally:
        logger.info("Shutting down application")
        await container.shutdown()
        logger.info("Application shutdown complete")


# ============================================================================
# Application Factory
# ============================================================================


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        container: Pre-built services (tests); built in the lifespan when omitted

    Returns:
        FastAPI: Configured application instance
    """
    settings = container.settings if container is not None else get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Reliable delivery and scheduling engine for multi-platform publishing",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    if container is not None:
        app.state.container = container

    # ========================================================================
    # MIDDLEWARE REGISTRATION
    # ========================================================================
    # Starlette runs the last registered middleware first, so CORS (added
    # last) wraps the error responses produced further in.
    setup_middleware(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[HEADER_CORRELATION_ID, HEADER_RETRY_AFTER],
    )

    # ========================================================================
    # ROUTER REGISTRATION
    # ========================================================================
    # All API endpoints are prefixed with API_BASE_PATH (default: /api/v1):
    # - POST /api/v1/scheduled-posts
    # - POST /api/v1/webhooks
    # - GET  /api/v1/health
    # - GET  /api/v1/admin/metrics
    base_path = settings.app.API_BASE_PATH

    app.include_router(scheduled_posts_router, prefix=base_path)
    app.include_router(webhooks_router, prefix=base_path)
    app.include_router(health_router, prefix=base_path)
    app.include_router(admin_router, prefix=base_path)

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": settings.app.APP_NAME,
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "docs": "/docs",
            "health": f"{base_path}/health",
        }

    return app


# Create application instance
app = create_app()


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "src.application.app:app",
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        reload=settings.app.ENVIRONMENT == "development",
        log_level=settings.logging.LOG_LEVEL.lower(),
    )
