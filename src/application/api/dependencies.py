"""
FastAPI Dependency Injection Module
===================================

WHAT IS DEPENDENCY INJECTION HERE?
----------------------------------
Every engine service is built once by the ServiceContainer during the
lifespan startup and stored on `app.state.container`. Route handlers never
construct services or import module-level instances; they declare what
they need and FastAPI resolves it per request:

    @router.post("/scheduled-posts")
    async def schedule(scheduler: SchedulerDep):
        # FastAPI called get_scheduler(request) and passed the result here
        ...

WHY app.state INSTEAD OF GLOBALS?
---------------------------------
- The container is tied to one app instance, so tests can build an app
  with a SQLite database and a MockTransport HTTP client
- Startup and shutdown order is owned by the lifespan context manager
- Overriding a dependency in a test is a single
  `app.dependency_overrides[get_scheduler] = ...` assignment

If the lifespan has not run (the container is missing) the dependency
raises a RuntimeError instead of silently building a second set of
services.
"""

from typing import Annotated

from fastapi import Depends, Request

from src.application.container import ServiceContainer
from src.core.config.settings import Settings, get_settings
from src.delivery.webhook_dispatcher import WebhookDispatcher
from src.infrastructure.monitoring.health_checker import HealthChecker
from src.infrastructure.monitoring.metrics_collector import MetricsCollector
from src.scheduling.job_scheduler import JobScheduler

# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def get_container(request: Request) -> ServiceContainer:
    """
    Retrieve the ServiceContainer built during application startup.

    Args:
        request: FastAPI Request object (automatically injected by FastAPI)

    Returns:
        ServiceContainer: The container stored on app.state

    Raises:
        RuntimeError: If the application lifespan has not run
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("Service container is not initialized; was the lifespan started?")
    return container


def get_scheduler(request: Request) -> JobScheduler:
    """Job scheduler used by the scheduled-posts routes."""
    return get_container(request).scheduler


def get_dispatcher(request: Request) -> WebhookDispatcher:
    """Webhook dispatcher used by the webhook routes."""
    return get_container(request).dispatcher


def get_health_checker(request: Request) -> HealthChecker:
    """Health checker used by the probe routes."""
    return get_container(request).health_checker


def get_metrics(request: Request) -> MetricsCollector:
    """Prometheus metrics wrapper used by the admin routes."""
    return get_container(request).metrics


# ============================================================================
# TYPE ALIASES FOR CLEAN ROUTE SIGNATURES
# ============================================================================
# Annotated[Type, Depends(provider)] lets a route declare
#     scheduler: SchedulerDep
# instead of
#     scheduler: JobScheduler = Depends(get_scheduler)

ContainerDep = Annotated[ServiceContainer, Depends(get_container)]
SchedulerDep = Annotated[JobScheduler, Depends(get_scheduler)]
DispatcherDep = Annotated[WebhookDispatcher, Depends(get_dispatcher)]
HealthCheckerDep = Annotated[HealthChecker, Depends(get_health_checker)]
MetricsDep = Annotated[MetricsCollector, Depends(get_metrics)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
