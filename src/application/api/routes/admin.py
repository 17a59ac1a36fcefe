"""
Admin Routes
============

Operational endpoints. In production these belong behind authentication
or on an internal port.

    GET  /admin/metrics            Prometheus exposition
    GET  /admin/providers          health of every tracked provider
    POST /admin/providers/reset    clear health state (all, or ?providerId=)
    GET  /admin/tasks              supervisor loop state

PROMETHEUS SCRAPING:
--------------------
    scrape_configs:
      - job_name: 'publishing-engine'
        static_configs:
          - targets: ['localhost:8000']
        metrics_path: '/api/v1/admin/metrics'
        scrape_interval: 15s
"""

from typing import Any

from fastapi import APIRouter, Query, Response

from src.application.api.dependencies import ContainerDep, MetricsDep
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/metrics")
async def get_prometheus_metrics(metrics: MetricsDep):
    """
    Metrics in Prometheus text format.

    Returned through Response so the body is not JSON encoded and the
    Content-Type is the exposition format Prometheus expects.
    """
    return Response(content=metrics.get_prometheus_metrics(), media_type=metrics.get_content_type())


@router.get("/providers")
async def provider_health(container: ContainerDep) -> dict[str, Any]:
    return {
        "providers": [h.to_dict() for h in container.health_tracker.snapshot()],
        "image_providers": container.image_service.get_provider_status(),
        "unhealthy": container.health_tracker.unhealthy_providers(),
    }


@router.post("/providers/reset")
async def reset_provider_health(
    container: ContainerDep,
    provider_id: str | None = Query(default=None, alias="providerId"),
) -> dict[str, Any]:
    """Manual recovery after an incident; the next outcome rebuilds state."""
    container.health_tracker.reset(provider_id)
    logger.warning("Provider health reset", provider_id=provider_id or "all")
    return {"reset": provider_id or "all"}


@router.get("/tasks")
async def supervisor_tasks(container: ContainerDep) -> dict[str, Any]:
    return {
        "started": container.supervisor.started,
        "tasks": container.supervisor.snapshot(),
        "active_syncs": container.orchestrator.active_syncs(),
    }
