"""
Health Check Routes
===================

Operational health surface of the delivery engine.

KUBERNETES HEALTH PROBES:
-------------------------
1. LIVENESS (/health/live)
   - "Is the process running?" A failure restarts the container
   - Never checks dependencies

2. READINESS (/health/ready)
   - "Can this instance serve traffic?" A failure removes it from the
     load balancer without a restart
   - Checks the database, since every endpoint needs it

DASHBOARD ENDPOINTS:
--------------------
- /health            queue depth (pending/failed jobs, pending deliveries)
                     and the ids of unhealthy providers
- /health/detailed   adds per-provider health, image provider status,
                     active sync loops and supervisor tasks

Both dashboard endpoints always answer 200; the status is in the body.
"""

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from src.application.api.dependencies import HealthCheckerDep

router = APIRouter(prefix="/health", tags=["Health"])


# ============================================================================
# RESPONSE MODELS
# ============================================================================


class HealthSummaryResponse(BaseModel):
    """
    Queue and provider summary.

    Count fields are None when the database could not be queried; the
    status is then "unhealthy" and `error` explains why.
    """

    status: str
    timestamp: str
    version: str
    pending_jobs: int | None = None
    processing_jobs: int | None = None
    failed_jobs: int | None = None
    pending_deliveries: int | None = None
    unhealthy_providers: list[str] = []
    error: str | None = None


# ============================================================================
# HEALTH CHECK ENDPOINTS
# ============================================================================


@router.get("", response_model=HealthSummaryResponse)
async def health_check(health_checker: HealthCheckerDep):
    """Queue depth and unhealthy providers for dashboards."""
    return await health_checker.check_health()


@router.get("/detailed")
async def detailed_health(health_checker: HealthCheckerDep) -> dict[str, Any]:
    """
    Detailed per-component report.

    No response model: the component set depends on what is configured
    (Redis only appears with the redis rate limit backend).
    """
    return await health_checker.detailed_health_report()


@router.get("/live")
async def liveness_probe(health_checker: HealthCheckerDep):
    """Liveness probe; answers as long as the event loop does."""
    return await health_checker.liveness_check()


@router.get("/ready")
async def readiness_probe(health_checker: HealthCheckerDep):
    """
    Readiness probe.

    Raises:
        HTTPException: 503 when the database does not answer
    """
    result = await health_checker.readiness_check()
    if result["status"] != "ready":
        raise HTTPException(status_code=503, detail=result)
    return result
