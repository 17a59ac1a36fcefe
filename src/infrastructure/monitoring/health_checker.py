"""
Health Checker Module

Operational health surface of the delivery engine:
- Queue depth (pending / failed jobs, pending webhook deliveries)
- Unhealthy providers (image backends, webhooks, integrations)
- Database reachability
- Background loop state

Usage:
    checker = HealthChecker(database, scheduler, dispatcher, health_tracker)
    summary = await checker.check_health()
    report = await checker.detailed_health_report()
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from src.core.config.constants import JobStatus
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    """Health status enumeration."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class HealthChecker:
    """
    Aggregates component health into probe responses.

    Dependencies are passed in by the service container; optional ones
    (supervisor, orchestrator, image service, redis) are reported as
    "not_configured" when absent.
    """

    def __init__(
        self,
        database,
        scheduler,
        dispatcher,
        health_tracker,
        supervisor=None,
        orchestrator=None,
        image_service=None,
        redis=None,
        version: str = "1.0.0",
        environment: str = "development",
    ):
        self._db = database
        self._scheduler = scheduler
        self._dispatcher = dispatcher
        self._health = health_tracker
        self._supervisor = supervisor
        self._orchestrator = orchestrator
        self._images = image_service
        self._redis = redis
        self._version = version
        self._environment = environment

    async def check_health(self) -> dict[str, Any]:
        """
        Queue and provider summary for dashboards.

        Returns:
            Dict with status, pending/failed job counts, pending deliveries
            and the unhealthy provider ids
        """
        unhealthy = self._health.unhealthy_providers()
        try:
            counts = await self._scheduler.job_counts()
            pending_deliveries = await self._dispatcher.pending_delivery_count()
        except Exception as e:
            logger.error("Health check failed", error=str(e), error_type=type(e).__name__)
            return {
                "status": HealthStatus.UNHEALTHY.value,
                "timestamp": _timestamp(),
                "version": self._version,
                "error": str(e),
                "unhealthy_providers": unhealthy,
            }

        return {
            "status": (HealthStatus.DEGRADED if unhealthy else HealthStatus.HEALTHY).value,
            "timestamp": _timestamp(),
            "version": self._version,
            "pending_jobs": counts.get(JobStatus.PENDING.value, 0),
            "processing_jobs": counts.get(JobStatus.PROCESSING.value, 0),
            "failed_jobs": counts.get(JobStatus.FAILED.value, 0),
            "pending_deliveries": pending_deliveries,
            "unhealthy_providers": unhealthy,
        }

    async def liveness_check(self) -> dict[str, Any]:
        """Kubernetes liveness probe."""
        return {"status": "alive", "timestamp": _timestamp(), "version": self._version}

    async def readiness_check(self) -> dict[str, Any]:
        """Kubernetes readiness probe; ready once the database answers."""
        if await self._db.ping():
            return {"status": "ready", "timestamp": _timestamp(), "version": self._version}
        return {
            "status": "not_ready",
            "timestamp": _timestamp(),
            "version": self._version,
            "reason": "Database not available",
        }

    async def detailed_health_report(self) -> dict[str, Any]:
        """
        Detailed health report for all components.

        Overall status is unhealthy when the database is down, degraded
        when any provider is unhealthy or a loop has stopped.
        """
        report: dict[str, Any] = {
            "status": HealthStatus.HEALTHY.value,
            "timestamp": _timestamp(),
            "version": self._version,
            "environment": self._environment,
            "components": {},
        }
        issues: list[str] = []
        components = report["components"]

        database_ok = await self._db.ping()
        components["database"] = {"status": "healthy" if database_ok else "unhealthy"}
        if not database_ok:
            issues.append("database")

        if database_ok:
            summary = await self.check_health()
            components["queues"] = {
                key: summary.get(key)
                for key in ("pending_jobs", "processing_jobs", "failed_jobs", "pending_deliveries")
            }

        providers = [h.to_dict() for h in self._health.snapshot()]
        components["providers"] = providers
        issues.extend(f"provider:{p['provider_id']}" for p in providers if not p["is_healthy"])

        if self._images is not None:
            components["image_providers"] = self._images.get_provider_status()

        if self._orchestrator is not None:
            components["active_syncs"] = self._orchestrator.active_syncs()

        if self._supervisor is not None:
            tasks = self._supervisor.snapshot()
            components["tasks"] = tasks
            if self._supervisor.started:
                issues.extend(f"task:{t['name']}" for t in tasks if not t["running"])
        else:
            components["tasks"] = {"status": "not_configured"}

        if self._redis is not None:
            redis_health = await self._redis.health_check()
            components["redis"] = redis_health
            if redis_health.get("status") != "healthy":
                issues.append("redis")

        if "database" in issues:
            report["status"] = HealthStatus.UNHEALTHY.value
            report["failed_components"] = issues
        elif issues:
            report["status"] = HealthStatus.DEGRADED.value
            report["degraded_components"] = issues

        return report
