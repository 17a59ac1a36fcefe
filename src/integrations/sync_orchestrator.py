"""
Integration Sync Orchestrator

Keeps connected integrations synchronized on their configured cadence.

Architecture:
    SyncOrchestrator
        ├── start_sync / stop_sync / stop_all_syncs / start_all
        │       one PeriodicTask "sync:<integration_id>" per integration,
        │       owned by the Supervisor (at most one per integration)
        ├── sync_integration / sync_all      manual runs
        ├── perform_sync                     one sync run
        └── check_integration_health         connection, error rate, freshness

One Sync Run:
    1. data_sync rate limit check (denial -> skipped result, warn log)
    2. status = syncing
    3. connector.sync through RetryExecutor (SYNC_RETRY_MAX_ATTEMPTS)
       (every retry takes its own data_sync slot; a denial ends the run)
    4. success -> status connected, last_sync, metrics row, info log,
                  health success
       failure -> status error, error log, health failure, alert
                  (critical once the integration is marked unhealthy)
"""

import asyncio
import time
from datetime import timedelta
from typing import Any

from sqlalchemy import func, select, update

from src.core.config.constants import (
    SYNC_INTERVAL_SECONDS,
    AlertSeverity,
    AlertType,
    IntegrationStatus,
    LogLevel,
)
from src.core.exceptions import IntegrationNotFoundError, RateLimitExceededError
from src.core.interfaces.clock import Clock, utcnow
from src.core.interfaces.collaborators import CredentialCipher, decrypt_credentials
from src.core.logging.logger import get_logger
from src.core.resilience.health_tracker import ProviderHealthTracker
from src.core.resilience.rate_limiter import SlidingWindowRateLimiter
from src.core.resilience.retry import RetryExecutor, RetryPolicy
from src.core.resilience.supervisor import PeriodicTask, Supervisor
from src.infrastructure.database.models import Integration, IntegrationLog, IntegrationMetric
from src.infrastructure.database.session import Database
from src.integrations.activity import add_alert, add_log
from src.integrations.connectors import ConnectionTestResult, ConnectorRegistry, SyncResult

logger = get_logger(__name__)

SYNC_OPERATION = "data_sync"
TEST_CONNECTION_OPERATION = "test_connection"
SYNC_TASK_PREFIX = "sync:"
ERROR_LOG_WINDOW = timedelta(hours=24)
ERROR_LOG_THRESHOLD = 5

_RECOMMENDATIONS = {
    "connection": "Check your API credentials and network connectivity",
    "error_rate": "Review recent error logs and consider adjusting retry settings",
    "sync_status": "Enable automatic syncing or perform a manual sync",
}


def health_key(integration_id: str) -> str:
    return f"integration:{integration_id}"


class SyncOrchestrator:
    """
    Periodic and manual integration syncs.

    Usage:
        orchestrator = SyncOrchestrator(database, limiter, connectors, supervisor, health)
        await orchestrator.start_all()
        result = await orchestrator.sync_integration(integration_id)
    """

    def __init__(
        self,
        database: Database,
        rate_limiter: SlidingWindowRateLimiter,
        connectors: ConnectorRegistry,
        supervisor: Supervisor,
        health_tracker: ProviderHealthTracker,
        retry_executor: RetryExecutor | None = None,
        retry_policy: RetryPolicy | None = None,
        cipher: CredentialCipher | None = None,
        metrics: Any | None = None,
        clock: Clock = utcnow,
        overdue_seconds: int = 7200,
    ):
        self._db = database
        self._limiter = rate_limiter
        self._connectors = connectors
        self._supervisor = supervisor
        self._health = health_tracker
        self._retry = retry_executor or RetryExecutor()
        self._policy = retry_policy or RetryPolicy(max_attempts=3)
        self._cipher = cipher
        self._metrics = metrics
        self._clock = clock
        self._overdue = timedelta(seconds=overdue_seconds)

    # =========================================================================
    # Loop Management
    # =========================================================================

    async def start_sync(self, integration_id: str) -> bool:
        """
        (Re)start the periodic loop for an integration.

        Returns:
            False when the integration syncs manually (no loop registered)
        """
        integration = await self._get_integration(integration_id)
        await self.stop_sync(integration_id)

        interval = SYNC_INTERVAL_SECONDS.get(integration.sync_frequency)
        if interval is None:
            logger.info("Manual sync frequency, no loop started", integration_id=integration_id)
            return False

        self._supervisor.add(PeriodicTask(
            name=f"{SYNC_TASK_PREFIX}{integration_id}",
            func=lambda: self._sync_tick(integration_id),
            interval_seconds=interval,
            run_immediately=False,
        ))

        async with self._db.session() as session:
            add_log(session, integration_id, LogLevel.INFO, "Automatic sync started", {
                "frequency": integration.sync_frequency,
                "interval_seconds": interval,
            })
        logger.info(
            "Sync loop started",
            integration_id=integration_id,
            frequency=integration.sync_frequency,
            interval_seconds=interval,
        )
        return True

    async def stop_sync(self, integration_id: str) -> bool:
        removed = await self._supervisor.remove(f"{SYNC_TASK_PREFIX}{integration_id}")
        if removed:
            async with self._db.session() as session:
                add_log(session, integration_id, LogLevel.INFO, "Automatic sync stopped")
            logger.info("Sync loop stopped", integration_id=integration_id)
        return removed

    async def stop_all_syncs(self) -> int:
        ids = self.active_syncs()
        for integration_id in ids:
            await self.stop_sync(integration_id)
        return len(ids)

    def active_syncs(self) -> list[str]:
        return [
            name[len(SYNC_TASK_PREFIX):]
            for name in self._supervisor.names()
            if name.startswith(SYNC_TASK_PREFIX)
        ]

    async def start_all(self) -> int:
        """Start loops for every active, non-disconnected integration."""
        async with self._db.session() as session:
            ids = list(
                (
                    await session.execute(
                        select(Integration.id).where(
                            Integration.is_active.is_(True),
                            Integration.status != IntegrationStatus.DISCONNECTED.value,
                        )
                    )
                ).scalars()
            )

        started = 0
        for integration_id in ids:
            try:
                if await self.start_sync(integration_id):
                    started += 1
            except Exception as e:
                logger.error("Failed to start sync loop", integration_id=integration_id, error=str(e))
        logger.info("Sync loops started", count=started, integrations=len(ids))
        return started

    async def _sync_tick(self, integration_id: str) -> None:
        async with self._db.session() as session:
            integration = await session.get(Integration, integration_id)
        if integration is None or not integration.is_active:
            logger.warning("Skipping sync for missing or inactive integration", integration_id=integration_id)
            return
        await self.perform_sync(integration)

    # =========================================================================
    # Sync Runs
    # =========================================================================

    async def sync_integration(self, integration_id: str) -> SyncResult:
        integration = await self._get_integration(integration_id)
        return await self.perform_sync(integration)

    async def sync_all(self, user_id: str) -> list[SyncResult]:
        """Sync every active, connected integration of a user concurrently."""
        async with self._db.session() as session:
            integrations = list(
                (
                    await session.execute(
                        select(Integration).where(
                            Integration.user_id == user_id,
                            Integration.is_active.is_(True),
                            Integration.status == IntegrationStatus.CONNECTED.value,
                        )
                    )
                ).scalars()
            )

        outcomes = await asyncio.gather(
            *(self.perform_sync(integration) for integration in integrations),
            return_exceptions=True,
        )
        results = []
        for integration, outcome in zip(integrations, outcomes):
            if isinstance(outcome, BaseException):
                results.append(SyncResult(
                    integration_id=integration.id,
                    success=False,
                    errors=[str(outcome) or type(outcome).__name__],
                    timestamp=self._clock(),
                ))
            else:
                results.append(outcome)
        return results

    async def _admit(self, integration_id: str) -> None:
        """Take a data_sync slot or raise RateLimitExceededError."""
        decision = await self._limiter.check_and_consume(integration_id, SYNC_OPERATION)
        if not decision.allowed:
            raise RateLimitExceededError(
                f"Rate limit exceeded, retry after {decision.retry_after_seconds}s",
                retry_after_seconds=decision.retry_after_seconds,
                details={"integration_id": integration_id},
            )

    async def perform_sync(self, integration: Integration) -> SyncResult:
        started = time.perf_counter()

        try:
            await self._admit(integration.id)
        except RateLimitExceededError as e:
            logger.warning(
                "Sync skipped by rate limit",
                integration_id=integration.id,
                retry_after_seconds=e.retry_after_seconds,
            )
            async with self._db.session() as session:
                add_log(session, integration.id, LogLevel.WARN, "Sync skipped: rate limit exceeded", {
                    "retry_after_seconds": e.retry_after_seconds,
                })
            return SyncResult(
                integration_id=integration.id,
                success=False,
                errors=[e.message],
                timestamp=self._clock(),
                skipped=True,
            )

        await self._set_status(integration.id, IntegrationStatus.SYNCING)

        calls = 0

        async def sync_once() -> SyncResult:
            nonlocal calls
            # The first call was admitted above; retries need their own slot
            if calls:
                await self._admit(integration.id)
            calls += 1
            return await connector.sync(integration, credentials)

        try:
            connector = self._connectors.get(integration.platform)
            credentials = self._credentials(integration)
            result = await self._retry.execute(
                sync_once,
                self._policy,
                operation_name=f"{SYNC_TASK_PREFIX}{integration.id}",
            )
        except Exception as e:
            duration_ms = int((time.perf_counter() - started) * 1000)
            return await self._record_failure(integration, e, duration_ms)

        duration_ms = int((time.perf_counter() - started) * 1000)
        return await self._record_success(integration, result, duration_ms)

    async def _record_success(self, integration: Integration, result: SyncResult, duration_ms: int) -> SyncResult:
        now = self._clock()
        async with self._db.session() as session:
            await session.execute(
                update(Integration)
                .where(Integration.id == integration.id)
                .values(status=IntegrationStatus.CONNECTED.value, last_sync=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            session.add(IntegrationMetric(
                integration_id=integration.id,
                total_requests=1,
                successful_requests=1,
                failed_requests=0,
                success_rate=100.0,
                error_rate=0.0,
                average_response_time=float(duration_ms),
                data_processed=result.records_processed,
                sync_count=1,
                last_sync_duration_ms=duration_ms,
                recorded_at=now,
            ))
            add_log(session, integration.id, LogLevel.INFO, "Sync completed successfully", {
                "records_processed": result.records_processed,
                "duration_ms": duration_ms,
            })

        self._health.report_outcome(health_key(integration.id), True)
        if self._metrics is not None:
            self._metrics.record_sync_run(integration.platform, "success")

        logger.info(
            "Sync completed",
            integration_id=integration.id,
            platform=integration.platform,
            records_processed=result.records_processed,
            duration_ms=duration_ms,
        )
        result.integration_id = integration.id
        result.success = True
        result.duration_ms = duration_ms
        result.timestamp = now
        return result

    async def _record_failure(self, integration: Integration, error: Exception, duration_ms: int) -> SyncResult:
        now = self._clock()
        message = str(error) or type(error).__name__
        health = self._health.report_outcome(health_key(integration.id), False, message)
        severity = AlertSeverity.HIGH if health.is_healthy else AlertSeverity.CRITICAL

        async with self._db.session() as session:
            await session.execute(
                update(Integration)
                .where(Integration.id == integration.id)
                .values(status=IntegrationStatus.ERROR.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            add_log(session, integration.id, LogLevel.ERROR, "Sync failed", {
                "error": message,
                "duration_ms": duration_ms,
            })
            add_alert(
                session,
                integration.id,
                AlertType.ERROR,
                "Integration sync failed",
                f"Sync for {integration.name or integration.platform} failed: {message}",
                severity,
                {"consecutive_errors": health.consecutive_errors},
            )

        if self._metrics is not None:
            self._metrics.record_sync_run(integration.platform, "failed")

        logger.error(
            "Sync failed",
            integration_id=integration.id,
            platform=integration.platform,
            error=message,
            error_type=type(error).__name__,
            severity=severity.value,
        )
        return SyncResult(
            integration_id=integration.id,
            success=False,
            errors=[message],
            duration_ms=duration_ms,
            timestamp=now,
        )

    # =========================================================================
    # Health
    # =========================================================================

    async def test_connection(self, integration_id: str) -> ConnectionTestResult:
        integration = await self._get_integration(integration_id)

        decision = await self._limiter.check_and_consume(integration.id, TEST_CONNECTION_OPERATION)
        if not decision.allowed:
            return ConnectionTestResult(
                success=False,
                error=f"Rate limit exceeded, retry after {decision.retry_after_seconds}s",
            )

        started = time.perf_counter()
        try:
            connector = self._connectors.get(integration.platform)
            result = await connector.test_connection(integration, self._credentials(integration))
        except Exception as e:
            return ConnectionTestResult(
                success=False,
                response_time_ms=int((time.perf_counter() - started) * 1000),
                error=str(e) or type(e).__name__,
            )
        if not result.response_time_ms:
            result.response_time_ms = int((time.perf_counter() - started) * 1000)
        return result

    async def check_integration_health(self, integration_id: str) -> dict[str, Any]:
        """
        Score an integration on three checks: connection, recent error rate
        and sync freshness.
        """
        integration = await self._get_integration(integration_id)
        now = self._clock()
        checks: list[dict[str, Any]] = []

        connection = await self.test_connection(integration_id)
        checks.append({
            "check": "connection",
            "success": connection.success,
            "error": connection.error,
            "response_time_ms": connection.response_time_ms,
            "details": connection.details,
        })

        async with self._db.session() as session:
            error_count = (
                await session.execute(
                    select(func.count()).select_from(IntegrationLog).where(
                        IntegrationLog.integration_id == integration_id,
                        IntegrationLog.level == LogLevel.ERROR.value,
                        IntegrationLog.created_at > now - ERROR_LOG_WINDOW,
                    )
                )
            ).scalar_one()
        checks.append({
            "check": "error_rate",
            "success": error_count < ERROR_LOG_THRESHOLD,
            "error": f"Too many recent errors: {error_count}" if error_count >= ERROR_LOG_THRESHOLD else None,
            "details": {"error_count": error_count},
        })

        last_sync = integration.last_sync
        fresh = last_sync is not None and now - last_sync < self._overdue
        checks.append({
            "check": "sync_status",
            "success": fresh,
            "error": None if fresh else ("No recent sync" if last_sync is None else "Sync is overdue"),
            "details": {"last_sync": last_sync.isoformat() if last_sync else None},
        })

        passed = sum(1 for check in checks if check["success"])
        recommendations = [_RECOMMENDATIONS[c["check"]] for c in checks if not c["success"]]
        return {
            "integration_id": integration_id,
            "health_score": round(passed / len(checks) * 100),
            "checks": checks,
            "recommendations": recommendations or ["Integration is healthy - no action required"],
            "timestamp": now.isoformat(),
        }

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _get_integration(self, integration_id: str) -> Integration:
        async with self._db.session() as session:
            integration = await session.get(Integration, integration_id)
        if integration is None:
            raise IntegrationNotFoundError(
                f"Integration not found: {integration_id}",
                details={"integration_id": integration_id},
            )
        return integration

    async def _set_status(self, integration_id: str, status: IntegrationStatus) -> None:
        async with self._db.session() as session:
            await session.execute(
                update(Integration)
                .where(Integration.id == integration_id)
                .values(status=status.value, updated_at=self._clock())
                .execution_options(synchronize_session=False)
            )

    def _credentials(self, integration: Integration) -> dict[str, Any]:
        if integration.encrypted_credentials and self._cipher is not None:
            return decrypt_credentials(self._cipher, integration.encrypted_credentials)
        return {}
