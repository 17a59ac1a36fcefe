"""
Unit Tests for the Integration Sync Orchestrator
"""

from unittest.mock import AsyncMock

import pytest
from cryptography.fernet import Fernet
from sqlalchemy import select

from src.core.config.constants import IntegrationStatus, SyncFrequency
from src.core.exceptions import IntegrationNotFoundError
from src.core.interfaces.collaborators import FernetCredentialCipher, encrypt_credentials
from src.core.resilience.retry import RetryExecutor, RetryPolicy
from src.core.resilience.supervisor import Supervisor
from src.infrastructure.database.models import Integration, IntegrationAlert, IntegrationLog, IntegrationMetric
from src.integrations.connectors import ConnectorRegistry, SyncResult
from src.integrations.sync_orchestrator import SyncOrchestrator, health_key
from tests.test_fixtures.engine_factory import ScriptedConnector, add_integration


@pytest.fixture
def connector():
    return ScriptedConnector("twitter")


@pytest.fixture
def supervisor():
    return Supervisor()


def build(database, rate_limiter, supervisor, health_tracker, clock, *connectors, cipher=None):
    return SyncOrchestrator(
        database,
        rate_limiter,
        ConnectorRegistry(list(connectors)),
        supervisor,
        health_tracker,
        retry_executor=RetryExecutor(sleep=AsyncMock()),
        retry_policy=RetryPolicy(max_attempts=3, initial_delay_ms=10),
        cipher=cipher,
        clock=clock,
    )


@pytest.fixture
def orchestrator(database, rate_limiter, supervisor, health_tracker, clock, connector):
    return build(database, rate_limiter, supervisor, health_tracker, clock, connector)


async def reload(database, integration_id) -> Integration:
    async with database.session() as session:
        return await session.get(Integration, integration_id)


async def rows(database, model):
    async with database.session() as session:
        return list((await session.execute(select(model))).scalars())


@pytest.mark.unit
class TestSyncRuns:
    """Test a single sync run and its recorded outcome."""

    @pytest.mark.asyncio
    async def test_successful_sync(self, orchestrator, database, health_tracker, clock):
        integration = await add_integration(database, status=IntegrationStatus.ERROR)

        result = await orchestrator.sync_integration(integration.id)

        stored = await reload(database, integration.id)
        metrics = await rows(database, IntegrationMetric)
        assert result.success is True
        assert result.records_processed == 3
        assert result.integration_id == integration.id
        assert stored.status == IntegrationStatus.CONNECTED.value
        assert stored.last_sync == clock.now
        assert len(metrics) == 1
        assert metrics[0].data_processed == 3
        assert [log.message for log in await rows(database, IntegrationLog)] == ["Sync completed successfully"]
        assert health_tracker.get(health_key(integration.id)).is_healthy is True

    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self, database, rate_limiter, supervisor, health_tracker, clock):
        connector = ScriptedConnector("twitter", [
            ConnectionError("blip"),
            SyncResult(integration_id="", success=True, records_processed=7),
        ])
        orchestrator = build(database, rate_limiter, supervisor, health_tracker, clock, connector)
        integration = await add_integration(database)

        result = await orchestrator.sync_integration(integration.id)

        assert result.success is True
        assert result.records_processed == 7
        assert connector.sync_calls == 2

    @pytest.mark.asyncio
    async def test_failed_sync_records_error_and_alert(self, database, rate_limiter, supervisor, health_tracker, clock):
        connector = ScriptedConnector("twitter", [ConnectionError("api down")])
        orchestrator = build(database, rate_limiter, supervisor, health_tracker, clock, connector)
        integration = await add_integration(database)

        result = await orchestrator.sync_integration(integration.id)

        alerts = await rows(database, IntegrationAlert)
        assert result.success is False
        assert result.errors == ["api down"]
        assert connector.sync_calls == 3
        assert (await reload(database, integration.id)).status == IntegrationStatus.ERROR.value
        assert len(alerts) == 1
        assert alerts[0].severity == "high"
        assert health_tracker.get(health_key(integration.id)).consecutive_errors == 1

    @pytest.mark.asyncio
    async def test_alert_escalates_once_unhealthy(self, database, rate_limiter, supervisor, health_tracker, clock):
        connector = ScriptedConnector("twitter", [ConnectionError("api down")])
        orchestrator = build(database, rate_limiter, supervisor, health_tracker, clock, connector)
        integration = await add_integration(database)
        for _ in range(4):
            health_tracker.report_outcome(health_key(integration.id), False, "earlier failure")

        await orchestrator.sync_integration(integration.id)

        assert (await rows(database, IntegrationAlert))[0].severity == "critical"

    @pytest.mark.asyncio
    async def test_missing_connector_is_a_failed_sync(self, orchestrator, database):
        integration = await add_integration(database, platform="reddit")

        result = await orchestrator.sync_integration(integration.id)

        assert result.success is False
        assert "reddit" in result.errors[0]

    @pytest.mark.asyncio
    async def test_rate_limited_sync_is_skipped(self, orchestrator, database, rate_limiter, connector):
        rate_limiter.set_limit("data_sync", 1)
        integration = await add_integration(database)

        await orchestrator.sync_integration(integration.id)
        skipped = await orchestrator.sync_integration(integration.id)

        assert skipped.skipped is True
        assert skipped.success is False
        assert "Rate limit exceeded" in skipped.errors[0]
        assert connector.sync_calls == 1
        assert (await reload(database, integration.id)).status == IntegrationStatus.CONNECTED.value

    @pytest.mark.asyncio
    async def test_each_retry_needs_a_rate_limit_slot(self, database, rate_limiter, supervisor, health_tracker, clock):
        rate_limiter.set_limit("data_sync", 2)
        connector = ScriptedConnector("twitter", [ConnectionError("api down")])
        orchestrator = build(database, rate_limiter, supervisor, health_tracker, clock, connector)
        integration = await add_integration(database)

        result = await orchestrator.sync_integration(integration.id)

        assert connector.sync_calls == 2
        assert result.success is False
        assert result.skipped is False
        assert result.errors == ["Rate limit exceeded, retry after 60s"]
        assert (await reload(database, integration.id)).status == IntegrationStatus.ERROR.value

    @pytest.mark.asyncio
    async def test_credentials_are_decrypted(self, database, rate_limiter, supervisor, health_tracker, clock, connector):
        cipher = FernetCredentialCipher(Fernet.generate_key())
        orchestrator = build(database, rate_limiter, supervisor, health_tracker, clock, connector, cipher=cipher)
        integration = await add_integration(
            database, encrypted_credentials=encrypt_credentials(cipher, {"api_key": "k-1"}),
        )

        await orchestrator.sync_integration(integration.id)

        assert connector.credentials_seen == [{"api_key": "k-1"}]

    @pytest.mark.asyncio
    async def test_unknown_integration(self, orchestrator):
        with pytest.raises(IntegrationNotFoundError):
            await orchestrator.sync_integration("missing")

    @pytest.mark.asyncio
    async def test_sync_all_only_connected_integrations_of_user(self, orchestrator, database):
        await add_integration(database, user_id="user-1")
        await add_integration(database, user_id="user-1", status=IntegrationStatus.DISCONNECTED)
        await add_integration(database, user_id="user-2")

        results = await orchestrator.sync_all("user-1")

        assert len(results) == 1
        assert results[0].success is True


@pytest.mark.unit
class TestSyncLoops:
    """Test periodic loop registration on the supervisor."""

    @pytest.mark.asyncio
    async def test_manual_frequency_starts_no_loop(self, orchestrator, database, supervisor):
        integration = await add_integration(database, sync_frequency=SyncFrequency.MANUAL)

        assert await orchestrator.start_sync(integration.id) is False
        assert supervisor.names() == []

    @pytest.mark.asyncio
    async def test_at_most_one_loop_per_integration(self, orchestrator, database, supervisor):
        integration = await add_integration(database, sync_frequency=SyncFrequency.HOURLY)

        assert await orchestrator.start_sync(integration.id) is True
        assert await orchestrator.start_sync(integration.id) is True

        assert supervisor.names() == [f"sync:{integration.id}"]
        assert orchestrator.active_syncs() == [integration.id]

        assert await orchestrator.stop_sync(integration.id) is True
        assert await orchestrator.stop_sync(integration.id) is False
        assert orchestrator.active_syncs() == []

    @pytest.mark.asyncio
    async def test_start_all_skips_disconnected_inactive_and_manual(self, orchestrator, database):
        wanted = await add_integration(database, sync_frequency=SyncFrequency.HOURLY)
        await add_integration(database, sync_frequency=SyncFrequency.DAILY, status=IntegrationStatus.DISCONNECTED)
        await add_integration(database, sync_frequency=SyncFrequency.HOURLY, is_active=False)
        await add_integration(database, sync_frequency=SyncFrequency.MANUAL)

        started = await orchestrator.start_all()

        assert started == 1
        assert orchestrator.active_syncs() == [wanted.id]
        assert await orchestrator.stop_all_syncs() == 1


@pytest.mark.unit
class TestIntegrationHealth:
    """Test connection checks and the health report."""

    @pytest.mark.asyncio
    async def test_never_synced_integration(self, orchestrator, database):
        integration = await add_integration(database)

        report = await orchestrator.check_integration_health(integration.id)

        checks = {c["check"]: c for c in report["checks"]}
        assert report["health_score"] == 67
        assert checks["connection"]["success"] is True
        assert checks["sync_status"]["error"] == "No recent sync"
        assert report["recommendations"] == ["Enable automatic syncing or perform a manual sync"]

    @pytest.mark.asyncio
    async def test_recent_sync_is_healthy(self, orchestrator, database):
        integration = await add_integration(database)
        await orchestrator.sync_integration(integration.id)

        report = await orchestrator.check_integration_health(integration.id)

        assert report["health_score"] == 100
        assert report["recommendations"] == ["Integration is healthy - no action required"]

    @pytest.mark.asyncio
    async def test_overdue_sync(self, orchestrator, database, clock):
        integration = await add_integration(database)
        await orchestrator.sync_integration(integration.id)
        clock.advance(hours=3)

        report = await orchestrator.check_integration_health(integration.id)

        checks = {c["check"]: c for c in report["checks"]}
        assert checks["sync_status"]["error"] == "Sync is overdue"

    @pytest.mark.asyncio
    async def test_failed_connection_test(self, orchestrator, database, connector):
        connector.connection_ok = False
        integration = await add_integration(database)

        result = await orchestrator.test_connection(integration.id)

        assert result.success is False
        assert result.error == "Invalid credentials"
