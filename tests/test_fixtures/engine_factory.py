"""
Engine Test Factory

Controllable stand-ins for the engine's external collaborators: a frozen
clock, scripted publishers and sync connectors, image providers, and
helpers that seed integrations straight into the database.
"""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from src.core.config.constants import IntegrationStatus, SyncFrequency
from src.infrastructure.database.models import Integration
from src.infrastructure.database.session import Database
from src.integrations.connectors import ConnectionTestResult, SyncConnector, SyncResult
from src.publishing.publisher import Publisher, PublishResult
from src.routing.image_providers import ImageProvider, ImageRequest

START = datetime(2026, 10, 19, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Frozen clock; advance() moves it forward."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class ScriptedPublisher(Publisher):
    """
    Publisher that replays a script of outcomes.

    Each entry is a PublishResult (returned) or an exception (raised). Once
    the script runs out the last entry repeats.
    """

    def __init__(self, platform: str, script: list[PublishResult | Exception] | None = None):
        self.platform = platform
        self._script = list(script or [PublishResult(success=True, remote_id="remote-1", url="https://example.com/p/1")])
        self.calls: list[dict[str, Any]] = []

    async def publish(self, credentials: dict[str, Any], content: str, media: list[str]) -> PublishResult:
        self.calls.append({"credentials": credentials, "content": content, "media": media})
        outcome = self._script[min(len(self.calls), len(self._script)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class ScriptedConnector(SyncConnector):
    """Sync connector replaying outcomes the same way as ScriptedPublisher."""

    def __init__(self, platform: str, script: list[SyncResult | Exception] | None = None):
        self.platform = platform
        self._script = list(script or [])
        self.sync_calls = 0
        self.credentials_seen: list[dict[str, Any]] = []
        self.connection_ok = True

    async def sync(self, integration: Integration, credentials: dict[str, Any]) -> SyncResult:
        self.sync_calls += 1
        self.credentials_seen.append(credentials)
        if not self._script:
            return SyncResult(integration_id=integration.id, success=True, records_processed=3)
        outcome = self._script[min(self.sync_calls, len(self._script)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def test_connection(self, integration: Integration, credentials: dict[str, Any]) -> ConnectionTestResult:
        if self.connection_ok:
            return ConnectionTestResult(success=True, response_time_ms=12)
        return ConnectionTestResult(success=False, error="Invalid credentials")


class StaticImageProvider(ImageProvider):
    """Image provider whose generate() returns fixed images or raises."""

    def __init__(
        self,
        provider_id: str,
        priority: int,
        reliability: float = 0.9,
        images: list[str] | None = None,
        error: Exception | None = None,
        configured: bool = True,
    ):
        super().__init__("key" if configured else None)
        self.provider_id = provider_id
        self.name = provider_id
        self.priority = priority
        self.reliability = reliability
        self._images = images if images is not None else [f"https://img.example.com/{provider_id}.png"]
        self._error = error
        self.calls = 0

    async def _generate(self, prompt: str, request: ImageRequest) -> list[str]:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return list(self._images)


def mock_http_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by handler."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def add_integration(
    database: Database,
    user_id: str = "user-1",
    platform: str = "twitter",
    status: IntegrationStatus = IntegrationStatus.CONNECTED,
    sync_frequency: SyncFrequency = SyncFrequency.MANUAL,
    encrypted_credentials: str | None = None,
    name: str = "",
    is_active: bool = True,
    created_at: datetime | None = None,
) -> Integration:
    integration = Integration(
        user_id=user_id,
        platform=platform,
        name=name or f"{platform} account",
        status=status.value,
        sync_frequency=sync_frequency.value,
        encrypted_credentials=encrypted_credentials,
        configuration={},
        is_active=is_active,
        created_at=created_at or START,
        updated_at=created_at or START,
    )
    async with database.session() as session:
        session.add(integration)
    return integration
