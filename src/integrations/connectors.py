"""
Sync Connectors

A SyncConnector pulls data from one platform for an integration. The sync
orchestrator looks connectors up by platform in a ConnectorRegistry, so a
new platform only needs a connector class and a register() call.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.core.exceptions import ConnectorNotRegisteredError
from src.core.interfaces.clock import utcnow
from src.core.logging.logger import get_logger
from src.infrastructure.database.models import Integration

logger = get_logger(__name__)


@dataclass
class SyncResult:
    """
    Outcome of one sync run.

    A skipped run (rate limited, integration inactive) is not a failure:
    success is False but no error state is written.
    """
    integration_id: str
    success: bool
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_deleted: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0
    timestamp: datetime = field(default_factory=utcnow)
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "integration_id": self.integration_id,
            "success": self.success,
            "records_processed": self.records_processed,
            "records_created": self.records_created,
            "records_updated": self.records_updated,
            "records_deleted": self.records_deleted,
            "errors": self.errors,
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
            "skipped": self.skipped,
        }


@dataclass
class ConnectionTestResult:
    success: bool
    response_time_ms: int = 0
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


class SyncConnector(ABC):
    """
    Abstract base class for platform sync connectors.

    Connectors raise on failure; the orchestrator retries through the
    RetryExecutor and records the outcome.
    """

    platform: str = ""

    @abstractmethod
    async def sync(self, integration: Integration, credentials: dict[str, Any]) -> SyncResult:
        """Pull and store platform data for the integration."""

    @abstractmethod
    async def test_connection(self, integration: Integration, credentials: dict[str, Any]) -> ConnectionTestResult:
        """Cheap authenticated call proving the credentials work."""


class ConnectorRegistry:
    """Lookup table from platform name to SyncConnector."""

    def __init__(self, connectors: list[SyncConnector] | None = None):
        self._connectors: dict[str, SyncConnector] = {}
        for connector in connectors or []:
            self.register(connector)

    def register(self, connector: SyncConnector) -> None:
        if not connector.platform:
            raise ValueError(f"{type(connector).__name__} does not declare a platform")
        if connector.platform in self._connectors:
            logger.warning("Replacing sync connector", platform=connector.platform)
        self._connectors[connector.platform] = connector

    def get(self, platform: str) -> SyncConnector:
        try:
            return self._connectors[platform]
        except KeyError:
            raise ConnectorNotRegisteredError(
                f"No sync connector registered for platform: {platform}",
                details={"platform": platform, "available": self.platforms()},
            ) from None

    def platforms(self) -> list[str]:
        return sorted(self._connectors)

    def __contains__(self, platform: str) -> bool:
        return platform in self._connectors

    def __len__(self) -> int:
        return len(self._connectors)
