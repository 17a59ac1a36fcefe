"""
Integration Activity Records

Writers for the integration_logs and integration_alerts tables. Used by the
sync orchestrator after every run and by the job scheduler when a publish
reaches a terminal failure.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config.constants import AlertSeverity, AlertType, LogLevel
from src.infrastructure.database.models import IntegrationAlert, IntegrationLog


def add_log(
    session: AsyncSession,
    integration_id: str,
    level: LogLevel,
    message: str,
    metadata: dict[str, Any] | None = None,
) -> IntegrationLog:
    entry = IntegrationLog(
        integration_id=integration_id,
        level=level.value,
        message=message,
        log_metadata=metadata or {},
    )
    session.add(entry)
    return entry


def add_alert(
    session: AsyncSession,
    integration_id: str,
    alert_type: AlertType,
    title: str,
    message: str,
    severity: AlertSeverity,
    metadata: dict[str, Any] | None = None,
) -> IntegrationAlert:
    alert = IntegrationAlert(
        integration_id=integration_id,
        type=alert_type.value,
        title=title,
        message=message,
        severity=severity.value,
        alert_metadata=metadata or {},
    )
    session.add(alert)
    return alert
