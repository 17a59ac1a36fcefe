"""
Database Layer

SQLAlchemy 2.0 async models and session management for the durable store.
"""

from src.infrastructure.database.models import (
    Base,
    Integration,
    IntegrationAlert,
    IntegrationLog,
    IntegrationMetric,
    PostJob,
    UTCDateTime,
    WebhookDelivery,
    WebhookSubscription,
)
from src.infrastructure.database.session import Database

__all__ = [
    "Base",
    "Database",
    "UTCDateTime",
    "PostJob",
    "Integration",
    "IntegrationLog",
    "IntegrationAlert",
    "IntegrationMetric",
    "WebhookSubscription",
    "WebhookDelivery",
]
