"""
Integrations Module

Sync connectors, the sync orchestrator and integration activity records.
"""

from src.integrations.connectors import ConnectionTestResult, ConnectorRegistry, SyncConnector, SyncResult
from src.integrations.sync_orchestrator import SyncOrchestrator

__all__ = [
    "SyncOrchestrator",
    "SyncConnector",
    "ConnectorRegistry",
    "SyncResult",
    "ConnectionTestResult",
]
