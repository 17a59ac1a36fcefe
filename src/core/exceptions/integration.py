"""
Integration Exceptions

Errors raised by the sync orchestrator and its connectors.
"""

from src.core.exceptions.base import PublishingEngineError


class IntegrationError(PublishingEngineError):
    """Base exception for integration errors."""
    pass


class IntegrationNotFoundError(IntegrationError):
    """Raised when an integration id does not exist."""
    pass


class ConnectorNotRegisteredError(IntegrationError):
    """Raised when no SyncConnector is registered for the integration's platform."""
    pass


class SyncFailedError(IntegrationError):
    """Raised when a sync run exhausts its retry policy."""
    pass
