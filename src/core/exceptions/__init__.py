"""
Exception Module

Structured exception hierarchy for the delivery and scheduling engine.
All exceptions are organized by theme.

Module Structure:
-----------------
- **base.py**: PublishingEngineError base class + ConfigurationError, CredentialError
- **validation.py**: Boundary validation failures (never enqueued)
- **rate_limit.py**: Capacity signals carrying retry_after_seconds
- **provider.py**: External provider failures
- **scheduling.py**: Post job creation and dispatch errors
- **delivery.py**: Webhook subscription and delivery errors
- **integration.py**: Sync orchestrator and connector errors
- **classification.py**: Transient vs permanent failure classification

Usage:
------
```python
from src.core.exceptions import RateLimitExceededError, WebhookNotFoundError
from src.core.exceptions.classification import is_transient
```
"""

from src.core.exceptions.base import ConfigurationError, CredentialError, PublishingEngineError
from src.core.exceptions.classification import failure_severity, is_transient
from src.core.exceptions.delivery import (
    DeliveryError,
    DeliveryNotFoundError,
    WebhookDeliveryFailedError,
    WebhookNotFoundError,
)
from src.core.exceptions.integration import (
    ConnectorNotRegisteredError,
    IntegrationError,
    IntegrationNotFoundError,
    SyncFailedError,
)
from src.core.exceptions.provider import (
    AllProvidersFailedError,
    ProviderAPIError,
    ProviderError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from src.core.exceptions.rate_limit import RateLimitError, RateLimitExceededError
from src.core.exceptions.scheduling import (
    IntegrationNotConnectedError,
    JobNotFoundError,
    PublisherNotRegisteredError,
    PublishFailedError,
    SchedulingError,
)
from src.core.exceptions.validation import (
    EmptyContentError,
    InvalidScheduleDateError,
    InvalidWebhookConfigError,
    UnsupportedPlatformError,
    ValidationError,
)

__all__ = [
    # Base
    "PublishingEngineError",
    "ConfigurationError",
    "CredentialError",
    # Classification
    "is_transient",
    "failure_severity",
    # Validation
    "ValidationError",
    "UnsupportedPlatformError",
    "EmptyContentError",
    "InvalidScheduleDateError",
    "InvalidWebhookConfigError",
    # Rate Limit
    "RateLimitError",
    "RateLimitExceededError",
    # Provider
    "ProviderError",
    "ProviderUnavailableError",
    "ProviderTimeoutError",
    "ProviderAPIError",
    "AllProvidersFailedError",
    # Scheduling
    "SchedulingError",
    "JobNotFoundError",
    "PublisherNotRegisteredError",
    "IntegrationNotConnectedError",
    "PublishFailedError",
    # Delivery
    "DeliveryError",
    "DeliveryNotFoundError",
    "WebhookNotFoundError",
    "WebhookDeliveryFailedError",
    # Integration
    "IntegrationError",
    "IntegrationNotFoundError",
    "ConnectorNotRegisteredError",
    "SyncFailedError",
]
