"""
Configuration Module

Centralized, type-safe configuration for the delivery and scheduling engine.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Platforms, state machine enums, rate limit tables, wire headers

Usage:
------
```python
from src.core.config import get_settings
from src.core.config.constants import JobStatus, Platform

settings = get_settings()
batch_size = settings.scheduler.SCHEDULER_BATCH_SIZE
```

Testing:
-------
```python
import os
from src.core.config import reload_settings

os.environ["RATE_LIMIT_DEFAULT_LIMIT"] = "10"
settings = reload_settings()
```
"""

from src.core.config.constants import (
    IMAGE_PROVIDER_LIMITS,
    OPERATION_LIMITS,
    PLATFORM_CHARACTER_LIMITS,
    PLATFORM_PUBLISH_LIMITS,
    SUPPORTED_PLATFORMS,
    SYNC_INTERVAL_SECONDS,
    DeliveryStatus,
    FallbackStage,
    IntegrationStatus,
    JobStatus,
    Platform,
    SyncFrequency,
    WebhookEvent,
)
from src.core.config.settings import get_settings, reload_settings

__all__ = [
    # Settings
    "get_settings",
    "reload_settings",
    # Enums
    "Platform",
    "JobStatus",
    "DeliveryStatus",
    "IntegrationStatus",
    "SyncFrequency",
    "WebhookEvent",
    "FallbackStage",
    # Tables
    "SUPPORTED_PLATFORMS",
    "PLATFORM_CHARACTER_LIMITS",
    "OPERATION_LIMITS",
    "PLATFORM_PUBLISH_LIMITS",
    "IMAGE_PROVIDER_LIMITS",
    "SYNC_INTERVAL_SECONDS",
]
