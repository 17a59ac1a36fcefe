"""
System Constants and Enumerations

This module defines the fixed tables and enumerations shared by the
scheduler, webhook dispatcher, rate limiter and sync orchestrator.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for limits and state names
- Type-safe enums for the persisted state machines
"""

from enum import Enum

# ============================================================================
# Platforms
# ============================================================================


class Platform(str, Enum):
    """Publishing destinations accepted by the scheduling endpoint."""

    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    BLUESKY = "bluesky"
    REDDIT = "reddit"
    PINTEREST = "pinterest"
    BLOGGER = "blogger"


SUPPORTED_PLATFORMS: frozenset[str] = frozenset(p.value for p in Platform)

# Max characters per post; platforms without an entry are not length checked
PLATFORM_CHARACTER_LIMITS: dict[str, int] = {
    "twitter": 280,
    "linkedin": 3000,
    "facebook": 63206,
    "instagram": 2200,
    "bluesky": 300,
}

PLATFORMS_REQUIRING_MEDIA: frozenset[str] = frozenset({"instagram"})


# ============================================================================
# State Machines
# ============================================================================


class JobStatus(str, Enum):
    """
    Post job lifecycle.

    pending -> processing -> succeeded | failed
    pending -> cancelled
    processing -> pending (retry with backoff, or lease recovery)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class DeliveryStatus(str, Enum):
    """Webhook delivery lifecycle."""

    PENDING = "pending"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"


class IntegrationStatus(str, Enum):
    """Connection state of a third-party integration."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    SYNCING = "syncing"
    ERROR = "error"


class SyncFrequency(str, Enum):
    """How often an integration is synchronized."""

    REALTIME = "realtime"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MANUAL = "manual"


# None means no periodic loop is started
SYNC_INTERVAL_SECONDS: dict[str, float | None] = {
    SyncFrequency.REALTIME.value: 30.0,
    SyncFrequency.HOURLY.value: 3600.0,
    SyncFrequency.DAILY.value: 86400.0,
    SyncFrequency.WEEKLY.value: 604800.0,
    SyncFrequency.MANUAL.value: None,
}


class WebhookEvent(str, Enum):
    """Event kinds a webhook subscription may subscribe to."""

    POST_CREATED = "post_created"
    POST_UPDATED = "post_updated"
    POST_PUBLISHED = "post_published"
    POST_FAILED = "post_failed"
    ANALYTICS_UPDATED = "analytics_updated"
    ERROR_OCCURRED = "error_occurred"


class LogLevel(str, Enum):
    """Levels accepted by the integration activity log."""

    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    DEBUG = "debug"


class AlertType(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class FallbackStage(str, Enum):
    """Degrade chain stages for image generation, best first."""

    AI_PROVIDER = "ai_provider"
    STOCK_IMAGES = "stock_images"
    PLACEHOLDER = "placeholder"
    TEXT_ONLY = "text_only"
    CACHE = "cache"
    NONE = "none"


# ============================================================================
# Rate Limits (requests per sliding window)
# ============================================================================

OPERATION_LIMITS: dict[str, int] = {
    "api_call": 100,
    "data_sync": 10,
    "webhook": 1000,
    "test_connection": 5,
}

# Publish throttles per platform account, keyed as "publish:<platform>"
PLATFORM_PUBLISH_LIMITS: dict[str, int] = {
    "publish:twitter": 15,
    "publish:linkedin": 10,
    "publish:facebook": 20,
    "publish:instagram": 20,
    "publish:reddit": 60,
    "publish:pinterest": 10,
    "publish:bluesky": 30,
}

# Outbound image calls per provider, keyed as "image:<provider_id>".
# Stock sources (image:unsplash, ...) use the default limit.
IMAGE_PROVIDER_LIMITS: dict[str, int] = {
    "image:gemini_imagen": 60,
    "image:openai_dalle": 50,
    "image:stability_ai": 150,
}

# Image windows are global per provider, not per user
IMAGE_RATE_LIMIT_RESOURCE = "image_generation"

DEFAULT_OPERATION_LIMIT = 50
RATE_LIMIT_WINDOW_SECONDS = 60


def publish_operation(platform: str) -> str:
    """Rate limiter operation name for publishing to a platform."""
    return f"publish:{platform}"


def image_operation(provider_id: str) -> str:
    """Rate limiter operation name for a call to an image provider or stock source."""
    return f"image:{provider_id}"


# ============================================================================
# Webhook Wire Format
# ============================================================================

HEADER_WEBHOOK_EVENT = "X-Webhook-Event"
HEADER_WEBHOOK_SIGNATURE = "X-Webhook-Signature"
HEADER_WEBHOOK_DELIVERY_ID = "X-Webhook-Delivery-ID"
HEADER_WEBHOOK_TIMESTAMP = "X-Webhook-Timestamp"

WEBHOOK_DEFAULT_MAX_RETRIES = 3
WEBHOOK_DEFAULT_INITIAL_DELAY_MS = 1000
WEBHOOK_DEFAULT_BACKOFF_MULTIPLIER = 2.0
WEBHOOK_DEFAULT_MAX_DELAY_MS = 30000

WEBHOOK_STATS_RANGES_SECONDS: dict[str, int] = {
    "1h": 3600,
    "24h": 86400,
    "7d": 604800,
    "30d": 2592000,
}


# ============================================================================
# HTTP Headers
# ============================================================================

HEADER_CORRELATION_ID = "X-Correlation-ID"
HEADER_RETRY_AFTER = "Retry-After"


# ============================================================================
# Provider Health
# ============================================================================

HEALTH_FAILURE_THRESHOLD = 5
