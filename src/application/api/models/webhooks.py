"""
Webhook API Models
==================

Request/response bodies for webhook subscription management. Field names
follow the same camelCase-alias convention as the scheduling models.

The secret is returned exactly once, in the create response, so the
receiver can verify X-Webhook-Signature. Later reads never include it.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.core.config.constants import (
    WEBHOOK_DEFAULT_BACKOFF_MULTIPLIER,
    WEBHOOK_DEFAULT_INITIAL_DELAY_MS,
    WEBHOOK_DEFAULT_MAX_DELAY_MS,
    WEBHOOK_DEFAULT_MAX_RETRIES,
)
from src.delivery.webhook_dispatcher import WebhookRetryConfig
from src.infrastructure.database.models import WebhookSubscription

# ============================================================================
# REQUEST MODELS
# ============================================================================


class RetryPolicyModel(BaseModel):
    """Per-subscription retry policy; maxRetries is the total attempt count."""

    model_config = ConfigDict(populate_by_name=True)

    max_retries: int = Field(default=WEBHOOK_DEFAULT_MAX_RETRIES, alias="maxRetries")
    initial_delay: int = Field(default=WEBHOOK_DEFAULT_INITIAL_DELAY_MS, alias="initialDelay", description="ms")
    backoff_multiplier: float = Field(default=WEBHOOK_DEFAULT_BACKOFF_MULTIPLIER, alias="backoffMultiplier")
    max_delay: int = Field(default=WEBHOOK_DEFAULT_MAX_DELAY_MS, alias="maxDelay", description="ms")

    def to_config(self) -> WebhookRetryConfig:
        return WebhookRetryConfig(
            max_retries=self.max_retries,
            initial_delay_ms=self.initial_delay,
            backoff_multiplier=self.backoff_multiplier,
            max_delay_ms=self.max_delay,
        )


class CreateWebhookRequest(BaseModel):
    """
    Register an outbound notification target.

    URL, timeout and retry policy are validated by the dispatcher; a bad
    value is rejected with 400 before anything is stored.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "integrationId": "3c6a3f44-2a1b-4c1e-9a51-0d0a5b1d7e2f",
                "url": "https://hooks.example.com/publishing",
                "events": ["post_published", "post_failed"],
                "retryPolicy": {"maxRetries": 3, "initialDelay": 1000, "backoffMultiplier": 2, "maxDelay": 30000},
                "timeout": 30000,
            }
        },
    )

    integration_id: str = Field(..., alias="integrationId")
    url: str
    events: list[str]
    secret: str | None = None
    retry_policy: RetryPolicyModel | None = Field(default=None, alias="retryPolicy")
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: int | None = Field(default=None, description="Request timeout in ms (1000-300000)")


# ============================================================================
# RESPONSE MODELS
# ============================================================================


class WebhookResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    integration_id: str = Field(..., alias="integrationId")
    url: str
    events: list[str]
    is_active: bool = Field(..., alias="isActive")
    retry_policy: RetryPolicyModel = Field(..., alias="retryPolicy")
    timeout: int
    created_at: datetime = Field(..., alias="createdAt")
    secret: str | None = None

    @classmethod
    def from_subscription(cls, subscription: WebhookSubscription, include_secret: bool = False) -> "WebhookResponse":
        return cls(
            id=subscription.id,
            integration_id=subscription.integration_id,
            url=subscription.url,
            events=list(subscription.events),
            is_active=subscription.is_active,
            retry_policy=RetryPolicyModel(
                max_retries=subscription.max_retries,
                initial_delay=subscription.initial_delay_ms,
                backoff_multiplier=subscription.backoff_multiplier,
                max_delay=subscription.max_delay_ms,
            ),
            timeout=subscription.timeout_ms,
            created_at=subscription.created_at,
            secret=subscription.secret if include_secret else None,
        )


class WebhookTestResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    error: str | None = None
    delivery_id: str | None = Field(default=None, alias="deliveryId")


class WebhookStatsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_deliveries: int = Field(..., alias="totalDeliveries")
    successful_deliveries: int = Field(..., alias="successfulDeliveries")
    failed_deliveries: int = Field(..., alias="failedDeliveries")
    average_response_time: int = Field(..., alias="averageResponseTime", description="ms")
    success_rate: int = Field(..., alias="successRate", description="Integer percentage")
