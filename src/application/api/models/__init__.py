"""
API Models Package
==================

Pydantic models for API request/response validation.

ORGANIZATION:
-------------
- scheduling.py: scheduled-posts request/response models
- webhooks.py: webhook subscription, test and stats models
"""

from src.application.api.models.scheduling import (
    CancelJobResponse,
    DispatchResponse,
    JobResponse,
    ScheduleOptions,
    ScheduleRequest,
    ScheduleResponse,
)
from src.application.api.models.webhooks import (
    CreateWebhookRequest,
    RetryPolicyModel,
    WebhookResponse,
    WebhookStatsResponse,
    WebhookTestResponse,
)

__all__ = [
    "ScheduleRequest",
    "ScheduleOptions",
    "ScheduleResponse",
    "DispatchResponse",
    "JobResponse",
    "CancelJobResponse",
    "CreateWebhookRequest",
    "RetryPolicyModel",
    "WebhookResponse",
    "WebhookTestResponse",
    "WebhookStatsResponse",
]
