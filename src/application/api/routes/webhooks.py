"""
Webhook Routes
==============

Subscription management for outbound webhooks.

    POST   /webhooks                 register (returns the signing secret once)
    GET    /webhooks?integrationId=  list an integration's active webhooks
    DELETE /webhooks/{id}            deactivate (deliveries are kept for audit)
    POST   /webhooks/{id}/test       send a post_created test delivery
    GET    /webhooks/{id}/stats      delivery statistics (range=1h|24h|7d|30d)
"""

from fastapi import APIRouter, Query, Response

from src.application.api.dependencies import DispatcherDep
from src.application.api.models.webhooks import (
    CreateWebhookRequest,
    WebhookResponse,
    WebhookStatsResponse,
    WebhookTestResponse,
)
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("", response_model=WebhookResponse, status_code=201)
async def create_webhook(body: CreateWebhookRequest, dispatcher: DispatcherDep):
    """
    Register a webhook.

    HTTP Status Codes:
        201: Created; the response carries the secret
        400: Invalid URL, event kind, timeout or retry policy
    """
    subscription = await dispatcher.create_subscription(
        integration_id=body.integration_id,
        url=body.url,
        events=body.events,
        secret=body.secret,
        retry_policy=body.retry_policy.to_config() if body.retry_policy else None,
        headers=body.headers,
        timeout_ms=body.timeout,
    )
    return WebhookResponse.from_subscription(subscription, include_secret=True)


@router.get("", response_model=list[WebhookResponse])
async def list_webhooks(dispatcher: DispatcherDep, integration_id: str = Query(..., alias="integrationId")):
    subscriptions = await dispatcher.list_subscriptions(integration_id)
    return [WebhookResponse.from_subscription(s) for s in subscriptions]


@router.delete("/{webhook_id}", status_code=204)
async def delete_webhook(webhook_id: str, dispatcher: DispatcherDep):
    """Deactivate a webhook; pending deliveries are cancelled by the next sweep."""
    await dispatcher.delete_subscription(webhook_id)
    return Response(status_code=204)


@router.post("/{webhook_id}/test", response_model=WebhookTestResponse)
async def test_webhook(webhook_id: str, dispatcher: DispatcherDep):
    """
    Deliver a test payload right away.

    A receiver failure is reported in the body (success=false), not as an
    HTTP error; only an unknown webhook id is a 404.
    """
    result = await dispatcher.test_webhook(webhook_id)
    return WebhookTestResponse(**result)


@router.get("/{webhook_id}/stats", response_model=WebhookStatsResponse)
async def webhook_stats(
    webhook_id: str,
    dispatcher: DispatcherDep,
    time_range: str = Query(default="24h", alias="range"),
):
    await dispatcher.get_subscription(webhook_id)
    stats = await dispatcher.get_webhook_stats(webhook_id, time_range)
    return WebhookStatsResponse(**stats)
