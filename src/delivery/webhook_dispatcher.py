"""
Webhook Dispatcher

Delivers signed event payloads to user-configured endpoints and persists
every attempt.

Flow:
    deliver(webhook_id, event, payload)
        1. Create a pending delivery (max_attempts = max(1, max_retries))
        2. Attempt it right away
    emit_event(integration_id, event, payload)
        1. Create a pending delivery per subscribed, active webhook
        2. Leave them for the sweep
    process_pending_deliveries()
        Re-attempts deliveries with status=pending and next_retry_at <= now.
        This is how retries run: nothing blocks waiting for a backoff delay.

One Attempt:
    pending -> delivering          claim (conditional UPDATE, attempts + 1)
    rate limit denial              back to pending, attempt refunded,
                                   next_retry_at = now + retry_after
    2xx                            delivered (response status/headers/time)
    non-2xx / timeout / any error  pending with next_retry_at from the backoff
                                   formula, or failed once attempts == max

Crash Recovery:
    A delivery left in delivering longer than its timeout plus a margin is
    returned to pending (or failed once attempts are exhausted) by
    recover_stale_deliveries, which the supervisor runs periodically.
"""

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import urlparse

import httpx
from sqlalchemy import func, select, update

from src.core.config.constants import (
    HEADER_WEBHOOK_DELIVERY_ID,
    HEADER_WEBHOOK_EVENT,
    HEADER_WEBHOOK_SIGNATURE,
    HEADER_WEBHOOK_TIMESTAMP,
    WEBHOOK_DEFAULT_BACKOFF_MULTIPLIER,
    WEBHOOK_DEFAULT_INITIAL_DELAY_MS,
    WEBHOOK_DEFAULT_MAX_DELAY_MS,
    WEBHOOK_DEFAULT_MAX_RETRIES,
    WEBHOOK_STATS_RANGES_SECONDS,
    DeliveryStatus,
    WebhookEvent,
)
from src.core.exceptions import (
    DeliveryNotFoundError,
    InvalidWebhookConfigError,
    ValidationError,
    WebhookDeliveryFailedError,
    WebhookNotFoundError,
    failure_severity,
)
from src.core.interfaces.clock import Clock, epoch_millis, utcnow
from src.core.logging.logger import get_logger
from src.core.resilience.rate_limiter import SlidingWindowRateLimiter
from src.core.resilience.retry import RetryExecutor, RetryPolicy
from src.delivery.signing import generate_secret, serialize_payload, sign_payload, verify_signature
from src.infrastructure.database.models import WebhookDelivery, WebhookSubscription
from src.infrastructure.database.session import Database

logger = get_logger(__name__)

WEBHOOK_OPERATION = "webhook"
_EVENT_KINDS = frozenset(e.value for e in WebhookEvent)


@dataclass(frozen=True)
class WebhookRetryConfig:
    """Per-subscription retry settings; max_retries counts total attempts."""
    max_retries: int = WEBHOOK_DEFAULT_MAX_RETRIES
    initial_delay_ms: int = WEBHOOK_DEFAULT_INITIAL_DELAY_MS
    backoff_multiplier: float = WEBHOOK_DEFAULT_BACKOFF_MULTIPLIER
    max_delay_ms: int = WEBHOOK_DEFAULT_MAX_DELAY_MS


def validate_webhook_url(url: str) -> str:
    """Accept absolute http(s) URLs with a host."""
    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise InvalidWebhookConfigError.from_exception(e, "Invalid webhook URL", url=url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidWebhookConfigError(
            "Webhook URL must be an absolute http(s) URL",
            details={"url": url},
        )
    return url


def validate_webhook_headers(headers: dict[str, str] | None) -> dict[str, str]:
    """Static headers must be ASCII strings without line breaks."""
    validated: dict[str, str] = {}
    for name, value in (headers or {}).items():
        if not isinstance(name, str) or not isinstance(value, str):
            raise InvalidWebhookConfigError("Webhook headers must be strings", details={"header": str(name)})
        if not (name.isascii() and value.isascii()) or any(c in name + value for c in "\r\n"):
            raise InvalidWebhookConfigError(
                f"Webhook header {name!r} must be ASCII without line breaks",
                details={"header": name},
            )
        if not name.strip():
            raise InvalidWebhookConfigError("Webhook header names must not be blank")
        validated[name] = value
    return validated


class WebhookDispatcher:
    """
    Webhook subscriptions, deliveries and the pending-delivery sweep.

    Usage:
        dispatcher = WebhookDispatcher(database, rate_limiter)
        sub = await dispatcher.create_subscription(integration_id, url, ["post_published"])
        delivery = await dispatcher.deliver(sub.id, "post_published", {"job_id": "..."})
    """

    def __init__(
        self,
        database: Database,
        rate_limiter: SlidingWindowRateLimiter,
        http_client: httpx.AsyncClient | None = None,
        retry_executor: RetryExecutor | None = None,
        health_tracker: Any | None = None,
        metrics: Any | None = None,
        clock: Clock = utcnow,
        default_timeout_ms: int = 30000,
        min_timeout_ms: int = 1000,
        max_timeout_ms: int = 300000,
        sweep_batch_size: int = 50,
        lease_margin_seconds: float = 60.0,
    ):
        self._db = database
        self._limiter = rate_limiter
        self._client = http_client or httpx.AsyncClient(follow_redirects=False)
        self._owns_client = http_client is None
        self._retry = retry_executor or RetryExecutor()
        self._health = health_tracker
        self._metrics = metrics
        self._clock = clock
        self._default_timeout_ms = default_timeout_ms
        self._min_timeout_ms = min_timeout_ms
        self._max_timeout_ms = max_timeout_ms
        self._sweep_batch_size = sweep_batch_size
        self._lease_margin = timedelta(seconds=lease_margin_seconds)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def _validate_events(self, events: list[str]) -> list[str]:
        if not events:
            raise InvalidWebhookConfigError("At least one event is required")
        unknown = sorted(set(events) - _EVENT_KINDS)
        if unknown:
            raise InvalidWebhookConfigError(
                f"Unknown webhook events: {', '.join(unknown)}",
                details={"events": unknown, "supported": sorted(_EVENT_KINDS)},
            )
        return list(dict.fromkeys(events))

    def _validate_timeout(self, timeout_ms: int) -> int:
        if not self._min_timeout_ms <= timeout_ms <= self._max_timeout_ms:
            raise InvalidWebhookConfigError(
                f"Timeout must be between {self._min_timeout_ms} and {self._max_timeout_ms} ms",
                details={"timeout_ms": timeout_ms},
            )
        return timeout_ms

    @staticmethod
    def _validate_retry(retry: WebhookRetryConfig) -> WebhookRetryConfig:
        if retry.max_retries < 0:
            raise InvalidWebhookConfigError("max_retries must be >= 0", details={"max_retries": retry.max_retries})
        if retry.initial_delay_ms < 0 or retry.max_delay_ms < 0:
            raise InvalidWebhookConfigError("Retry delays must be >= 0")
        if retry.backoff_multiplier < 1:
            raise InvalidWebhookConfigError("backoff_multiplier must be >= 1")
        return retry

    async def create_subscription(
        self,
        integration_id: str,
        url: str,
        events: list[str],
        secret: str | None = None,
        retry_policy: WebhookRetryConfig | None = None,
        headers: dict[str, str] | None = None,
        timeout_ms: int | None = None,
    ) -> WebhookSubscription:
        """
        Register a webhook.

        Raises:
            InvalidWebhookConfigError: Bad URL, events, headers, timeout or retry policy
        """
        validate_webhook_url(url)
        headers = validate_webhook_headers(headers)
        events = self._validate_events(events)
        retry = self._validate_retry(retry_policy or WebhookRetryConfig())
        timeout_ms = self._validate_timeout(timeout_ms or self._default_timeout_ms)

        subscription = WebhookSubscription(
            integration_id=integration_id,
            url=url,
            secret=secret or generate_secret(),
            events=events,
            is_active=True,
            max_retries=retry.max_retries,
            initial_delay_ms=retry.initial_delay_ms,
            backoff_multiplier=retry.backoff_multiplier,
            max_delay_ms=retry.max_delay_ms,
            headers=headers,
            timeout_ms=timeout_ms,
        )
        async with self._db.session() as session:
            session.add(subscription)

        logger.info("Webhook created", webhook_id=subscription.id, integration_id=integration_id, events=events)
        return subscription

    async def update_subscription(self, webhook_id: str, **changes: Any) -> WebhookSubscription:
        """
        Update fields of a webhook.

        Accepted keys: url, events, secret, is_active, headers, timeout_ms,
        retry_policy (WebhookRetryConfig).
        """
        async with self._db.session() as session:
            subscription = await session.get(WebhookSubscription, webhook_id)
            if subscription is None:
                raise WebhookNotFoundError(f"Webhook not found: {webhook_id}", details={"webhook_id": webhook_id})

            for key, value in changes.items():
                if value is None:
                    continue
                if key == "url":
                    subscription.url = validate_webhook_url(value)
                elif key == "events":
                    subscription.events = self._validate_events(value)
                elif key == "timeout_ms":
                    subscription.timeout_ms = self._validate_timeout(value)
                elif key == "retry_policy":
                    retry = self._validate_retry(value)
                    subscription.max_retries = retry.max_retries
                    subscription.initial_delay_ms = retry.initial_delay_ms
                    subscription.backoff_multiplier = retry.backoff_multiplier
                    subscription.max_delay_ms = retry.max_delay_ms
                elif key == "headers":
                    subscription.headers = validate_webhook_headers(value)
                elif key in ("secret", "is_active"):
                    setattr(subscription, key, value)
                else:
                    raise InvalidWebhookConfigError(f"Unknown webhook field: {key}")
            subscription.updated_at = self._clock()

        logger.info("Webhook updated", webhook_id=webhook_id, fields=sorted(changes))
        return subscription

    async def delete_subscription(self, webhook_id: str) -> None:
        """Deactivate a webhook; its delivery history is kept."""
        await self.update_subscription(webhook_id, is_active=False)
        logger.info("Webhook deleted", webhook_id=webhook_id)

    async def get_subscription(self, webhook_id: str, active_only: bool = False) -> WebhookSubscription:
        async with self._db.session() as session:
            subscription = await session.get(WebhookSubscription, webhook_id)
        if subscription is None or (active_only and not subscription.is_active):
            raise WebhookNotFoundError(f"Webhook not found: {webhook_id}", details={"webhook_id": webhook_id})
        return subscription

    async def list_subscriptions(self, integration_id: str, include_inactive: bool = False) -> list[WebhookSubscription]:
        query = select(WebhookSubscription).where(WebhookSubscription.integration_id == integration_id)
        if not include_inactive:
            query = query.where(WebhookSubscription.is_active.is_(True))
        async with self._db.session() as session:
            return list((await session.execute(query.order_by(WebhookSubscription.created_at))).scalars())

    # =========================================================================
    # Deliveries
    # =========================================================================

    async def emit_event(self, integration_id: str, event: str, payload: dict[str, Any]) -> list[str]:
        """
        Queue a delivery for every active webhook of the integration subscribed to event.

        Returns:
            Ids of the created deliveries
        """
        if event not in _EVENT_KINDS:
            raise ValidationError(f"Unknown webhook event: {event}", details={"event": event})

        now = self._clock()
        delivery_ids: list[str] = []
        async with self._db.session() as session:
            subscriptions = (
                await session.execute(
                    select(WebhookSubscription).where(
                        WebhookSubscription.integration_id == integration_id,
                        WebhookSubscription.is_active.is_(True),
                    )
                )
            ).scalars()
            for subscription in subscriptions:
                if event not in (subscription.events or []):
                    continue
                delivery = self._new_delivery(subscription, event, payload, now)
                session.add(delivery)
                delivery_ids.append(delivery.id)

        if delivery_ids:
            logger.info(
                "Webhook event queued",
                integration_id=integration_id,
                webhook_event=event,
                deliveries=len(delivery_ids),
            )
        return delivery_ids

    def _new_delivery(self, subscription: WebhookSubscription, event: str, payload: dict[str, Any], now: datetime) -> WebhookDelivery:
        return WebhookDelivery(
            id=str(uuid.uuid4()),
            webhook_id=subscription.id,
            event=event,
            payload=payload,
            status=DeliveryStatus.PENDING.value,
            attempts=0,
            max_attempts=max(1, subscription.max_retries),
            next_retry_at=now,
            created_at=now,
            updated_at=now,
        )

    async def deliver(self, webhook_id: str, event: str, payload: dict[str, Any]) -> WebhookDelivery:
        """
        Create a delivery and attempt it immediately.

        Raises:
            WebhookNotFoundError: Unknown or inactive webhook
        """
        subscription = await self.get_subscription(webhook_id, active_only=True)
        now = self._clock()
        delivery = self._new_delivery(subscription, event, payload, now)
        async with self._db.session() as session:
            session.add(delivery)

        return await self._attempt(subscription, delivery.id)

    async def _load_delivery(self, delivery_id: str) -> WebhookDelivery:
        async with self._db.session() as session:
            delivery = await session.get(WebhookDelivery, delivery_id)
        if delivery is None:
            raise DeliveryNotFoundError(f"Delivery not found: {delivery_id}", details={"delivery_id": delivery_id})
        return delivery

    async def _claim(self, delivery_id: str) -> bool:
        now = self._clock()
        async with self._db.session() as session:
            result = await session.execute(
                update(WebhookDelivery)
                .where(
                    WebhookDelivery.id == delivery_id,
                    WebhookDelivery.status == DeliveryStatus.PENDING.value,
                    WebhookDelivery.attempts < WebhookDelivery.max_attempts,
                )
                .values(
                    status=DeliveryStatus.DELIVERING.value,
                    attempts=WebhookDelivery.attempts + 1,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    async def _finish(self, delivery_id: str, **values: Any) -> WebhookDelivery:
        values["updated_at"] = self._clock()
        async with self._db.session() as session:
            await session.execute(
                update(WebhookDelivery)
                .where(
                    WebhookDelivery.id == delivery_id,
                    WebhookDelivery.status == DeliveryStatus.DELIVERING.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        return await self._load_delivery(delivery_id)

    async def _attempt(self, subscription: WebhookSubscription, delivery_id: str) -> WebhookDelivery:
        """Run one POST attempt for a pending delivery and persist the outcome."""
        if not await self._claim(delivery_id):
            logger.debug("Delivery not claimable, skipping", delivery_id=delivery_id)
            return await self._load_delivery(delivery_id)

        delivery = await self._load_delivery(delivery_id)

        decision = await self._limiter.check_and_consume(subscription.id, WEBHOOK_OPERATION)
        if not decision.allowed:
            logger.info(
                "Webhook delivery deferred by rate limit",
                delivery_id=delivery_id,
                webhook_id=subscription.id,
                retry_after_seconds=decision.retry_after_seconds,
            )
            return await self._finish(
                delivery_id,
                status=DeliveryStatus.PENDING.value,
                attempts=WebhookDelivery.attempts - 1,
                next_retry_at=self._clock() + timedelta(seconds=decision.retry_after_seconds),
            )

        started = time.perf_counter()
        try:
            response = await self._send(subscription, delivery)
        except Exception as e:
            # The row is already delivering; every error must settle it
            error = WebhookDeliveryFailedError.from_exception(
                e, f"{type(e).__name__}: {e}" if str(e) else type(e).__name__, webhook_id=subscription.id
            )
            return await self._record_failure(subscription, delivery, error, response=None, elapsed_ms=None)

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        if response.is_success:
            return await self._record_success(subscription, delivery, response, elapsed_ms)

        error = WebhookDeliveryFailedError(
            f"HTTP {response.status_code}: {response.reason_phrase}",
            status_code=response.status_code,
            details={"webhook_id": subscription.id},
        )
        return await self._record_failure(subscription, delivery, error, response=response, elapsed_ms=elapsed_ms)

    async def _send(self, subscription: WebhookSubscription, delivery: WebhookDelivery) -> httpx.Response:
        body = serialize_payload(delivery.payload)
        headers = {
            **(subscription.headers or {}),
            "Content-Type": "application/json",
            HEADER_WEBHOOK_EVENT: delivery.event,
            HEADER_WEBHOOK_SIGNATURE: sign_payload(subscription.secret, body),
            HEADER_WEBHOOK_DELIVERY_ID: delivery.id,
            HEADER_WEBHOOK_TIMESTAMP: str(epoch_millis(delivery.created_at)),
        }
        return await self._client.post(
            subscription.url,
            content=body,
            headers=headers,
            timeout=subscription.timeout_ms / 1000.0,
        )

    async def _record_success(
        self, subscription: WebhookSubscription, delivery: WebhookDelivery, response: httpx.Response, elapsed_ms: int
    ) -> WebhookDelivery:
        now = self._clock()
        result = await self._finish(
            delivery.id,
            status=DeliveryStatus.DELIVERED.value,
            response_status=response.status_code,
            response_headers=dict(response.headers),
            response_time_ms=elapsed_ms,
            delivered_at=now,
            next_retry_at=None,
            error=None,
        )
        logger.info(
            "Webhook delivered",
            delivery_id=delivery.id,
            webhook_id=subscription.id,
            webhook_event=delivery.event,
            status_code=response.status_code,
            attempt=delivery.attempts,
            response_time_ms=elapsed_ms,
        )
        if self._health is not None:
            self._health.report_outcome(f"webhook:{subscription.id}", True)
        if self._metrics is not None:
            self._metrics.record_webhook_delivery(DeliveryStatus.DELIVERED.value)
        return result

    async def _record_failure(
        self,
        subscription: WebhookSubscription,
        delivery: WebhookDelivery,
        error: WebhookDeliveryFailedError,
        response: httpx.Response | None,
        elapsed_ms: int | None,
    ) -> WebhookDelivery:
        now = self._clock()
        policy = RetryPolicy.from_webhook(
            max_retries=delivery.max_attempts,
            initial_delay_ms=subscription.initial_delay_ms,
            backoff_multiplier=subscription.backoff_multiplier,
            max_delay_ms=subscription.max_delay_ms,
        )
        next_retry = self._retry.next_attempt_at(policy, delivery.attempts, now)
        status = DeliveryStatus.PENDING if next_retry is not None else DeliveryStatus.FAILED

        result = await self._finish(
            delivery.id,
            status=status.value,
            response_status=response.status_code if response is not None else None,
            response_headers=dict(response.headers) if response is not None else None,
            response_time_ms=elapsed_ms,
            next_retry_at=next_retry,
            error=error.message,
        )

        log = getattr(logger, failure_severity(error))
        log(
            "Webhook delivery failed" if next_retry is None else "Webhook delivery failed, retry scheduled",
            delivery_id=delivery.id,
            webhook_id=subscription.id,
            webhook_event=delivery.event,
            attempt=delivery.attempts,
            max_attempts=delivery.max_attempts,
            next_retry_at=next_retry.isoformat() if next_retry else None,
            error=error.message,
        )
        if self._health is not None:
            self._health.report_outcome(f"webhook:{subscription.id}", False, error.message)
        if self._metrics is not None:
            self._metrics.record_webhook_delivery(DeliveryStatus.FAILED.value)
        return result

    async def process_pending_deliveries(self) -> dict[str, int]:
        """
        One sweep over due pending deliveries.

        A delivery whose webhook was deactivated is cancelled instead of sent.
        """
        now = self._clock()
        async with self._db.session() as session:
            delivery_ids = list(
                (
                    await session.execute(
                        select(WebhookDelivery.id)
                        .where(
                            WebhookDelivery.status == DeliveryStatus.PENDING.value,
                            WebhookDelivery.next_retry_at <= now,
                        )
                        .order_by(WebhookDelivery.next_retry_at.asc())
                        .limit(self._sweep_batch_size)
                    )
                ).scalars()
            )

        counts = {"selected": len(delivery_ids), "delivered": 0, "retrying": 0, "failed": 0, "cancelled": 0, "errors": 0}
        for delivery_id in delivery_ids:
            try:
                delivery = await self._load_delivery(delivery_id)
                async with self._db.session() as session:
                    subscription = await session.get(WebhookSubscription, delivery.webhook_id)
                if subscription is None or not subscription.is_active:
                    if await self.cancel_delivery(delivery_id):
                        counts["cancelled"] += 1
                    continue

                result = await self._attempt(subscription, delivery_id)
                if result.status == DeliveryStatus.DELIVERED.value:
                    counts["delivered"] += 1
                elif result.status == DeliveryStatus.FAILED.value:
                    counts["failed"] += 1
                else:
                    counts["retrying"] += 1
            except Exception as e:
                counts["errors"] += 1
                logger.error("Webhook sweep item failed", delivery_id=delivery_id, error=str(e), exc_info=True)

        if delivery_ids:
            logger.info("Webhook sweep complete", **counts)
        return counts

    async def recover_stale_deliveries(self) -> dict[str, int]:
        """
        Settle deliveries stuck in delivering.

        A delivery is stale once its claim is older than the webhook timeout
        plus the lease margin. The interrupted attempt counts: the delivery
        goes back to pending, or to failed when that was its last attempt.
        """
        now = self._clock()
        async with self._db.session() as session:
            rows = (
                await session.execute(
                    select(
                        WebhookDelivery.id,
                        WebhookDelivery.attempts,
                        WebhookDelivery.max_attempts,
                        WebhookDelivery.updated_at,
                        WebhookSubscription.timeout_ms,
                    )
                    .outerjoin(WebhookSubscription, WebhookSubscription.id == WebhookDelivery.webhook_id)
                    .where(WebhookDelivery.status == DeliveryStatus.DELIVERING.value)
                )
            ).all()

        counts = {"requeued": 0, "failed": 0}
        for row in rows:
            timeout = timedelta(milliseconds=row.timeout_ms or self._default_timeout_ms)
            if row.updated_at + timeout + self._lease_margin > now:
                continue

            final = row.attempts >= row.max_attempts
            values = (
                {"status": DeliveryStatus.FAILED.value, "next_retry_at": None,
                 "error": "Delivery lease expired on final attempt"}
                if final
                else {"status": DeliveryStatus.PENDING.value, "next_retry_at": now,
                      "error": "Delivery lease expired"}
            )
            async with self._db.session() as session:
                result = await session.execute(
                    update(WebhookDelivery)
                    .where(WebhookDelivery.id == row.id, WebhookDelivery.status == DeliveryStatus.DELIVERING.value)
                    .values(updated_at=now, **values)
                    .execution_options(synchronize_session=False)
                )
            if result.rowcount == 1:
                counts["failed" if final else "requeued"] += 1
                if final and self._metrics is not None:
                    self._metrics.record_webhook_delivery(DeliveryStatus.FAILED.value)

        if counts["requeued"] or counts["failed"]:
            logger.warning("Recovered stale webhook deliveries", **counts)
        return counts

    async def cancel_delivery(self, delivery_id: str) -> bool:
        """Cancel a pending delivery. False once it is being delivered or finished."""
        now = self._clock()
        async with self._db.session() as session:
            result = await session.execute(
                update(WebhookDelivery)
                .where(WebhookDelivery.id == delivery_id, WebhookDelivery.status == DeliveryStatus.PENDING.value)
                .values(status=DeliveryStatus.CANCELLED.value, next_retry_at=None, updated_at=now)
                .execution_options(synchronize_session=False)
            )
        if result.rowcount == 1:
            logger.info("Webhook delivery cancelled", delivery_id=delivery_id)
            return True
        await self._load_delivery(delivery_id)
        return False

    async def get_delivery(self, delivery_id: str) -> WebhookDelivery:
        return await self._load_delivery(delivery_id)

    async def list_deliveries(self, webhook_id: str, limit: int = 50) -> list[WebhookDelivery]:
        async with self._db.session() as session:
            return list(
                (
                    await session.execute(
                        select(WebhookDelivery)
                        .where(WebhookDelivery.webhook_id == webhook_id)
                        .order_by(WebhookDelivery.created_at.desc())
                        .limit(limit)
                    )
                ).scalars()
            )

    async def pending_delivery_count(self) -> int:
        async with self._db.session() as session:
            return (
                await session.execute(
                    select(func.count()).select_from(WebhookDelivery).where(
                        WebhookDelivery.status == DeliveryStatus.PENDING.value
                    )
                )
            ).scalar_one()

    # =========================================================================
    # Tools
    # =========================================================================

    def verify_signature(self, secret: str, payload: bytes | str | Any, signature: str) -> bool:
        return verify_signature(secret, payload, signature)

    async def test_webhook(self, webhook_id: str) -> dict[str, Any]:
        """Send a post_created test payload and report whether it was delivered."""
        try:
            payload = {
                "event": WebhookEvent.POST_CREATED.value,
                "timestamp": self._clock().isoformat(),
                "message": "This is a test webhook delivery",
            }
            delivery = await self.deliver(webhook_id, WebhookEvent.POST_CREATED.value, payload)
            return {
                "success": delivery.status == DeliveryStatus.DELIVERED.value,
                "error": delivery.error,
                "delivery_id": delivery.id,
            }
        except WebhookNotFoundError:
            raise
        except Exception as e:
            logger.warning("Webhook test failed", webhook_id=webhook_id, error=str(e))
            return {"success": False, "error": str(e), "delivery_id": None}

    async def get_webhook_stats(self, webhook_id: str, time_range: str = "24h") -> dict[str, Any]:
        """
        Delivery statistics for a webhook over 1h, 24h, 7d or 30d.

        success_rate is an integer percentage; average_response_time is in ms
        over delivered attempts.
        """
        seconds = WEBHOOK_STATS_RANGES_SECONDS.get(time_range)
        if seconds is None:
            raise ValidationError(
                f"Unsupported time range: {time_range}",
                details={"supported": sorted(WEBHOOK_STATS_RANGES_SECONDS)},
            )
        since = self._clock() - timedelta(seconds=seconds)

        async with self._db.session() as session:
            rows = (
                await session.execute(
                    select(WebhookDelivery.status, WebhookDelivery.response_time_ms).where(
                        WebhookDelivery.webhook_id == webhook_id,
                        WebhookDelivery.created_at >= since,
                    )
                )
            ).all()

        total = len(rows)
        delivered = [r for r in rows if r.status == DeliveryStatus.DELIVERED.value]
        failed = sum(1 for r in rows if r.status == DeliveryStatus.FAILED.value)
        times = [r.response_time_ms for r in delivered if r.response_time_ms is not None]

        return {
            "total_deliveries": total,
            "successful_deliveries": len(delivered),
            "failed_deliveries": failed,
            "average_response_time": round(sum(times) / len(times)) if times else 0,
            "success_rate": round(len(delivered) / total * 100) if total else 0,
        }
