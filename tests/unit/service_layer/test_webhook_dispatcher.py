"""
Unit Tests for the Webhook Dispatcher

Deliveries go through httpx.MockTransport so the exact request (body,
signature headers) can be inspected, and retries are driven by advancing
the frozen clock and running the pending-delivery sweep.
"""

from datetime import timedelta

import httpx
import orjson
import pytest
import pytest_asyncio
from sqlalchemy import update

from src.core.config.constants import DeliveryStatus
from src.core.exceptions import InvalidWebhookConfigError, ValidationError, WebhookNotFoundError
from src.core.interfaces.clock import epoch_millis
from src.delivery.signing import sign_payload, verify_signature
from src.delivery.webhook_dispatcher import WebhookDispatcher, WebhookRetryConfig
from src.infrastructure.database.models import WebhookDelivery
from tests.test_fixtures.engine_factory import mock_http_client


class Endpoint:
    """Records every request and answers with the current status."""

    def __init__(self, status: int = 200):
        self.status = status
        self.requests: list[httpx.Request] = []
        self.error: Exception | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status, json={"received": True})


@pytest.fixture
def endpoint():
    return Endpoint()


@pytest_asyncio.fixture
async def dispatcher(database, rate_limiter, health_tracker, endpoint, clock):
    client = mock_http_client(endpoint)
    yield WebhookDispatcher(database, rate_limiter, http_client=client, health_tracker=health_tracker, clock=clock)
    await client.aclose()


@pytest.mark.unit
class TestSubscriptions:
    """Test webhook registration and validation."""

    @pytest.mark.asyncio
    async def test_create_generates_secret_and_defaults(self, dispatcher):
        sub = await dispatcher.create_subscription("int-1", "https://hooks.example.com/in", ["post_published"])

        assert len(sub.secret) == 64
        assert sub.is_active is True
        assert sub.max_retries == 3
        assert sub.timeout_ms == 30000
        assert sub.events == ["post_published"]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"url": "ftp://hooks.example.com/in"},
            {"url": "not a url"},
            {"events": []},
            {"events": ["post_deleted"]},
            {"timeout_ms": 500},
            {"timeout_ms": 400000},
            {"retry_policy": WebhookRetryConfig(max_retries=-1)},
            {"retry_policy": WebhookRetryConfig(backoff_multiplier=0.5)},
            {"headers": {"X-Team": "Équipe"}},
            {"headers": {"X-Team": "growth\r\nX-Injected: 1"}},
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid_configuration_rejected(self, dispatcher, kwargs):
        params = {"integration_id": "int-1", "url": "https://hooks.example.com/in", "events": ["post_published"]}
        params.update(kwargs)

        with pytest.raises(InvalidWebhookConfigError):
            await dispatcher.create_subscription(**params)

    @pytest.mark.asyncio
    async def test_update_and_delete(self, dispatcher):
        sub = await dispatcher.create_subscription("int-1", "https://hooks.example.com/in", ["post_published"])

        updated = await dispatcher.update_subscription(sub.id, events=["post_failed", "post_published"], timeout_ms=5000)
        assert updated.events == ["post_failed", "post_published"]
        assert updated.timeout_ms == 5000

        await dispatcher.delete_subscription(sub.id)

        assert await dispatcher.list_subscriptions("int-1") == []
        assert len(await dispatcher.list_subscriptions("int-1", include_inactive=True)) == 1
        with pytest.raises(WebhookNotFoundError):
            await dispatcher.get_subscription(sub.id, active_only=True)

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_field(self, dispatcher):
        sub = await dispatcher.create_subscription("int-1", "https://hooks.example.com/in", ["post_published"])

        with pytest.raises(InvalidWebhookConfigError):
            await dispatcher.update_subscription(sub.id, colour="blue")

    @pytest.mark.asyncio
    async def test_update_rejects_non_ascii_headers(self, dispatcher):
        sub = await dispatcher.create_subscription(
            "int-1", "https://hooks.example.com/in", ["post_published"], headers={"X-Team": "growth"}
        )

        with pytest.raises(InvalidWebhookConfigError):
            await dispatcher.update_subscription(sub.id, headers={"X-Team": "Équipe"})

        assert (await dispatcher.get_subscription(sub.id)).headers == {"X-Team": "growth"}

    @pytest.mark.asyncio
    async def test_unknown_webhook(self, dispatcher):
        with pytest.raises(WebhookNotFoundError):
            await dispatcher.update_subscription("missing", is_active=False)
        with pytest.raises(WebhookNotFoundError):
            await dispatcher.deliver("missing", "post_published", {})


@pytest.mark.unit
class TestDelivery:
    """Test signed delivery and failure handling."""

    @pytest.mark.asyncio
    async def test_successful_delivery_is_signed(self, dispatcher, endpoint, clock):
        sub = await dispatcher.create_subscription(
            "int-1", "https://hooks.example.com/in", ["post_published"],
            secret="s3cret", headers={"X-Team": "growth", "Content-Type": "text/plain"},
        )
        payload = {"job_id": "j-1", "platform": "twitter"}

        delivery = await dispatcher.deliver(sub.id, "post_published", payload)

        request = endpoint.requests[0]
        signature = request.headers["X-Webhook-Signature"]
        assert delivery.status == DeliveryStatus.DELIVERED.value
        assert delivery.attempts == 1
        assert delivery.response_status == 200
        assert delivery.delivered_at == clock.now
        assert str(request.url) == "https://hooks.example.com/in"
        assert orjson.loads(request.content) == payload
        assert signature == sign_payload("s3cret", request.content)
        assert verify_signature("s3cret", request.content, signature) is True
        assert request.headers["X-Webhook-Event"] == "post_published"
        assert request.headers["X-Webhook-Delivery-ID"] == delivery.id
        assert request.headers["X-Webhook-Timestamp"] == str(epoch_millis(clock.now))
        assert request.headers["X-Team"] == "growth"
        assert request.headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_failing_endpoint_exhausts_attempts(self, dispatcher, endpoint, health_tracker, clock):
        """Test a 500 endpoint with max_retries=3: two retries, then failed."""
        endpoint.status = 500
        sub = await dispatcher.create_subscription("int-1", "https://hooks.example.com/in", ["post_failed"])

        delivery = await dispatcher.deliver(sub.id, "post_failed", {"job_id": "j-1"})
        assert delivery.status == DeliveryStatus.PENDING.value
        assert delivery.attempts == 1
        assert delivery.response_status == 500
        assert delivery.error == "HTTP 500: Internal Server Error"
        assert delivery.next_retry_at == clock.now + timedelta(seconds=1)

        assert (await dispatcher.process_pending_deliveries())["selected"] == 0

        clock.advance(seconds=1)
        counts = await dispatcher.process_pending_deliveries()
        delivery = await dispatcher.get_delivery(delivery.id)
        assert counts["retrying"] == 1
        assert delivery.attempts == 2
        assert (delivery.next_retry_at - clock.now).total_seconds() == 2

        clock.advance(seconds=2)
        counts = await dispatcher.process_pending_deliveries()
        delivery = await dispatcher.get_delivery(delivery.id)
        assert counts["failed"] == 1
        assert delivery.status == DeliveryStatus.FAILED.value
        assert delivery.attempts == 3
        assert delivery.next_retry_at is None

        clock.advance(minutes=10)
        assert (await dispatcher.process_pending_deliveries())["selected"] == 0
        assert len(endpoint.requests) == 3
        assert health_tracker.get(f"webhook:{sub.id}").consecutive_errors == 3

    @pytest.mark.asyncio
    async def test_single_attempt_policy(self, dispatcher, endpoint):
        endpoint.status = 404
        sub = await dispatcher.create_subscription(
            "int-1", "https://hooks.example.com/in", ["post_failed"],
            retry_policy=WebhookRetryConfig(max_retries=0),
        )

        delivery = await dispatcher.deliver(sub.id, "post_failed", {})

        assert delivery.max_attempts == 1
        assert delivery.status == DeliveryStatus.FAILED.value

    @pytest.mark.asyncio
    async def test_network_error_is_a_failed_attempt(self, dispatcher, endpoint):
        endpoint.error = httpx.ConnectError("connection refused")
        sub = await dispatcher.create_subscription("int-1", "https://hooks.example.com/in", ["post_failed"])

        delivery = await dispatcher.deliver(sub.id, "post_failed", {})

        assert delivery.status == DeliveryStatus.PENDING.value
        assert delivery.response_status is None
        assert delivery.error == "ConnectError: connection refused"

    @pytest.mark.parametrize(
        "error,message",
        [
            (RuntimeError("encoder exploded"), "RuntimeError: encoder exploded"),
            (httpx.InvalidURL("Invalid port: '99999'"), "InvalidURL: Invalid port: '99999'"),
        ],
    )
    @pytest.mark.asyncio
    async def test_unexpected_error_is_a_failed_attempt(self, dispatcher, endpoint, clock, error, message):
        """Test that a delivery hit by a non-HTTP error is retried, not left delivering."""
        endpoint.error = error
        await dispatcher.create_subscription("int-1", "https://hooks.example.com/in", ["post_published"])
        delivery_ids = await dispatcher.emit_event("int-1", "post_published", {"job_id": "j-1"})

        counts = await dispatcher.process_pending_deliveries()
        delivery = await dispatcher.get_delivery(delivery_ids[0])

        assert counts["errors"] == 0
        assert counts["retrying"] == 1
        assert delivery.status == DeliveryStatus.PENDING.value
        assert delivery.attempts == 1
        assert delivery.error == message
        assert delivery.next_retry_at == clock.now + timedelta(seconds=1)

        endpoint.error = None
        clock.advance(seconds=1)
        counts = await dispatcher.process_pending_deliveries()

        assert counts["delivered"] == 1
        assert (await dispatcher.get_delivery(delivery_ids[0])).attempts == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_on_last_attempt_is_terminal(self, dispatcher, endpoint):
        endpoint.error = RuntimeError("encoder exploded")
        sub = await dispatcher.create_subscription(
            "int-1", "https://hooks.example.com/in", ["post_failed"],
            retry_policy=WebhookRetryConfig(max_retries=1),
        )

        delivery = await dispatcher.deliver(sub.id, "post_failed", {})

        assert delivery.status == DeliveryStatus.FAILED.value
        assert delivery.next_retry_at is None

    @pytest.mark.asyncio
    async def test_rate_limited_delivery_is_deferred(self, dispatcher, rate_limiter, endpoint, clock):
        rate_limiter.set_limit("webhook", 1)
        sub = await dispatcher.create_subscription("int-1", "https://hooks.example.com/in", ["post_published"])

        first = await dispatcher.deliver(sub.id, "post_published", {"n": 1})
        second = await dispatcher.deliver(sub.id, "post_published", {"n": 2})

        assert first.status == DeliveryStatus.DELIVERED.value
        assert second.status == DeliveryStatus.PENDING.value
        assert second.attempts == 0
        assert (second.next_retry_at - clock.now).total_seconds() == 60
        assert len(endpoint.requests) == 1


@pytest.mark.unit
class TestEventFanOut:
    """Test emit_event and the pending-delivery sweep."""

    @pytest.mark.asyncio
    async def test_only_subscribed_active_webhooks_receive_event(self, dispatcher, endpoint):
        wanted = await dispatcher.create_subscription("int-1", "https://a.example.com/in", ["post_published"])
        await dispatcher.create_subscription("int-1", "https://b.example.com/in", ["post_failed"])
        inactive = await dispatcher.create_subscription("int-1", "https://c.example.com/in", ["post_published"])
        await dispatcher.create_subscription("int-2", "https://d.example.com/in", ["post_published"])
        await dispatcher.delete_subscription(inactive.id)

        delivery_ids = await dispatcher.emit_event("int-1", "post_published", {"job_id": "j-1"})

        assert len(delivery_ids) == 1
        assert endpoint.requests == []
        assert await dispatcher.pending_delivery_count() == 1

        counts = await dispatcher.process_pending_deliveries()

        assert counts["delivered"] == 1
        assert [str(r.url) for r in endpoint.requests] == ["https://a.example.com/in"]
        assert (await dispatcher.get_delivery(delivery_ids[0])).webhook_id == wanted.id

    @pytest.mark.asyncio
    async def test_unknown_event_rejected(self, dispatcher):
        with pytest.raises(ValidationError):
            await dispatcher.emit_event("int-1", "post_deleted", {})

    @pytest.mark.asyncio
    async def test_sweep_cancels_deliveries_of_deleted_webhook(self, dispatcher, endpoint):
        sub = await dispatcher.create_subscription("int-1", "https://a.example.com/in", ["post_published"])
        delivery_ids = await dispatcher.emit_event("int-1", "post_published", {})
        await dispatcher.delete_subscription(sub.id)

        counts = await dispatcher.process_pending_deliveries()

        assert counts["cancelled"] == 1
        assert endpoint.requests == []
        assert (await dispatcher.get_delivery(delivery_ids[0])).status == DeliveryStatus.CANCELLED.value

    @pytest.mark.asyncio
    async def test_cancel_delivery(self, dispatcher):
        await dispatcher.create_subscription("int-1", "https://a.example.com/in", ["post_published"])
        delivery_ids = await dispatcher.emit_event("int-1", "post_published", {})

        assert await dispatcher.cancel_delivery(delivery_ids[0]) is True
        assert await dispatcher.cancel_delivery(delivery_ids[0]) is False


@pytest.mark.unit
class TestTools:
    """Test the webhook test call and statistics."""

    @pytest.mark.asyncio
    async def test_test_webhook_reports_success(self, dispatcher, endpoint):
        sub = await dispatcher.create_subscription("int-1", "https://a.example.com/in", ["post_published"])

        result = await dispatcher.test_webhook(sub.id)

        assert result["success"] is True
        assert result["error"] is None
        assert endpoint.requests[0].headers["X-Webhook-Event"] == "post_created"

    @pytest.mark.asyncio
    async def test_test_webhook_reports_failure(self, dispatcher, endpoint):
        endpoint.status = 503
        sub = await dispatcher.create_subscription("int-1", "https://a.example.com/in", ["post_published"])

        result = await dispatcher.test_webhook(sub.id)

        assert result["success"] is False
        assert result["error"] == "HTTP 503: Service Unavailable"

    @pytest.mark.asyncio
    async def test_test_webhook_unknown_id(self, dispatcher):
        with pytest.raises(WebhookNotFoundError):
            await dispatcher.test_webhook("missing")

    @pytest.mark.asyncio
    async def test_stats(self, dispatcher, endpoint):
        sub = await dispatcher.create_subscription(
            "int-1", "https://a.example.com/in", ["post_published"],
            retry_policy=WebhookRetryConfig(max_retries=1),
        )
        await dispatcher.deliver(sub.id, "post_published", {"n": 1})
        endpoint.status = 500
        await dispatcher.deliver(sub.id, "post_published", {"n": 2})

        stats = await dispatcher.get_webhook_stats(sub.id, "24h")

        assert stats["total_deliveries"] == 2
        assert stats["successful_deliveries"] == 1
        assert stats["failed_deliveries"] == 1
        assert stats["success_rate"] == 50
        assert isinstance(stats["average_response_time"], int)

    @pytest.mark.asyncio
    async def test_stats_empty_and_invalid_range(self, dispatcher):
        sub = await dispatcher.create_subscription("int-1", "https://a.example.com/in", ["post_published"])

        stats = await dispatcher.get_webhook_stats(sub.id, "1h")

        assert stats["total_deliveries"] == 0
        assert stats["success_rate"] == 0
        with pytest.raises(ValidationError):
            await dispatcher.get_webhook_stats(sub.id, "1y")


async def strand_delivery(database, delivery_id, attempts, at):
    """Leave a delivery in delivering, as a worker that died mid-attempt would."""
    async with database.session() as session:
        await session.execute(
            update(WebhookDelivery)
            .where(WebhookDelivery.id == delivery_id)
            .values(status=DeliveryStatus.DELIVERING.value, attempts=attempts, updated_at=at)
            .execution_options(synchronize_session=False)
        )


@pytest.mark.unit
class TestStaleDeliveryRecovery:
    """Test the delivery lease reaper."""

    @pytest.mark.asyncio
    async def test_stale_delivery_is_requeued_after_timeout_and_margin(self, dispatcher, database, endpoint, clock):
        await dispatcher.create_subscription("int-1", "https://hooks.example.com/in", ["post_published"])
        delivery_ids = await dispatcher.emit_event("int-1", "post_published", {"job_id": "j-1"})
        await strand_delivery(database, delivery_ids[0], attempts=1, at=clock.now)

        assert await dispatcher.recover_stale_deliveries() == {"requeued": 0, "failed": 0}
        clock.advance(seconds=89)
        assert await dispatcher.recover_stale_deliveries() == {"requeued": 0, "failed": 0}

        clock.advance(seconds=1)
        assert await dispatcher.recover_stale_deliveries() == {"requeued": 1, "failed": 0}

        delivery = await dispatcher.get_delivery(delivery_ids[0])
        assert delivery.status == DeliveryStatus.PENDING.value
        assert delivery.attempts == 1
        assert delivery.next_retry_at == clock.now
        assert delivery.error == "Delivery lease expired"

        counts = await dispatcher.process_pending_deliveries()

        assert counts["delivered"] == 1
        assert (await dispatcher.get_delivery(delivery_ids[0])).attempts == 2

    @pytest.mark.asyncio
    async def test_lease_follows_webhook_timeout(self, dispatcher, database, clock):
        await dispatcher.create_subscription(
            "int-1", "https://hooks.example.com/in", ["post_published"], timeout_ms=5000
        )
        delivery_ids = await dispatcher.emit_event("int-1", "post_published", {})
        await strand_delivery(database, delivery_ids[0], attempts=1, at=clock.now)

        clock.advance(seconds=65)

        assert (await dispatcher.recover_stale_deliveries())["requeued"] == 1

    @pytest.mark.asyncio
    async def test_stale_final_attempt_fails(self, dispatcher, database, endpoint, clock):
        await dispatcher.create_subscription(
            "int-1", "https://hooks.example.com/in", ["post_published"],
            retry_policy=WebhookRetryConfig(max_retries=1),
        )
        delivery_ids = await dispatcher.emit_event("int-1", "post_published", {})
        await strand_delivery(database, delivery_ids[0], attempts=1, at=clock.now)
        clock.advance(minutes=5)

        assert await dispatcher.recover_stale_deliveries() == {"requeued": 0, "failed": 1}

        delivery = await dispatcher.get_delivery(delivery_ids[0])
        assert delivery.status == DeliveryStatus.FAILED.value
        assert delivery.next_retry_at is None
        assert (await dispatcher.process_pending_deliveries())["selected"] == 0
        assert endpoint.requests == []
