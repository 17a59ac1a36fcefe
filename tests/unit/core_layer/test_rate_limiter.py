"""
Unit Tests for the Sliding Window Rate Limiter

Tests window boundaries, key isolation, the fail-open policy and backend
switching with the in-memory store.
"""

from unittest.mock import MagicMock

import pytest

from src.core.resilience.rate_limiter import (
    InMemoryWindowStore,
    SlidingWindowRateLimiter,
    WindowStore,
)


class BrokenStore(WindowStore):
    async def hit(self, key, now, window_seconds, limit):
        raise ConnectionError("backend down")

    async def peek(self, key, now, window_seconds):
        raise ConnectionError("backend down")

    async def clear(self, prefix=None):
        return None


@pytest.mark.unit
class TestWindowBoundaries:
    """Test the test_connection limit of 5 per 60 seconds."""

    @pytest.mark.asyncio
    async def test_five_allowed_then_denied(self, rate_limiter):
        decisions = [await rate_limiter.check_and_consume("integration-1", "test_connection") for _ in range(6)]

        assert [d.allowed for d in decisions] == [True] * 5 + [False]
        assert [d.remaining for d in decisions[:5]] == [4, 3, 2, 1, 0]
        assert decisions[5].retry_after_seconds == 60
        assert decisions[5].limit == 5

    @pytest.mark.asyncio
    async def test_retry_after_shrinks_as_window_slides(self, rate_limiter, clock):
        for _ in range(5):
            await rate_limiter.check_and_consume("integration-1", "test_connection")

        clock.advance(seconds=59)
        decision = await rate_limiter.check_and_consume("integration-1", "test_connection")

        assert decision.allowed is False
        assert decision.retry_after_seconds == 1

    @pytest.mark.asyncio
    async def test_capacity_returns_after_full_window(self, rate_limiter, clock):
        for _ in range(5):
            await rate_limiter.check_and_consume("integration-1", "test_connection")

        clock.advance(seconds=60)
        decision = await rate_limiter.check_and_consume("integration-1", "test_connection")

        assert decision.allowed is True
        assert decision.remaining == 4

    @pytest.mark.asyncio
    async def test_denied_requests_do_not_consume(self, rate_limiter, clock):
        """Test denials are not recorded, so they never extend the window."""
        for _ in range(5):
            await rate_limiter.check_and_consume("integration-1", "test_connection")
        clock.advance(seconds=30)
        for _ in range(10):
            await rate_limiter.check_and_consume("integration-1", "test_connection")

        clock.advance(seconds=30)

        assert (await rate_limiter.check_and_consume("integration-1", "test_connection")).allowed is True


@pytest.mark.unit
class TestKeysAndLimits:
    """Test per-(resource, operation) isolation and limit lookup."""

    @pytest.mark.asyncio
    async def test_resources_are_isolated(self, rate_limiter):
        for _ in range(5):
            await rate_limiter.check_and_consume("integration-1", "test_connection")

        assert (await rate_limiter.check_and_consume("integration-2", "test_connection")).allowed is True

    @pytest.mark.asyncio
    async def test_operations_are_isolated(self, rate_limiter):
        for _ in range(5):
            await rate_limiter.check_and_consume("integration-1", "test_connection")

        assert (await rate_limiter.check_and_consume("integration-1", "data_sync")).allowed is True

    def test_known_limits(self, rate_limiter):
        assert rate_limiter.limit_for("api_call") == 100
        assert rate_limiter.limit_for("data_sync") == 10
        assert rate_limiter.limit_for("webhook") == 1000
        assert rate_limiter.limit_for("publish:twitter") == 15
        assert rate_limiter.limit_for("image:openai_dalle") == 50
        assert rate_limiter.limit_for("image:unsplash") == 50

    def test_unknown_operation_uses_default(self, clock):
        limiter = SlidingWindowRateLimiter(default_limit=7, clock=clock)

        assert limiter.limit_for("something_else") == 7

    def test_set_limit_rejects_zero(self, rate_limiter):
        with pytest.raises(ValueError):
            rate_limiter.set_limit("api_call", 0)


@pytest.mark.unit
class TestLimiterOperations:
    """Test peek, reset, metrics and backend handling."""

    @pytest.mark.asyncio
    async def test_peek_does_not_consume(self, rate_limiter):
        await rate_limiter.check_and_consume("integration-1", "test_connection")

        first = await rate_limiter.peek("integration-1", "test_connection")
        second = await rate_limiter.peek("integration-1", "test_connection")

        assert first.remaining == second.remaining == 4

    @pytest.mark.asyncio
    async def test_reset_one_resource(self, rate_limiter):
        for resource in ("integration-1", "integration-2"):
            for _ in range(5):
                await rate_limiter.check_and_consume(resource, "test_connection")

        await rate_limiter.reset("integration-1")

        assert (await rate_limiter.check_and_consume("integration-1", "test_connection")).allowed is True
        assert (await rate_limiter.check_and_consume("integration-2", "test_connection")).allowed is False

    @pytest.mark.asyncio
    async def test_denial_is_counted_in_metrics(self, clock):
        metrics = MagicMock()
        limiter = SlidingWindowRateLimiter(clock=clock, metrics=metrics)
        limiter.set_limit("api_call", 1)

        await limiter.check_and_consume("user-1", "api_call")
        await limiter.check_and_consume("user-1", "api_call")

        metrics.record_rate_limit_denied.assert_called_once_with("api_call")

    @pytest.mark.asyncio
    async def test_backend_failure_allows_request(self, clock):
        limiter = SlidingWindowRateLimiter(store=BrokenStore(), clock=clock)

        decision = await limiter.check_and_consume("user-1", "api_call")

        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_use_store_switches_backend(self, clock):
        limiter = SlidingWindowRateLimiter(store=BrokenStore(), clock=clock)
        assert limiter.backend == "BrokenStore"

        limiter.use_store(InMemoryWindowStore())
        limiter.set_limit("api_call", 1)
        await limiter.check_and_consume("user-1", "api_call")

        assert limiter.backend == "InMemoryWindowStore"
        assert (await limiter.check_and_consume("user-1", "api_call")).allowed is False
