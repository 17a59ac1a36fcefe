"""
Sliding Window Rate Limiter

Per-(resource, operation) admission control over a trailing window.

Algorithm:
    1. Discard timestamps at or before now - window
    2. If the window already holds `limit` timestamps, deny and report
       retry_after = ceil(oldest + window - now)
    3. Otherwise record now and allow, reporting the remaining capacity

Keys are "<resource_id>:<operation>", for example "user-42:publish:twitter",
"integration-7:data_sync" and "image_generation:image:openai_dalle".

Backends:
    InMemoryWindowStore  - default, process local, resets on restart
    RedisWindowStore     - shared sorted set per key for multi-instance
                           deployments (see DESIGN.md, open questions)

Failure Policy:
    The limiter is best effort. Any backend error yields an allowed decision
    and a warning log so a broken limiter never blocks all outbound traffic.
"""

import asyncio
import math
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any

from src.core.config.constants import (
    DEFAULT_OPERATION_LIMIT,
    IMAGE_PROVIDER_LIMITS,
    OPERATION_LIMITS,
    PLATFORM_PUBLISH_LIMITS,
    RATE_LIMIT_WINDOW_SECONDS,
)
from src.core.interfaces.clock import Clock, utcnow
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """
    Outcome of a rate limit check.

    Attributes:
        allowed: Whether the caller may proceed
        remaining: Capacity left in the window after this check
        retry_after_seconds: Seconds until a slot frees up (0 when allowed)
        limit: Configured capacity for the operation
    """
    allowed: bool
    remaining: int
    retry_after_seconds: int
    limit: int


# ============================================================================
# Window Stores
# ============================================================================


class WindowStore(ABC):
    """Storage backend holding the timestamps of each window."""

    @abstractmethod
    async def hit(
        self, key: str, now: float, window_seconds: float, limit: int
    ) -> tuple[bool, int, float | None]:
        """
        Trim the window and record `now` if capacity remains.

        Returns:
            (allowed, count_after, oldest_timestamp)
        """

    @abstractmethod
    async def peek(self, key: str, now: float, window_seconds: float) -> tuple[int, float | None]:
        """Return (count, oldest_timestamp) without recording."""

    @abstractmethod
    async def clear(self, prefix: str | None = None) -> None:
        """Drop windows whose key starts with prefix (all windows when None)."""


class InMemoryWindowStore(WindowStore):
    """
    Process-local window store.

    One deque of timestamps per key, guarded by a single asyncio.Lock so a
    check-then-record sequence is atomic between coroutines.
    """

    def __init__(self):
        self._windows: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _trim(window: deque[float], cutoff: float) -> None:
        while window and window[0] <= cutoff:
            window.popleft()

    async def hit(
        self, key: str, now: float, window_seconds: float, limit: int
    ) -> tuple[bool, int, float | None]:
        async with self._lock:
            window = self._windows.setdefault(key, deque())
            self._trim(window, now - window_seconds)

            if len(window) >= limit:
                return False, len(window), window[0] if window else None

            window.append(now)
            return True, len(window), window[0]

    async def peek(self, key: str, now: float, window_seconds: float) -> tuple[int, float | None]:
        async with self._lock:
            window = self._windows.get(key)
            if not window:
                return 0, None
            self._trim(window, now - window_seconds)
            return len(window), window[0] if window else None

    async def clear(self, prefix: str | None = None) -> None:
        async with self._lock:
            if prefix is None:
                self._windows.clear()
                return
            for key in [k for k in self._windows if k.startswith(prefix)]:
                del self._windows[key]


class RedisWindowStore(WindowStore):
    """
    Shared window store on a Redis sorted set per key.

    Score and member are the request timestamp (member suffixed with a
    random token so equal timestamps do not collapse). The trim, count and
    oldest lookup run in one MULTI/EXEC pipeline; the record is a second
    round trip, so two instances can overshoot by a request at the boundary.
    """

    KEY_PREFIX = "ratelimit:window:"

    def __init__(self, redis_client: Any):
        self._redis = redis_client

    def _key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}{key}"

    async def _window_state(self, key: str, now: float, window_seconds: float) -> tuple[int, float | None]:
        redis_key = self._key(key)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(redis_key, "-inf", now - window_seconds)
            pipe.zcard(redis_key)
            pipe.zrange(redis_key, 0, 0, withscores=True)
            _, count, oldest = await pipe.execute()
        oldest_ts = float(oldest[0][1]) if oldest else None
        return int(count), oldest_ts

    async def hit(
        self, key: str, now: float, window_seconds: float, limit: int
    ) -> tuple[bool, int, float | None]:
        count, oldest = await self._window_state(key, now, window_seconds)
        if count >= limit:
            return False, count, oldest

        redis_key = self._key(key)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zadd(redis_key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
            pipe.expire(redis_key, int(math.ceil(window_seconds)) + 1)
            await pipe.execute()
        return True, count + 1, oldest if oldest is not None else now

    async def peek(self, key: str, now: float, window_seconds: float) -> tuple[int, float | None]:
        return await self._window_state(key, now, window_seconds)

    async def clear(self, prefix: str | None = None) -> None:
        pattern = f"{self.KEY_PREFIX}{prefix or ''}*"
        async for redis_key in self._redis.scan_iter(match=pattern):
            await self._redis.delete(redis_key)


# ============================================================================
# Limiter
# ============================================================================


class SlidingWindowRateLimiter:
    """
    Admission control shared by every loop that makes outbound calls.

    Usage:
        limiter = SlidingWindowRateLimiter()
        decision = await limiter.check_and_consume(user_id, publish_operation("twitter"))
        if not decision.allowed:
            defer(decision.retry_after_seconds)
    """

    def __init__(
        self,
        store: WindowStore | None = None,
        limits: dict[str, int] | None = None,
        default_limit: int = DEFAULT_OPERATION_LIMIT,
        window_seconds: int = RATE_LIMIT_WINDOW_SECONDS,
        clock: Clock = utcnow,
        metrics: Any | None = None,
    ):
        self._store = store or InMemoryWindowStore()
        self._limits: dict[str, int] = {
            **OPERATION_LIMITS, **PLATFORM_PUBLISH_LIMITS, **IMAGE_PROVIDER_LIMITS, **(limits or {})
        }
        self._default_limit = default_limit
        self._window_seconds = window_seconds
        self._clock = clock
        self._metrics = metrics

        logger.info(
            "Rate limiter initialized",
            backend=type(self._store).__name__,
            window_seconds=window_seconds,
            default_limit=default_limit,
        )

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def limit_for(self, operation: str) -> int:
        return self._limits.get(operation, self._default_limit)

    def set_limit(self, operation: str, limit: int) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self._limits[operation] = limit

    @property
    def backend(self) -> str:
        return type(self._store).__name__

    def use_store(self, store: WindowStore) -> None:
        """Swap the window backend (the container does this once Redis connects)."""
        self._store = store
        logger.info("Rate limiter backend switched", backend=self.backend)

    def _retry_after(self, oldest: float | None, now: float) -> int:
        if oldest is None:
            return 1
        return max(1, math.ceil(oldest + self._window_seconds - now))

    async def check_and_consume(self, resource_id: str, operation: str) -> RateLimitDecision:
        """
        Check the window for (resource_id, operation) and consume a slot if allowed.

        Never raises: backend errors are logged and the call is allowed.
        """
        limit = self.limit_for(operation)
        key = f"{resource_id}:{operation}"
        now = self._clock().timestamp()

        try:
            allowed, count, oldest = await self._store.hit(key, now, self._window_seconds, limit)
        except Exception as e:
            logger.warning(
                "Rate limiter backend failed, allowing request",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return RateLimitDecision(allowed=True, remaining=limit - 1, retry_after_seconds=0, limit=limit)

        if allowed:
            return RateLimitDecision(
                allowed=True, remaining=max(0, limit - count), retry_after_seconds=0, limit=limit
            )

        retry_after = self._retry_after(oldest, now)
        logger.info(
            "Rate limit exceeded",
            resource_id=resource_id,
            operation=operation,
            limit=limit,
            retry_after_seconds=retry_after,
        )
        if self._metrics is not None:
            self._metrics.record_rate_limit_denied(operation)
        return RateLimitDecision(allowed=False, remaining=0, retry_after_seconds=retry_after, limit=limit)

    async def peek(self, resource_id: str, operation: str) -> RateLimitDecision:
        """Report the state of a window without consuming a slot."""
        limit = self.limit_for(operation)
        now = self._clock().timestamp()
        try:
            count, oldest = await self._store.peek(f"{resource_id}:{operation}", now, self._window_seconds)
        except Exception as e:
            logger.warning("Rate limiter peek failed", resource_id=resource_id, error=str(e))
            return RateLimitDecision(allowed=True, remaining=limit, retry_after_seconds=0, limit=limit)

        remaining = max(0, limit - count)
        return RateLimitDecision(
            allowed=remaining > 0,
            remaining=remaining,
            retry_after_seconds=0 if remaining > 0 else self._retry_after(oldest, now),
            limit=limit,
        )

    async def reset(self, resource_id: str | None = None) -> None:
        """Clear every window, or only the windows of one resource."""
        await self._store.clear(None if resource_id is None else f"{resource_id}:")
        logger.info("Rate limiter reset", resource_id=resource_id)
