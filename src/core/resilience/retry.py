"""
Retry/Backoff Executor

One backoff formula for the whole engine:

    delay(attempt) = min(initial_delay * backoff_multiplier ** (attempt - 1), max_delay)

Attempt 1 runs immediately; `attempt` in the formula is the attempt that just
failed. With {initial=1000ms, multiplier=2, max=30000ms} the delays are
1000, 2000, 4000, 8000, 16000, 30000, 30000, ...

MECHANISM OF ACTION:
-------------------
1.  **In-process retries** (`RetryExecutor.execute`):
    Wraps an async operation in tenacity's AsyncRetrying. The wait strategy is
    `wait_policy`, which delegates to `compute_delay_ms` so the numbers are
    identical to the persisted path. Rate limit denials are never retried
    because they are capacity signals, not failures. After `max_attempts`
    failures the last error is re-raised to the caller.

2.  **Persisted retries** (`RetryExecutor.next_attempt_at`):
    The job scheduler and the webhook sweep do not block waiting for a
    delay. They store the next attempt instant on the row and let the next
    loop pass pick it up. `next_attempt_at` returns None once attempts are
    exhausted, which marks the row terminal.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, TypeVar

from tenacity import AsyncRetrying, RetryCallState, before_sleep_log, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base

from src.core.config.constants import (
    WEBHOOK_DEFAULT_BACKOFF_MULTIPLIER,
    WEBHOOK_DEFAULT_INITIAL_DELAY_MS,
    WEBHOOK_DEFAULT_MAX_DELAY_MS,
    WEBHOOK_DEFAULT_MAX_RETRIES,
)
from src.core.exceptions import RateLimitExceededError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry policy shared by jobs, webhook deliveries and integration syncs.

    Attributes:
        max_attempts: Total attempts including the first one
        initial_delay_ms: Delay after the first failure
        backoff_multiplier: Growth factor between consecutive delays
        max_delay_ms: Upper bound for any single delay
    """
    max_attempts: int = 5
    initial_delay_ms: int = 1000
    backoff_multiplier: float = 2.0
    max_delay_ms: int = 30000

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must be >= 0")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")

    @classmethod
    def from_webhook(
        cls,
        max_retries: int = WEBHOOK_DEFAULT_MAX_RETRIES,
        initial_delay_ms: int = WEBHOOK_DEFAULT_INITIAL_DELAY_MS,
        backoff_multiplier: float = WEBHOOK_DEFAULT_BACKOFF_MULTIPLIER,
        max_delay_ms: int = WEBHOOK_DEFAULT_MAX_DELAY_MS,
    ) -> "RetryPolicy":
        """Webhook subscriptions count maxRetries as total attempts; zero still means one attempt."""
        return cls(
            max_attempts=max(1, max_retries),
            initial_delay_ms=initial_delay_ms,
            backoff_multiplier=backoff_multiplier,
            max_delay_ms=max_delay_ms,
        )


def compute_delay_ms(policy: RetryPolicy, attempt: int) -> int:
    """
    Delay before the attempt following `attempt` (1-indexed).

    Example:
        >>> policy = RetryPolicy(initial_delay_ms=1000, backoff_multiplier=2, max_delay_ms=30000)
        >>> [compute_delay_ms(policy, n) for n in range(1, 8)]
        [1000, 2000, 4000, 8000, 16000, 30000, 30000]
    """
    if attempt < 1:
        raise ValueError("attempt is 1-indexed")
    try:
        delay = policy.initial_delay_ms * (policy.backoff_multiplier ** (attempt - 1))
    except OverflowError:
        return policy.max_delay_ms
    return int(min(delay, policy.max_delay_ms))


class wait_policy(wait_base):
    """tenacity wait strategy backed by compute_delay_ms."""

    def __init__(self, policy: RetryPolicy):
        self.policy = policy

    def __call__(self, retry_state: RetryCallState) -> float:
        return compute_delay_ms(self.policy, retry_state.attempt_number) / 1000.0


def _is_retryable(retry_on: tuple[type[BaseException], ...]) -> Callable[[BaseException], bool]:
    def predicate(exc: BaseException) -> bool:
        if isinstance(exc, RateLimitExceededError):
            return False
        return isinstance(exc, retry_on)

    return predicate


class RetryExecutor:
    """
    Generic policy executor.

    Usage:
        executor = RetryExecutor()
        result = await executor.execute(lambda: connector.sync(...), policy)

        next_run = executor.next_attempt_at(policy, attempts_made=job.attempts, now=now)
        if next_run is None:
            ...  # terminal
    """

    def __init__(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self._sleep = sleep
        # tenacity's before_sleep_log needs a stdlib logger
        self._std_logger = logging.getLogger(__name__)

    def delay_ms(self, policy: RetryPolicy, attempt: int) -> int:
        return compute_delay_ms(policy, attempt)

    def next_attempt_at(
        self, policy: RetryPolicy, attempts_made: int, now: datetime
    ) -> datetime | None:
        """
        Instant of the next attempt, or None when the policy is exhausted.

        Args:
            policy: Retry policy of the job or delivery
            attempts_made: Attempts already performed (>= 1)
            now: Instant the last attempt finished
        """
        if attempts_made >= policy.max_attempts:
            return None
        return now + timedelta(milliseconds=compute_delay_ms(policy, max(1, attempts_made)))

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        *,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
        operation_name: str = "operation",
    ) -> T:
        """
        Run `operation` until it succeeds or the policy is exhausted.

        Raises:
            The last exception raised by `operation` once attempts run out,
            or immediately for non-retryable errors (including rate limit denials).
        """
        retrying = AsyncRetrying(
            sleep=self._sleep,
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_policy(policy),
            retry=retry_if_exception(_is_retryable(retry_on)),
            before_sleep=before_sleep_log(self._std_logger, logging.WARNING),
            reraise=True,
        )

        try:
            return await retrying(operation)
        except Exception as e:
            logger.warning(
                "Retried operation failed",
                operation=operation_name,
                max_attempts=policy.max_attempts,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise
