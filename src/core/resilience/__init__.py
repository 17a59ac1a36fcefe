"""
Resilience Module - Core Resilience Components

Building blocks shared by the job scheduler, the webhook dispatcher, the
image fallback router and the integration sync orchestrator.

COMPONENTS:
===========
- RetryPolicy / RetryExecutor: one backoff formula, in-process or persisted
- SlidingWindowRateLimiter: per-(resource, operation) admission control
- ProviderHealthTracker: consecutive-failure health state per provider
- Supervisor / PeriodicTask: lifecycle of every background loop
"""

from .health_tracker import ProviderHealth, ProviderHealthTracker
from .rate_limiter import (
    InMemoryWindowStore,
    RateLimitDecision,
    RedisWindowStore,
    SlidingWindowRateLimiter,
    WindowStore,
)
from .retry import RetryExecutor, RetryPolicy, compute_delay_ms
from .supervisor import PeriodicTask, Supervisor

__all__ = [
    # Retry
    "RetryPolicy",
    "RetryExecutor",
    "compute_delay_ms",
    # Rate Limiting
    "RateLimitDecision",
    "SlidingWindowRateLimiter",
    "WindowStore",
    "InMemoryWindowStore",
    "RedisWindowStore",
    # Health
    "ProviderHealth",
    "ProviderHealthTracker",
    # Supervision
    "PeriodicTask",
    "Supervisor",
]
