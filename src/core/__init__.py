"""
Core Module

Foundational components: configuration, logging, exceptions, collaborator
protocols and the resilience primitives (retry, rate limiting, health
tracking, supervision).
"""

from .exceptions import (
    ConfigurationError,
    ProviderError,
    PublishingEngineError,
    RateLimitExceededError,
    ValidationError,
)
from .logging import (
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    set_correlation_id,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    "PublishingEngineError",
    "ConfigurationError",
    "ProviderError",
    "RateLimitExceededError",
    "ValidationError",
]
