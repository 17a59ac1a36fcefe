"""
Rate Limiting Exceptions

A rate limit denial is a capacity signal, not a failure: callers receive a
retry-after hint and must not count the denial as a failed attempt.
"""

from src.core.exceptions.base import PublishingEngineError


class RateLimitError(PublishingEngineError):
    """Base exception for rate limiting errors."""
    pass


class RateLimitExceededError(RateLimitError):
    """
    Raised when a (resource, operation) window has no capacity left.

    The response should include a Retry-After header carrying
    retry_after_seconds. The retry executor never retries this error.
    """

    def __init__(self, message: str, retry_after_seconds: int = 1, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after_seconds = retry_after_seconds
        self.details.setdefault("retry_after_seconds", retry_after_seconds)
