"""
Validation Exceptions

Local validation failures are rejected at the boundary and never enqueued.
"""

from src.core.exceptions.base import PublishingEngineError


class ValidationError(PublishingEngineError):
    """
    Raised when request validation fails.

    This is the base class for all validation-related errors.
    """
    pass


class UnsupportedPlatformError(ValidationError):
    """
    Raised when a schedule request names a platform outside the supported set.

    Example:
        raise UnsupportedPlatformError(
            "Unsupported platform: myspace",
            details={"platform": "myspace", "supported": sorted(SUPPORTED_PLATFORMS)}
        )
    """
    pass


class EmptyContentError(ValidationError):
    """Raised when a schedule request carries no content."""
    pass


class InvalidScheduleDateError(ValidationError):
    """Raised when the schedule date is not an ISO-8601 instant."""
    pass


class InvalidWebhookConfigError(ValidationError):
    """
    Raised when a webhook subscription is malformed.

    Common causes:
    - URL is not absolute http(s)
    - Timeout outside the accepted range
    - Negative max_retries
    """
    pass
