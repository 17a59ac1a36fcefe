"""
Base Exception Class

This module contains ONLY the base exception class that all other exceptions inherit from.
All specialized exceptions are in their respective themed modules.
"""

from typing import Any


class PublishingEngineError(Exception):
    """
    Base exception for all delivery and scheduling engine errors.

    All custom exceptions inherit from this class to enable:
    - Consistent error handling at the API boundary and inside loops
    - Correlation ID tracking across log entries
    - Structured error logging with rich context

    Attributes:
        message: Error message
        correlation_id: Correlation ID of the request or loop iteration (if available)
        details: Additional error details (dict)

    Example:
        raise PublishFailedError(
            "LinkedIn rejected the post",
            details={"job_id": job.id, "platform": "linkedin", "attempt": 2}
        )
    """

    def __init__(
        self, message: str, correlation_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.correlation_id = correlation_id
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging/API responses.

        Returns:
            Dict with error_type, message, correlation_id, and details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "correlation_id": self.correlation_id,
            "details": self.details,
        }

    def with_suggestion(self, suggestion: str) -> "PublishingEngineError":
        """Add a suggestion to help callers fix the error."""
        self.details["suggestion"] = suggestion
        return self

    def with_context(self, **context) -> "PublishingEngineError":
        """Add additional context to the error details (chainable)."""
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        details_str = f", details={self.details}" if self.details else ""
        correlation_str = f", correlation_id='{self.correlation_id}'" if self.correlation_id else ""
        return f"{self.__class__.__name__}(message='{self.message}'{correlation_str}{details_str})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        correlation_id: str | None = None,
        **details
    ) -> "PublishingEngineError":
        """
        Create an engine error from another exception.

        Useful for wrapping third-party exceptions (httpx, SQLAlchemy) with context.

        Example:
            >>> try:
            ...     await client.post(url, content=body)
            ... except httpx.TimeoutException as e:
            ...     raise WebhookDeliveryFailedError.from_exception(e, webhook_id=webhook.id)
        """
        error_message = message or str(exc) or exc.__class__.__name__
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details
        }
        return cls(error_message, correlation_id=correlation_id, details=error_details)


class ConfigurationError(PublishingEngineError):
    """Raised when configuration is invalid or missing."""
    pass


class CredentialError(PublishingEngineError):
    """Raised when integration credentials cannot be encrypted or decrypted."""
    pass
