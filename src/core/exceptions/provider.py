"""
Provider Exceptions

Errors raised by external providers: publishing platforms, image generators
and stock image sources.
"""

from src.core.exceptions.base import PublishingEngineError


class ProviderError(PublishingEngineError):
    """Base exception for external provider errors."""
    pass


class ProviderUnavailableError(ProviderError):
    """
    Raised when a provider cannot be used.

    Common causes:
    - Missing API key
    - Provider marked unhealthy by the health tracker
    - Network connectivity issues
    """
    pass


class ProviderTimeoutError(ProviderError):
    """Raised when a provider call exceeds its hard timeout."""
    pass


class ProviderAPIError(ProviderError):
    """
    Raised when a provider API returns an error response.

    Attributes:
        status_code: HTTP status returned by the provider (if any)
    """

    def __init__(self, message: str, status_code: int | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        if status_code is not None:
            self.details.setdefault("status_code", status_code)


class AllProvidersFailedError(ProviderError):
    """Raised when every stage of a degrade chain failed or was disabled."""
    pass
