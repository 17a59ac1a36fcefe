"""
Webhook Delivery Exceptions
"""

from src.core.exceptions.base import PublishingEngineError


class DeliveryError(PublishingEngineError):
    """Base exception for webhook delivery errors."""
    pass


class WebhookNotFoundError(DeliveryError):
    """Raised when a webhook subscription id does not exist or is inactive."""
    pass


class WebhookDeliveryFailedError(DeliveryError):
    """
    Raised when a single POST attempt fails.

    Non-2xx responses carry status_code; network errors and timeouts do not.
    """

    def __init__(self, message: str, status_code: int | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        if status_code is not None:
            self.details.setdefault("status_code", status_code)


class DeliveryNotFoundError(DeliveryError):
    """Raised when a webhook delivery id does not exist."""
    pass
