"""
Failure Classification

Splits failures into transient (timeouts, 5xx, 429, connection errors) and
permanent (everything else). Both kinds are retried per policy because a
4xx cannot always be told apart from a misconfigured upstream, but permanent
failures are logged at a higher severity and alerted on once terminal.
"""

import asyncio

import httpx

from src.core.exceptions.delivery import WebhookDeliveryFailedError
from src.core.exceptions.provider import (
    ProviderAPIError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)

_TRANSIENT_TYPES: tuple[type[BaseException], ...] = (
    TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
    httpx.TimeoutException,
    httpx.TransportError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)


def _is_transient_status(status_code: int | None) -> bool:
    if status_code is None:
        return True
    return status_code >= 500 or status_code == 429


def is_transient(exc: BaseException) -> bool:
    """Return True if the failure is expected to clear on its own."""
    if isinstance(exc, _TRANSIENT_TYPES):
        return True
    if isinstance(exc, (ProviderAPIError, WebhookDeliveryFailedError)):
        return _is_transient_status(exc.status_code)
    return False


def failure_severity(exc: BaseException) -> str:
    """Log level to use for a failed attempt."""
    return "warning" if is_transient(exc) else "error"
