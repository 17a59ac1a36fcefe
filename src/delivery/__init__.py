"""
Delivery Module

Signed webhook delivery with persisted attempts and a retry sweep.
"""

from src.delivery.signing import generate_secret, serialize_payload, sign_payload, verify_signature
from src.delivery.webhook_dispatcher import WebhookDispatcher, WebhookRetryConfig, validate_webhook_url

__all__ = [
    "WebhookDispatcher",
    "WebhookRetryConfig",
    "validate_webhook_url",
    "serialize_payload",
    "sign_payload",
    "verify_signature",
    "generate_secret",
]
