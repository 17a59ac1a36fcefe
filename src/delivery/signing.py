"""
Webhook Signing

Outbound bodies are serialized once with orjson (sorted keys) and the hex
HMAC-SHA256 of exactly those bytes is sent as X-Webhook-Signature.
Receivers verify with verify_signature, which compares in constant time.
"""

import hashlib
import hmac
import secrets
from typing import Any

import orjson


def serialize_payload(payload: Any) -> bytes:
    """Canonical body bytes for a payload."""
    return orjson.dumps(payload, option=orjson.OPT_SORT_KEYS)


def sign_payload(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, payload: bytes | str | Any, signature: str) -> bool:
    """
    Check a signature against a payload.

    Args:
        secret: Subscription secret
        payload: Raw body bytes (or str); any other object is serialized
            canonically first
        signature: Hex digest received in X-Webhook-Signature
    """
    if isinstance(payload, str):
        body = payload.encode()
    elif isinstance(payload, (bytes, bytearray)):
        body = bytes(payload)
    else:
        body = serialize_payload(payload)

    if not signature:
        return False
    expected = sign_payload(secret, body)
    return hmac.compare_digest(expected.encode(), signature.strip().lower().encode())


def generate_secret() -> str:
    """32 random bytes as hex."""
    return secrets.token_hex(32)
