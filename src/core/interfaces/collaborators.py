"""
External Collaborator Protocols

The engine depends on two collaborators it does not own:

- **ContentAdapter**: turns raw content into platform-ready text. The
  adaptation rules live outside the engine; the default implementation only
  measures the text and reports limit warnings.
- **CredentialCipher**: opaque encrypt/decrypt of integration credentials.
  Plaintext credentials exist only between decrypt and the provider call.

Architectural Decision: Protocol-based abstraction
- Structural subtyping, no inheritance required
- Easy to replace with fakes in tests
"""

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import orjson
from cryptography.fernet import Fernet, InvalidToken

from src.core.config.constants import PLATFORM_CHARACTER_LIMITS, PLATFORMS_REQUIRING_MEDIA
from src.core.exceptions import ConfigurationError, CredentialError


@dataclass
class AdaptedContent:
    """
    Result of adapting content for one platform.

    Attributes:
        content: Platform-ready text persisted on the job
        character_count: Length of the adapted text
        warnings: Non-fatal issues (over limit, missing media, ...)
    """
    content: str
    character_count: int
    warnings: list[str] = field(default_factory=list)


@runtime_checkable
class ContentAdapter(Protocol):
    """Adapts raw content to a platform. Called once per platform per schedule request."""

    async def adapt(
        self,
        content: str,
        platform: str,
        options: dict[str, Any] | None = None,
        media: list[str] | None = None,
    ) -> AdaptedContent:
        ...


class PassthroughContentAdapter:
    """
    Default adapter: returns the content unchanged.

    Emits warnings when the text exceeds the platform's character limit or
    when a media-only platform receives no media.
    """

    async def adapt(
        self,
        content: str,
        platform: str,
        options: dict[str, Any] | None = None,
        media: list[str] | None = None,
    ) -> AdaptedContent:
        warnings: list[str] = []
        limit = PLATFORM_CHARACTER_LIMITS.get(platform)
        if limit is not None and len(content) > limit:
            warnings.append(f"Content exceeds {platform} limit of {limit} characters")
        if platform in PLATFORMS_REQUIRING_MEDIA and not media:
            warnings.append(f"{platform} posts require at least one media item")
        return AdaptedContent(content=content, character_count=len(content), warnings=warnings)


@runtime_checkable
class CredentialCipher(Protocol):
    """Opaque credential encryption."""

    def encrypt(self, plaintext: str) -> str:
        ...

    def decrypt(self, blob: str) -> str:
        ...


class FernetCredentialCipher:
    """CredentialCipher backed by cryptography's Fernet (AES-128-CBC + HMAC)."""

    def __init__(self, key: str | bytes):
        if not key:
            raise ConfigurationError("CREDENTIALS_ENCRYPTION_KEY is not set")
        try:
            self._fernet = Fernet(key if isinstance(key, bytes) else key.encode())
        except (ValueError, TypeError) as e:
            raise ConfigurationError.from_exception(e, "Invalid credentials encryption key")

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, blob: str) -> str:
        try:
            return self._fernet.decrypt(blob.encode()).decode()
        except InvalidToken as e:
            raise CredentialError("Credential decryption failed") from e


def encrypt_credentials(cipher: CredentialCipher, credentials: dict[str, Any]) -> str:
    """Serialize a credential mapping and encrypt it."""
    return cipher.encrypt(orjson.dumps(credentials).decode())


def decrypt_credentials(cipher: CredentialCipher, blob: str) -> dict[str, Any]:
    """Decrypt a credential blob back into a mapping."""
    plaintext = cipher.decrypt(blob)
    try:
        return orjson.loads(plaintext)
    except orjson.JSONDecodeError as e:
        raise CredentialError("Decrypted credentials are not valid JSON") from e
