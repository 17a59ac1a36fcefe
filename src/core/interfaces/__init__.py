"""
Core Interfaces Module

Protocols for the collaborators the engine depends on but does not own,
plus the clock abstraction used by every time-dependent service.

Components:
-----------
- **collaborators.py**: ContentAdapter and CredentialCipher protocols with defaults
- **clock.py**: Clock type and utcnow()
"""

from src.core.interfaces.clock import Clock, epoch_millis, utcnow
from src.core.interfaces.collaborators import (
    AdaptedContent,
    ContentAdapter,
    CredentialCipher,
    FernetCredentialCipher,
    PassthroughContentAdapter,
    decrypt_credentials,
    encrypt_credentials,
)

__all__ = [
    "Clock",
    "utcnow",
    "epoch_millis",
    "AdaptedContent",
    "ContentAdapter",
    "PassthroughContentAdapter",
    "CredentialCipher",
    "FernetCredentialCipher",
    "encrypt_credentials",
    "decrypt_credentials",
]
