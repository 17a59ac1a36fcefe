"""
Test Fixtures Package

Fakes and factories shared across the engine's unit tests: a controllable
clock, scripted publishers and sync connectors, a static image provider
and a MockTransport-backed HTTP client.
"""

from .engine_factory import (
    START,
    FakeClock,
    ScriptedConnector,
    ScriptedPublisher,
    StaticImageProvider,
    add_integration,
    mock_http_client,
)

__all__ = [
    "START",
    "FakeClock",
    "ScriptedPublisher",
    "ScriptedConnector",
    "StaticImageProvider",
    "mock_http_client",
    "add_integration",
]
