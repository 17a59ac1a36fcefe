"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.

Database fixtures use a temporary SQLite file through aiosqlite, so every
test gets an isolated schema and the same SQL paths (insert-or-ignore,
conditional UPDATE claims) that run against PostgreSQL in production.
"""

import pytest
import pytest_asyncio

from src.core.config.settings import Settings
from src.core.resilience.health_tracker import ProviderHealthTracker
from src.core.resilience.rate_limiter import SlidingWindowRateLimiter
from src.infrastructure.database.session import Database
from tests.test_fixtures.engine_factory import FakeClock

# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}"


@pytest.fixture
def test_settings(sqlite_url):
    """
    Settings for an isolated test process.

    Background workers and sync loops are off so tests drive every pass
    explicitly.
    """
    return Settings(
        DATABASE_URL=sqlite_url,
        ENVIRONMENT="test",
        WORKERS_ENABLED=False,
        SYNC_ENABLED=False,
        LOG_FORMAT="console",
        RATE_LIMIT_BACKEND="memory",
        CREDENTIALS_ENCRYPTION_KEY=None,
    )


# ============================================================================
# Time
# ============================================================================


@pytest.fixture
def clock():
    """Frozen clock at 2026-10-19T09:00:00Z."""
    return FakeClock()


# ============================================================================
# Infrastructure Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def database(sqlite_url):
    """Fresh SQLite database with the full schema."""
    db = Database(sqlite_url)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def rate_limiter(clock):
    return SlidingWindowRateLimiter(clock=clock)


@pytest.fixture
def health_tracker(clock):
    return ProviderHealthTracker(clock=clock)
