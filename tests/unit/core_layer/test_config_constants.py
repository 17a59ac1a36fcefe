"""
Unit Tests for Configuration Constants

Tests the fixed tables and state enums shared across the engine.
"""

import pytest

from src.core.config.constants import (
    IMAGE_PROVIDER_LIMITS,
    OPERATION_LIMITS,
    PLATFORM_PUBLISH_LIMITS,
    SUPPORTED_PLATFORMS,
    SYNC_INTERVAL_SECONDS,
    WEBHOOK_STATS_RANGES_SECONDS,
    JobStatus,
    Platform,
    SyncFrequency,
    WebhookEvent,
    image_operation,
    publish_operation,
)


@pytest.mark.unit
class TestPlatformConstants:
    """Test platform tables."""

    def test_supported_platforms_match_enum(self):
        assert SUPPORTED_PLATFORMS == {p.value for p in Platform}
        assert "twitter" in SUPPORTED_PLATFORMS

    def test_publish_limits_use_publish_operation_keys(self):
        for key in PLATFORM_PUBLISH_LIMITS:
            platform = key.split(":", 1)[1]
            assert publish_operation(platform) == key
            assert platform in SUPPORTED_PLATFORMS

    def test_limits_are_positive(self):
        limits = {**OPERATION_LIMITS, **PLATFORM_PUBLISH_LIMITS, **IMAGE_PROVIDER_LIMITS}
        assert all(limit > 0 for limit in limits.values())

    def test_image_limits_use_image_operation_keys(self):
        assert image_operation("openai_dalle") in IMAGE_PROVIDER_LIMITS
        assert IMAGE_PROVIDER_LIMITS["image:stability_ai"] == 150


@pytest.mark.unit
class TestStateEnums:
    """Test persisted state names."""

    def test_job_statuses(self):
        assert {s.value for s in JobStatus} == {"pending", "processing", "succeeded", "failed", "cancelled"}

    def test_enums_compare_to_strings(self):
        assert JobStatus.PENDING == "pending"
        assert WebhookEvent.POST_PUBLISHED == "post_published"

    def test_every_sync_frequency_has_an_interval(self):
        assert set(SYNC_INTERVAL_SECONDS) == {f.value for f in SyncFrequency}
        assert SYNC_INTERVAL_SECONDS["manual"] is None
        assert SYNC_INTERVAL_SECONDS["hourly"] == 3600.0

    def test_stats_ranges_are_ordered(self):
        seconds = [WEBHOOK_STATS_RANGES_SECONDS[r] for r in ("1h", "24h", "7d", "30d")]
        assert seconds == sorted(seconds)
