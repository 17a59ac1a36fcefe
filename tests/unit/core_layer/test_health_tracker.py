"""
Unit Tests for the Provider Health Tracker
"""

from unittest.mock import MagicMock

import pytest

from src.core.resilience.health_tracker import ProviderHealthTracker


@pytest.mark.unit
class TestHealthTransitions:
    """Test the consecutive-error threshold and recovery model."""

    def test_unknown_provider_is_healthy(self, health_tracker):
        assert health_tracker.is_healthy("never_seen") is True

    def test_flips_unhealthy_at_fifth_failure(self, health_tracker):
        for _ in range(4):
            health_tracker.report_outcome("openai_dalle", False, "HTTP 503")
        assert health_tracker.is_healthy("openai_dalle") is True

        health = health_tracker.report_outcome("openai_dalle", False, "HTTP 503")

        assert health.is_healthy is False
        assert health.consecutive_errors == 5
        assert health.last_error == "HTTP 503"
        assert health_tracker.unhealthy_providers() == ["openai_dalle"]

    def test_success_decrements_and_recovers(self, health_tracker):
        for _ in range(5):
            health_tracker.report_outcome("openai_dalle", False)

        health = health_tracker.report_outcome("openai_dalle", True)

        assert health.is_healthy is True
        assert health.consecutive_errors == 4
        assert health.last_error is None

    def test_recovered_provider_flips_back_after_one_failure(self, health_tracker):
        for _ in range(5):
            health_tracker.report_outcome("openai_dalle", False)
        health_tracker.report_outcome("openai_dalle", True)

        health = health_tracker.report_outcome("openai_dalle", False)

        assert health.is_healthy is False
        assert health.consecutive_errors == 5

    def test_success_never_goes_below_zero(self, health_tracker):
        health_tracker.report_outcome("stability_ai", True)

        assert health_tracker.get("stability_ai").consecutive_errors == 0

    def test_last_check_uses_clock(self, health_tracker, clock):
        clock.advance(minutes=5)

        health = health_tracker.report_outcome("stability_ai", False)

        assert health.last_check == clock.now


@pytest.mark.unit
class TestHealthManagement:
    """Test reset, snapshots and metrics publication."""

    def test_reset_one_provider(self, health_tracker):
        for provider in ("a", "b"):
            for _ in range(5):
                health_tracker.report_outcome(provider, False)

        health_tracker.reset("a")

        assert health_tracker.is_healthy("a") is True
        assert health_tracker.get("a").consecutive_errors == 0
        assert health_tracker.unhealthy_providers() == ["b"]

    def test_reset_all(self, health_tracker):
        for provider in ("a", "b"):
            for _ in range(5):
                health_tracker.report_outcome(provider, False)

        health_tracker.reset()

        assert health_tracker.unhealthy_providers() == []

    def test_snapshot_is_a_copy(self, health_tracker):
        health_tracker.report_outcome("a", False)

        snapshot = health_tracker.snapshot()
        snapshot[0].consecutive_errors = 99

        assert health_tracker.get("a").consecutive_errors == 1

    def test_to_dict(self, health_tracker):
        health = health_tracker.report_outcome("integration:42", False, "timeout")

        data = health.to_dict()

        assert data["provider_id"] == "integration:42"
        assert data["consecutive_errors"] == 1
        assert data["last_error"] == "timeout"
        assert data["last_check"].startswith("2026-10-19")

    def test_gauge_follows_health(self, clock):
        metrics = MagicMock()
        tracker = ProviderHealthTracker(failure_threshold=2, clock=clock, metrics=metrics)

        tracker.report_outcome("p", False)
        tracker.report_outcome("p", False)

        metrics.set_provider_health.assert_called_with("p", False)

    def test_threshold_must_be_positive(self):
        with pytest.raises(ValueError):
            ProviderHealthTracker(failure_threshold=0)
