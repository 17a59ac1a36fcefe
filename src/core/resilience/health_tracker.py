"""
Provider Health Tracker

Counts consecutive failures per external provider and flags a provider
unhealthy once the count reaches the threshold (5 by default).

Recovery Model:
    A success decrements the counter by one (floor 0) and marks the provider
    healthy again. The counter is not zeroed, so a provider that just
    recovered flips back to unhealthy after a single further failure.

    failures: 1 2 3 4 5 -> unhealthy
    success:  4          -> healthy
    failure:  5          -> unhealthy

State is process local and held in memory; it resets on restart.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.core.config.constants import HEALTH_FAILURE_THRESHOLD
from src.core.interfaces.clock import Clock, utcnow
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ProviderHealth:
    """Live health record of one provider."""
    provider_id: str
    is_healthy: bool = True
    consecutive_errors: int = 0
    last_check: datetime | None = None
    last_error: str | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_id": self.provider_id,
            "is_healthy": self.is_healthy,
            "consecutive_errors": self.consecutive_errors,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "last_error": self.last_error,
        }


class ProviderHealthTracker:
    """
    Consecutive-failure health tracker.

    Unknown providers are healthy. `is_healthy` never raises so a tracker
    bug degrades to routing traffic rather than blocking it.
    """

    def __init__(
        self,
        failure_threshold: int = HEALTH_FAILURE_THRESHOLD,
        clock: Clock = utcnow,
        metrics: Any | None = None,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self._threshold = failure_threshold
        self._clock = clock
        self._metrics = metrics
        self._health: dict[str, ProviderHealth] = {}

    @property
    def failure_threshold(self) -> int:
        return self._threshold

    def register(self, provider_id: str) -> ProviderHealth:
        if provider_id not in self._health:
            self._health[provider_id] = ProviderHealth(provider_id=provider_id, last_check=self._clock())
            self._publish_gauge(self._health[provider_id])
        return self._health[provider_id]

    def report_outcome(self, provider_id: str, success: bool, error: str | None = None) -> ProviderHealth:
        """
        Record the outcome of one call to a provider.

        Args:
            provider_id: Provider identifier (e.g. "openai_dalle", "integration:<id>")
            success: Whether the call succeeded
            error: Error text for failed calls
        """
        health = self.register(provider_id)
        was_healthy = health.is_healthy
        health.last_check = self._clock()

        if success:
            health.consecutive_errors = max(0, health.consecutive_errors - 1)
            health.is_healthy = True
            health.last_error = None
        else:
            health.consecutive_errors += 1
            health.is_healthy = health.consecutive_errors < self._threshold
            health.last_error = error

        if was_healthy and not health.is_healthy:
            logger.warning(
                "Provider marked unhealthy",
                provider=provider_id,
                consecutive_errors=health.consecutive_errors,
                error=error,
            )
        elif not was_healthy and health.is_healthy:
            logger.info(
                "Provider recovered",
                provider=provider_id,
                consecutive_errors=health.consecutive_errors,
            )

        self._publish_gauge(health)
        return health

    def is_healthy(self, provider_id: str) -> bool:
        try:
            health = self._health.get(provider_id)
            return True if health is None else health.is_healthy
        except Exception as e:
            logger.warning("Health lookup failed, assuming healthy", provider=provider_id, error=str(e))
            return True

    def get(self, provider_id: str) -> ProviderHealth | None:
        return self._health.get(provider_id)

    def snapshot(self) -> list[ProviderHealth]:
        return [
            ProviderHealth(
                provider_id=h.provider_id,
                is_healthy=h.is_healthy,
                consecutive_errors=h.consecutive_errors,
                last_check=h.last_check,
                last_error=h.last_error,
            )
            for h in self._health.values()
        ]

    def unhealthy_providers(self) -> list[str]:
        return sorted(pid for pid, h in self._health.items() if not h.is_healthy)

    def reset(self, provider_id: str | None = None) -> None:
        """Mark one provider (or all) healthy with a zero error count."""
        targets = [provider_id] if provider_id else list(self._health)
        for pid in targets:
            health = self.register(pid)
            health.is_healthy = True
            health.consecutive_errors = 0
            health.last_error = None
            health.last_check = self._clock()
            self._publish_gauge(health)
        logger.info("Provider health reset", provider=provider_id or "all")

    def _publish_gauge(self, health: ProviderHealth) -> None:
        if self._metrics is not None:
            self._metrics.set_provider_health(health.provider_id, health.is_healthy)
