"""
Provider Fallback Router

Picks the best healthy provider for a capability and runs degrade chains.

Selection:
    candidates -> drop unhealthy (ProviderHealthTracker) -> sort by
    (priority ascending, reliability descending)

Degrade Chain:
    Each stage runs in order. The first stage whose result passes its
    validity check wins and short-circuits the rest. Stage errors are
    collected and the chain moves on. The winning stage name and reason are
    returned so callers can surface degraded quality.
"""

from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypeVar

from src.core.config.constants import FallbackStage
from src.core.logging.logger import get_logger
from src.core.resilience.health_tracker import ProviderHealthTracker

logger = get_logger(__name__)

T = TypeVar("T")


class RoutableProvider(Protocol):
    provider_id: str
    priority: int
    reliability: float


@dataclass(frozen=True)
class ProviderCandidate:
    """Minimal routable provider description."""
    provider_id: str
    priority: int = 100
    reliability: float = 0.0


@dataclass
class ChainStage(Generic[T]):
    """
    One stage of a degrade chain.

    Attributes:
        stage: Stage name reported on success (a FallbackStage value)
        reason: Why this stage was used, for degraded-quality warnings
        run: Coroutine factory producing the stage result
        is_valid: Overrides the chain's validity check for this stage
    """
    stage: str
    reason: str
    run: Callable[[], Awaitable[T]]
    is_valid: Callable[[T], bool] | None = None


@dataclass
class FallbackOutcome(Generic[T]):
    stage: str
    reason: str
    result: T | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.stage != FallbackStage.NONE.value


class FallbackRouter:
    """
    Health-aware provider selection and degrade-chain execution.

    Usage:
        router = FallbackRouter(health_tracker)
        provider = router.select_provider(providers)
        outcome = await router.run_chain([ChainStage(...), ...])
    """

    def __init__(self, health_tracker: ProviderHealthTracker):
        self._health = health_tracker

    @property
    def health_tracker(self) -> ProviderHealthTracker:
        return self._health

    def ordered_candidates(self, candidates: Iterable[RoutableProvider]) -> list[RoutableProvider]:
        """Healthy candidates, best first."""
        healthy = [c for c in candidates if self._health.is_healthy(c.provider_id)]
        return sorted(healthy, key=lambda c: (c.priority, -c.reliability))

    def select_provider(self, candidates: Iterable[RoutableProvider]) -> RoutableProvider | None:
        ordered = self.ordered_candidates(candidates)
        return ordered[0] if ordered else None

    def report_outcome(self, provider_id: str, success: bool, error: str | None = None) -> None:
        self._health.report_outcome(provider_id, success, error)

    async def run_chain(
        self,
        stages: Sequence[ChainStage[T]],
        is_valid: Callable[[Any], bool] = bool,
    ) -> FallbackOutcome[T]:
        """
        Run stages in order until one yields a valid result.

        Returns:
            FallbackOutcome with stage "none" when every stage failed
        """
        errors: list[str] = []
        for stage in stages:
            check = stage.is_valid or is_valid
            try:
                result = await stage.run()
            except Exception as e:
                errors.append(f"{stage.stage}: {e}")
                logger.warning("Fallback stage failed", stage=stage.stage, error=str(e), error_type=type(e).__name__)
                continue

            if check(result):
                if errors:
                    logger.info("Fallback stage selected", stage=stage.stage, reason=stage.reason, failed_stages=len(errors))
                return FallbackOutcome(stage=stage.stage, reason=stage.reason, result=result, errors=errors)

            errors.append(f"{stage.stage}: empty result")
            logger.debug("Fallback stage produced no usable result", stage=stage.stage)

        logger.error("All fallback stages failed", stages=[s.stage for s in stages], errors=errors)
        return FallbackOutcome(
            stage=FallbackStage.NONE.value,
            reason="All stages failed or were disabled",
            result=None,
            errors=errors,
        )
