"""
Image Generation Service

Produces an image for a post through the degrade chain:

    cache hit
      -> AI providers (healthy ones, priority then reliability order,
         at most IMAGE_MAX_PROVIDER_ATTEMPTS failures)
      -> stock image search (Unsplash, Pexels, Pixabay)
      -> SVG placeholder
      -> text only (no image)

Every AI call feeds ProviderHealthTracker, so repeated failures take a
provider out of rotation until a success (live or from the background probe)
brings it back. The stage that produced the result is always returned so
callers can warn about degraded quality.

Every provider call and health check first takes a slot in the provider's
"image:<provider_id>" window. A denied provider is skipped without a
health penalty.
"""

import asyncio
import hashlib
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from src.core.config.constants import IMAGE_RATE_LIMIT_RESOURCE, FallbackStage, image_operation
from src.core.exceptions import ProviderTimeoutError, RateLimitExceededError
from src.core.interfaces.clock import Clock, utcnow
from src.core.logging.logger import get_logger
from src.core.resilience.rate_limiter import SlidingWindowRateLimiter
from src.routing.fallback_router import ChainStage, FallbackRouter
from src.routing.image_providers import DEFAULT_DIMENSIONS, ImageProvider, ImageRequest
from src.routing.placeholder import render_placeholder
from src.routing.stock_images import StockImageSearch

logger = get_logger(__name__)

CAPABILITY = "image_generation"
CACHE_MAX_ENTRIES = 256


@dataclass(frozen=True)
class FallbackOptions:
    allow_stock_images: bool = True
    allow_placeholders: bool = True
    allow_text_only: bool = True


@dataclass
class ImageGenerationResult:
    """
    Outcome of one generation request.

    Attributes:
        success: False only when every enabled stage failed
        images: Image URLs or data: URLs (empty for text-only)
        provider: Provider id, or the fallback stage name
        stage: FallbackStage value that produced the result
        reason: Why a fallback stage was used (None for AI or cache)
        quality: Requested quality for AI results, "draft" for fallbacks
    """
    success: bool
    images: list[str]
    provider: str
    stage: str
    reason: str | None = None
    quality: str = "standard"
    processing_time_ms: int = 0
    cached: bool = False
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "images": self.images,
            "provider": self.provider,
            "stage": self.stage,
            "reason": self.reason,
            "quality": self.quality,
            "processing_time_ms": self.processing_time_ms,
            "cached": self.cached,
            "errors": self.errors,
        }


class ImageGenerationService:
    """
    Multi-provider image generation with health-aware fallback.

    Usage:
        service = ImageGenerationService(router, providers, stock_search)
        result = await service.generate_images("sunset over a mountain lake")
        if result.stage != "ai_provider":
            warn_user(result.reason)
    """

    def __init__(
        self,
        router: FallbackRouter,
        providers: list[ImageProvider],
        stock_search: StockImageSearch | None = None,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        metrics: Any | None = None,
        clock: Clock = utcnow,
        cache_ttl_seconds: int = 3600,
        max_provider_attempts: int = 3,
        provider_timeout_seconds: float = 60.0,
        retry_delay_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._router = router
        self._providers = {p.provider_id: p for p in providers}
        self._stock = stock_search
        self._limiter = rate_limiter
        self._metrics = metrics
        self._clock = clock
        self._cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self._max_attempts = max_provider_attempts
        self._timeout = provider_timeout_seconds
        self._retry_delay = retry_delay_seconds
        self._sleep = sleep
        self._cache: OrderedDict[str, tuple[list[str], str, datetime]] = OrderedDict()

        for provider in providers:
            router.health_tracker.register(provider.provider_id)

    # =========================================================================
    # Generation
    # =========================================================================

    async def generate_images(
        self,
        prompt: str,
        style: str | None = None,
        dimensions: str = DEFAULT_DIMENSIONS,
        quality: str = "standard",
        fallback: FallbackOptions | None = None,
    ) -> ImageGenerationResult:
        started = time.perf_counter()
        fallback = fallback or FallbackOptions()
        request = ImageRequest(prompt=prompt, style=style, dimensions=dimensions or DEFAULT_DIMENSIONS, quality=quality)

        cache_key = self._cache_key(request)
        cached = self._cache_get(cache_key)
        if cached is not None:
            images, provider = cached
            logger.debug("Image cache hit", provider=provider)
            self._record_stage(FallbackStage.CACHE.value)
            return ImageGenerationResult(
                success=True,
                images=images,
                provider=provider,
                stage=FallbackStage.CACHE.value,
                quality=quality,
                processing_time_ms=self._elapsed_ms(started),
                cached=True,
            )

        used_provider: dict[str, str] = {}

        async def ai_stage() -> list[str]:
            images, provider_id = await self._generate_with_providers(request)
            used_provider["id"] = provider_id
            return images

        stages: list[ChainStage] = [
            ChainStage(FallbackStage.AI_PROVIDER.value, "Generated by AI provider", ai_stage),
        ]
        if fallback.allow_stock_images and self._stock is not None:
            stages.append(ChainStage(
                FallbackStage.STOCK_IMAGES.value,
                "AI image generation failed, using stock images",
                self._stock_stage(prompt),
            ))
        if fallback.allow_placeholders:
            stages.append(ChainStage(
                FallbackStage.PLACEHOLDER.value,
                "AI and stock images failed, using placeholder",
                self._placeholder_stage(request),
            ))
        if fallback.allow_text_only:
            stages.append(ChainStage(
                FallbackStage.TEXT_ONLY.value,
                "All image generation methods failed, proceeding without image",
                self._text_only_stage,
                is_valid=lambda images: images is not None,
            ))

        outcome = await self._router.run_chain(stages)
        self._record_stage(outcome.stage)

        if outcome.stage == FallbackStage.AI_PROVIDER.value:
            self._cache_put(cache_key, outcome.result, used_provider["id"])
            return ImageGenerationResult(
                success=True,
                images=outcome.result,
                provider=used_provider["id"],
                stage=outcome.stage,
                quality=quality,
                processing_time_ms=self._elapsed_ms(started),
                errors=outcome.errors,
            )

        if outcome.succeeded:
            logger.warning(
                "Image generation degraded",
                stage=outcome.stage,
                reason=outcome.reason,
                errors=len(outcome.errors),
            )
            return ImageGenerationResult(
                success=True,
                images=outcome.result,
                provider=outcome.stage,
                stage=outcome.stage,
                reason=outcome.reason,
                quality="standard" if outcome.stage == FallbackStage.STOCK_IMAGES.value else "draft",
                processing_time_ms=self._elapsed_ms(started),
                errors=outcome.errors,
            )

        return ImageGenerationResult(
            success=False,
            images=[],
            provider=FallbackStage.NONE.value,
            stage=FallbackStage.NONE.value,
            reason="All image generation and fallback strategies failed",
            quality="draft",
            processing_time_ms=self._elapsed_ms(started),
            errors=outcome.errors,
        )

    async def _generate_with_providers(self, request: ImageRequest) -> tuple[list[str], str]:
        """
        Try healthy, configured providers in routing order.

        Raises:
            The last provider error once attempts run out (or RuntimeError when
            no provider was usable)
        """
        candidates = [p for p in self._providers.values() if p.is_configured]
        ordered = self._router.ordered_candidates(candidates)
        if not ordered:
            raise RuntimeError("No healthy image provider available")

        failures = 0
        last_error: Exception | None = None
        for provider in ordered:
            try:
                await self._admit(provider.provider_id)
            except RateLimitExceededError as e:
                last_error = e
                logger.info(
                    "Image provider skipped by rate limit",
                    provider=provider.provider_id,
                    retry_after_seconds=e.retry_after_seconds,
                )
                continue

            try:
                images = await self._call(provider, request)
            except Exception as e:
                failures += 1
                last_error = e
                self._router.report_outcome(provider.provider_id, False, str(e))
                logger.warning(
                    "Image provider failed",
                    provider=provider.provider_id,
                    attempt=failures,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if failures >= self._max_attempts:
                    break
                await self._sleep(self._retry_delay)
                continue

            if images:
                self._router.report_outcome(provider.provider_id, True)
                logger.info("Image generated", provider=provider.provider_id, images=len(images))
                return images, provider.provider_id
            logger.warning("Image provider returned no images", provider=provider.provider_id)

        if last_error is not None:
            raise last_error
        raise RuntimeError("Image providers returned no images")

    async def _admit(self, provider_id: str) -> None:
        """Raises RateLimitExceededError when the provider's window is full."""
        if self._limiter is None:
            return
        decision = await self._limiter.check_and_consume(IMAGE_RATE_LIMIT_RESOURCE, image_operation(provider_id))
        if not decision.allowed:
            raise RateLimitExceededError(
                f"Rate limit exceeded for {provider_id}, retry after {decision.retry_after_seconds}s",
                retry_after_seconds=decision.retry_after_seconds,
                details={"provider": provider_id},
            )

    async def _call(self, provider: ImageProvider, request: ImageRequest) -> list[str]:
        try:
            return await asyncio.wait_for(provider.generate(request), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                f"{provider.name} exceeded {self._timeout}s", details={"provider": provider.provider_id}
            ) from e

    def _stock_stage(self, prompt: str) -> Callable[[], Awaitable[list[str]]]:
        async def run() -> list[str]:
            images = await self._stock.search(prompt)
            return images[:1]
        return run

    @staticmethod
    def _placeholder_stage(request: ImageRequest) -> Callable[[], Awaitable[list[str]]]:
        async def run() -> list[str]:
            return [render_placeholder(request.prompt, request.dimensions)]
        return run

    @staticmethod
    async def _text_only_stage() -> list[str]:
        return []

    # =========================================================================
    # Health & Management
    # =========================================================================

    async def probe_providers(self) -> dict[str, bool]:
        """
        Background health sweep: one minimal request per configured provider.

        Lets unhealthy providers recover without live traffic. Providers whose
        window is full are left out of the results.
        """
        results: dict[str, bool] = {}
        for provider in self._providers.values():
            if not provider.is_configured:
                continue
            try:
                await self._admit(provider.provider_id)
            except RateLimitExceededError:
                logger.debug("Probe skipped by rate limit", provider=provider.provider_id)
                continue
            try:
                await asyncio.wait_for(provider.probe(), timeout=self._timeout)
            except Exception as e:
                self._router.report_outcome(provider.provider_id, False, str(e))
                results[provider.provider_id] = False
            else:
                self._router.report_outcome(provider.provider_id, True)
                results[provider.provider_id] = True
        logger.info("Image providers probed", results=results)
        return results

    def get_provider_status(self) -> list[dict[str, Any]]:
        status = []
        for provider in self._providers.values():
            health = self._router.health_tracker.get(provider.provider_id)
            status.append({
                "id": provider.provider_id,
                "name": provider.name,
                "priority": provider.priority,
                "reliability": provider.reliability,
                "configured": provider.is_configured,
                "is_healthy": health.is_healthy if health else True,
                "error_count": health.consecutive_errors if health else 0,
                "last_check": health.last_check.isoformat() if health and health.last_check else None,
            })
        return status

    def reset_provider_health(self) -> None:
        for provider_id in self._providers:
            self._router.health_tracker.reset(provider_id)

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Image generation cache cleared")

    async def aclose(self) -> None:
        for provider in self._providers.values():
            await provider.aclose()

    # =========================================================================
    # Cache
    # =========================================================================

    @staticmethod
    def _cache_key(request: ImageRequest) -> str:
        raw = f"{request.prompt}:{request.style or ''}:{request.dimensions}:{request.quality}"
        return hashlib.sha256(raw.encode()).hexdigest()

    def _cache_get(self, key: str) -> tuple[list[str], str] | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        images, provider, stored_at = entry
        if self._clock() - stored_at > self._cache_ttl:
            del self._cache[key]
            return None
        self._cache.move_to_end(key)
        return list(images), provider

    def _cache_put(self, key: str, images: list[str], provider: str) -> None:
        self._cache[key] = (list(images), provider, self._clock())
        self._cache.move_to_end(key)
        while len(self._cache) > CACHE_MAX_ENTRIES:
            self._cache.popitem(last=False)

    def _record_stage(self, stage: str) -> None:
        if self._metrics is not None:
            self._metrics.record_fallback_stage(CAPABILITY, stage)

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)
