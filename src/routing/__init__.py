"""
Routing Module

Health-aware provider selection, degrade chains and the image generation
capability built on them.
"""

from src.routing.fallback_router import ChainStage, FallbackOutcome, FallbackRouter, ProviderCandidate
from src.routing.image_generation import FallbackOptions, ImageGenerationResult, ImageGenerationService
from src.routing.image_providers import (
    GeminiImagenProvider,
    ImageProvider,
    ImageRequest,
    OpenAIDalleProvider,
    StabilityAIProvider,
)
from src.routing.placeholder import render_placeholder
from src.routing.stock_images import StockImageSearch, extract_search_terms

__all__ = [
    "FallbackRouter",
    "FallbackOutcome",
    "ChainStage",
    "ProviderCandidate",
    "ImageGenerationService",
    "ImageGenerationResult",
    "FallbackOptions",
    "ImageProvider",
    "ImageRequest",
    "GeminiImagenProvider",
    "OpenAIDalleProvider",
    "StabilityAIProvider",
    "StockImageSearch",
    "extract_search_terms",
    "render_placeholder",
]
