"""
AI Image Providers

One class per image generation backend. Each provider turns a prompt into a
list of image references (https URLs or data: URLs) and maps backend
failures onto the engine's provider exceptions, so the health tracker and
fallback router can treat them uniformly.

Providers:
    gemini_imagen   priority 1, reliability 0.92, REST (httpx)
    openai_dalle    priority 2, reliability 0.95, openai SDK
    stability_ai    priority 3, reliability 0.88, REST (httpx)

A provider without an API key reports is_configured = False and is skipped
by the image generation service instead of being counted as a failure.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI, OpenAIError

from src.core.exceptions import (
    ProviderAPIError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

DEFAULT_DIMENSIONS = "1024x1024"


@dataclass(frozen=True)
class ImageRequest:
    prompt: str
    style: str | None = None
    dimensions: str = DEFAULT_DIMENSIONS
    quality: str = "standard"


def parse_dimensions(dimensions: str | None) -> tuple[int, int]:
    """'1024x768' -> (1024, 768); anything unparsable gives the default."""
    try:
        width, height = (int(part) for part in (dimensions or DEFAULT_DIMENSIONS).lower().split("x"))
    except ValueError:
        return 1024, 1024
    if width <= 0 or height <= 0:
        return 1024, 1024
    return width, height


def _aspect_ratio(dimensions: str) -> str:
    width, height = parse_dimensions(dimensions)
    if width == height:
        return "1:1"
    return "16:9" if width > height else "9:16"


class ImageProvider(ABC):
    """
    Base class for AI image providers.

    Subclasses implement _generate(); generate() wraps it with prompt
    adaptation, the configured check and transport error mapping.
    """

    provider_id: str = ""
    name: str = ""
    priority: int = 100
    reliability: float = 0.0
    prompt_prefix: str = ""

    def __init__(self, api_key: str | None, timeout_seconds: float = 60.0):
        self._api_key = api_key
        self._timeout = timeout_seconds

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def adapt_prompt(self, request: ImageRequest) -> str:
        prompt = f"{self.prompt_prefix} {request.prompt}".strip()
        if request.style:
            prompt = f"{prompt}, {request.style} style"
        return prompt

    async def generate(self, request: ImageRequest) -> list[str]:
        """
        Generate images for a request.

        Raises:
            ProviderUnavailableError: No API key, or the backend is unreachable
            ProviderTimeoutError: The call exceeded the provider timeout
            ProviderAPIError: The backend answered with an error
        """
        if not self.is_configured:
            raise ProviderUnavailableError(
                f"{self.name} is not configured",
                details={"provider": self.provider_id},
            )
        try:
            return await self._generate(self.adapt_prompt(request), request)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"{self.name} timed out", details={"provider": self.provider_id}) from e
        except httpx.TransportError as e:
            raise ProviderUnavailableError(
                f"Could not reach {self.name}: {e}", details={"provider": self.provider_id}
            ) from e

    async def probe(self) -> None:
        """Minimal request used by the background health sweep."""
        await self.generate(ImageRequest(prompt="simple test", quality="draft"))

    async def aclose(self) -> None:
        return None

    @abstractmethod
    async def _generate(self, prompt: str, request: ImageRequest) -> list[str]:
        pass

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        raise ProviderAPIError(
            f"{self.name} returned HTTP {response.status_code}",
            status_code=response.status_code,
            details={"provider": self.provider_id, "body": response.text[:500]},
        )


# ============================================================================
# Google Imagen
# ============================================================================


class GeminiImagenProvider(ImageProvider):
    """Imagen through the Generative Language REST API."""

    provider_id = "gemini_imagen"
    name = "Google Imagen (via Gemini)"
    priority = 1
    reliability = 0.92
    prompt_prefix = "High quality, professional"

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
    MODEL = "imagen-3.0-generate-002"

    def __init__(self, api_key: str | None, http_client: httpx.AsyncClient, timeout_seconds: float = 60.0):
        super().__init__(api_key, timeout_seconds)
        self._client = http_client

    async def _generate(self, prompt: str, request: ImageRequest) -> list[str]:
        response = await self._client.post(
            f"{self.BASE_URL}/models/{self.MODEL}:predict",
            headers={"x-goog-api-key": self._api_key},
            json={
                "instances": [{"prompt": prompt}],
                "parameters": {"sampleCount": 1, "aspectRatio": _aspect_ratio(request.dimensions)},
            },
            timeout=self._timeout,
        )
        self._raise_for_status(response)

        images = []
        for prediction in response.json().get("predictions", []):
            encoded = prediction.get("bytesBase64Encoded")
            if encoded:
                images.append(f"data:{prediction.get('mimeType', 'image/png')};base64,{encoded}")
        return images


# ============================================================================
# OpenAI DALL-E
# ============================================================================


class OpenAIDalleProvider(ImageProvider):
    """DALL-E 3 through the official AsyncOpenAI client."""

    provider_id = "openai_dalle"
    name = "OpenAI DALL-E 3"
    priority = 2
    reliability = 0.95
    prompt_prefix = "Detailed, photorealistic"

    MODEL = "dall-e-3"
    SIZES = ("1024x1024", "1792x1024", "1024x1792")

    def __init__(self, api_key: str | None, timeout_seconds: float = 60.0, client: AsyncOpenAI | None = None):
        super().__init__(api_key, timeout_seconds)
        self._client = client
        if self._client is None and api_key:
            # Retries are handled by the fallback chain
            self._client = AsyncOpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=0)

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    async def _generate(self, prompt: str, request: ImageRequest) -> list[str]:
        size = request.dimensions if request.dimensions in self.SIZES else "1024x1024"
        try:
            result = await self._client.images.generate(
                model=self.MODEL,
                prompt=prompt,
                size=size,
                quality="hd" if request.quality == "high" else "standard",
                n=1,
            )
        except APITimeoutError as e:
            raise ProviderTimeoutError("OpenAI image request timed out", details={"provider": self.provider_id}) from e
        except APIConnectionError as e:
            raise ProviderUnavailableError("Could not connect to OpenAI", details={"provider": self.provider_id}) from e
        except APIStatusError as e:
            raise ProviderAPIError(
                f"OpenAI API returned an error: {e.message}",
                status_code=e.status_code,
                details={"provider": self.provider_id},
            ) from e
        except OpenAIError as e:
            raise ProviderAPIError(f"OpenAI error: {e}", details={"provider": self.provider_id}) from e

        images = []
        for item in result.data or []:
            if item.url:
                images.append(item.url)
            elif item.b64_json:
                images.append(f"data:image/png;base64,{item.b64_json}")
        return images

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()


# ============================================================================
# Stability AI
# ============================================================================


class StabilityAIProvider(ImageProvider):
    """Stable Image Core through the Stability v2beta REST API."""

    provider_id = "stability_ai"
    name = "Stability AI SDXL"
    priority = 3
    reliability = 0.88
    prompt_prefix = "Artistic, high resolution"

    URL = "https://api.stability.ai/v2beta/stable-image/generate/core"

    def __init__(self, api_key: str | None, http_client: httpx.AsyncClient, timeout_seconds: float = 60.0):
        super().__init__(api_key, timeout_seconds)
        self._client = http_client

    async def _generate(self, prompt: str, request: ImageRequest) -> list[str]:
        # The endpoint only accepts multipart/form-data
        response = await self._client.post(
            self.URL,
            headers={"Authorization": f"Bearer {self._api_key}", "Accept": "application/json"},
            data={
                "prompt": prompt,
                "output_format": "png",
                "aspect_ratio": _aspect_ratio(request.dimensions),
            },
            files={"none": (None, "")},
            timeout=self._timeout,
        )
        self._raise_for_status(response)

        payload = response.json()
        if payload.get("finish_reason") == "CONTENT_FILTERED":
            raise ProviderAPIError(
                "Stability AI filtered the prompt",
                status_code=response.status_code,
                details={"provider": self.provider_id},
            )
        image = payload.get("image")
        return [f"data:image/png;base64,{image}"] if image else []
