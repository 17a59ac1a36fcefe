"""
Stock Image Search

Second stage of the image degrade chain. Searches Unsplash, Pexels and
Pixabay in that order with keywords pulled from the prompt. Sources without
an API key are skipped. Search stops once 3 images have been collected.
Each request takes a slot in the "image:<source_id>" rate limit window; a
source whose window is full is skipped.
"""

import re
from abc import ABC, abstractmethod

import httpx

from src.core.config.constants import IMAGE_RATE_LIMIT_RESOURCE, image_operation
from src.core.exceptions import ProviderAPIError
from src.core.logging.logger import get_logger
from src.core.resilience.rate_limiter import SlidingWindowRateLimiter

logger = get_logger(__name__)

MAX_SEARCH_TERMS = 5
MAX_RESULTS = 3
PER_PAGE = 5

STOPWORDS = frozenset({
    "the", "and", "for", "are", "but", "not", "you", "all", "can", "had",
    "her", "was", "one", "our", "out", "day", "get", "has", "him", "his",
    "how", "man", "new", "now", "old", "see", "two", "way", "who", "boy",
    "did", "its", "let", "put", "say", "she", "too", "use",
})

_NON_WORD = re.compile(r"[^\w\s]")


def extract_search_terms(prompt: str, limit: int = MAX_SEARCH_TERMS) -> list[str]:
    """Lowercased prompt words longer than 2 characters, minus stopwords."""
    words = _NON_WORD.sub(" ", prompt.lower()).split()
    return [w for w in words if len(w) > 2 and w not in STOPWORDS][:limit]


class StockImageSource(ABC):
    source_id: str = ""
    name: str = ""

    def __init__(self, api_key: str | None):
        self.api_key = api_key

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @abstractmethod
    async def search(self, client: httpx.AsyncClient, query: str) -> list[str]:
        pass

    def _check(self, response: httpx.Response) -> None:
        if not response.is_success:
            raise ProviderAPIError(
                f"{self.name} request failed with status {response.status_code}",
                status_code=response.status_code,
                details={"source": self.source_id},
            )


class UnsplashSource(StockImageSource):
    source_id = "unsplash"
    name = "Unsplash"
    URL = "https://api.unsplash.com/search/photos"

    async def search(self, client: httpx.AsyncClient, query: str) -> list[str]:
        response = await client.get(
            self.URL,
            params={"query": query, "per_page": PER_PAGE, "orientation": "landscape"},
            headers={"Authorization": f"Client-ID {self.api_key}"},
        )
        self._check(response)
        urls = [
            (item.get("urls") or {}).get("regular") or (item.get("urls") or {}).get("full")
            for item in response.json().get("results", [])
        ]
        return [u for u in urls if u][:MAX_RESULTS]


class PexelsSource(StockImageSource):
    source_id = "pexels"
    name = "Pexels"
    URL = "https://api.pexels.com/v1/search"

    async def search(self, client: httpx.AsyncClient, query: str) -> list[str]:
        response = await client.get(
            self.URL,
            params={"query": query, "per_page": PER_PAGE},
            headers={"Authorization": self.api_key},
        )
        self._check(response)
        urls = []
        for item in response.json().get("photos", []):
            src = item.get("src") or {}
            urls.append(src.get("large2x") or src.get("large") or src.get("medium"))
        return [u for u in urls if u][:MAX_RESULTS]


class PixabaySource(StockImageSource):
    source_id = "pixabay"
    name = "Pixabay"
    URL = "https://pixabay.com/api/"

    async def search(self, client: httpx.AsyncClient, query: str) -> list[str]:
        response = await client.get(
            self.URL,
            params={"key": self.api_key, "q": query, "image_type": "photo", "per_page": PER_PAGE},
        )
        self._check(response)
        urls = [item.get("largeImageURL") or item.get("webformatURL") for item in response.json().get("hits", [])]
        return [u for u in urls if u][:MAX_RESULTS]


class StockImageSearch:
    """Searches the configured stock sources in order."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        sources: list[StockImageSource],
        rate_limiter: SlidingWindowRateLimiter | None = None,
    ):
        self._client = http_client
        self._sources = sources
        self._limiter = rate_limiter

    @classmethod
    def from_keys(
        cls,
        http_client: httpx.AsyncClient,
        unsplash_key: str | None = None,
        pexels_key: str | None = None,
        pixabay_key: str | None = None,
        rate_limiter: SlidingWindowRateLimiter | None = None,
    ) -> "StockImageSearch":
        return cls(
            http_client,
            [UnsplashSource(unsplash_key), PexelsSource(pexels_key), PixabaySource(pixabay_key)],
            rate_limiter=rate_limiter,
        )

    async def _admitted(self, source: StockImageSource) -> bool:
        if self._limiter is None:
            return True
        decision = await self._limiter.check_and_consume(IMAGE_RATE_LIMIT_RESOURCE, image_operation(source.source_id))
        if not decision.allowed:
            logger.info(
                "Stock source skipped by rate limit",
                source=source.source_id,
                retry_after_seconds=decision.retry_after_seconds,
            )
        return decision.allowed

    @property
    def sources(self) -> list[StockImageSource]:
        return list(self._sources)

    async def search(self, prompt: str) -> list[str]:
        terms = extract_search_terms(prompt)
        if not terms:
            return []
        query = " ".join(terms)

        images: list[str] = []
        for source in self._sources:
            if not source.is_configured:
                logger.debug("Skipping stock source without API key", source=source.source_id)
                continue
            if not await self._admitted(source):
                continue
            try:
                images.extend(await source.search(self._client, query))
            except (httpx.HTTPError, ProviderAPIError, ValueError) as e:
                logger.warning("Stock image search failed", source=source.source_id, error=str(e))
                continue
            if len(images) >= MAX_RESULTS:
                break

        return images[:MAX_RESULTS]
