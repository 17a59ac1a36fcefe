"""
Platform Publishers

A Publisher posts adapted content to one platform with the user's
decrypted credentials. The job scheduler never branches on platform names;
it asks the PublisherRegistry for the publisher of a job's platform.

Adding a platform:
    class MastodonPublisher(Publisher):
        platform = "mastodon"

        async def publish(self, credentials, content, media):
            ...
            return PublishResult(success=True, remote_id=status_id, url=status_url)

    registry.register(MastodonPublisher())
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from src.core.exceptions import PublisherNotRegisteredError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


@dataclass
class PublishResult:
    """
    Outcome reported by a publisher.

    Attributes:
        success: Whether the platform accepted the post
        remote_id: Platform id of the created post
        url: Public URL of the created post
        error: Platform error message when unsuccessful
    """
    success: bool
    remote_id: str | None = None
    url: str | None = None
    error: str | None = None


class Publisher(ABC):
    """
    Abstract base class for platform publishers.

    Implementations may raise (timeouts, transport errors, ProviderAPIError)
    or return PublishResult(success=False); the scheduler treats both as a
    failed attempt.
    """

    platform: str = ""

    @abstractmethod
    async def publish(
        self, credentials: dict[str, Any], content: str, media: list[str]
    ) -> PublishResult:
        """Publish content (and ordered media references) to the platform."""


class PublisherRegistry:
    """
    Lookup table of publishers keyed by platform.

    Usage:
        registry = PublisherRegistry()
        registry.register(TwitterPublisher())
        publisher = registry.get("twitter")
    """

    def __init__(self, publishers: list[Publisher] | None = None):
        self._publishers: dict[str, Publisher] = {}
        for publisher in publishers or []:
            self.register(publisher)

    def register(self, publisher: Publisher) -> None:
        if not publisher.platform:
            raise ValueError(f"{type(publisher).__name__} does not declare a platform")
        if publisher.platform in self._publishers:
            logger.warning("Replacing registered publisher", platform=publisher.platform)
        self._publishers[publisher.platform] = publisher
        logger.info("Registered publisher", platform=publisher.platform, publisher=type(publisher).__name__)

    def get(self, platform: str) -> Publisher:
        publisher = self._publishers.get(platform)
        if publisher is None:
            raise PublisherNotRegisteredError(
                f"No publisher registered for platform: {platform}",
                details={"platform": platform, "registered": self.platforms()},
            )
        return publisher

    def platforms(self) -> list[str]:
        return sorted(self._publishers)

    def __contains__(self, platform: object) -> bool:
        return platform in self._publishers

    def __len__(self) -> int:
        return len(self._publishers)
