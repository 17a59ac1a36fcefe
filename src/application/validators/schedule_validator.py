"""
Schedule Request Validator

Boundary validation for POST /scheduled-posts. Anything rejected here is
never enqueued.

VALIDATION RULES:
-----------------
1. userId present (1-255 characters)
2. content not empty
3. at least one platform, each from the supported set
4. scheduleDate parses as an ISO-8601 instant; a naive value is UTC
5. options.tone, when given, is one of the known tones
"""

from datetime import datetime, timezone
from typing import Any

from src.application.validators.base import BaseValidator
from src.core.config.constants import SUPPORTED_PLATFORMS
from src.core.exceptions import (
    EmptyContentError,
    InvalidScheduleDateError,
    UnsupportedPlatformError,
    ValidationError,
)
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

CONTENT_TONES = frozenset({"professional", "casual", "friendly", "authoritative"})
MAX_USER_ID_LENGTH = 255


def parse_schedule_date(value: str | datetime) -> datetime:
    """
    Parse an ISO-8601 schedule date into an aware UTC datetime.

    Accepts a trailing "Z" as well as explicit offsets.

    Raises:
        InvalidScheduleDateError: If the value is not ISO-8601
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = (value or "").strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidScheduleDateError(
                f"scheduleDate must be an ISO-8601 timestamp, got {value!r}",
                details={"field": "scheduleDate", "value": value},
            ) from None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class ScheduleRequestValidator(BaseValidator):
    """
    Validates a schedule request before any job is created.

    Usage:
        validator = ScheduleRequestValidator()
        run_at = validator.validate(
            user_id="user-1",
            content="Launch day!",
            platforms=["twitter", "linkedin"],
            schedule_date="2026-10-19T09:00:00Z",
        )
    """

    def validate(
        self,
        user_id: str,
        content: str,
        platforms: list[str],
        schedule_date: str | datetime,
        options: dict[str, Any] | None = None,
    ) -> datetime:
        """
        Validate the request fields.

        Returns:
            The schedule date as an aware UTC datetime

        Raises:
            ValidationError: Missing user id or bad option
            EmptyContentError: Blank content
            UnsupportedPlatformError: No platforms, or one outside the supported set
            InvalidScheduleDateError: Unparseable schedule date
        """
        self.validate_not_empty(user_id, "userId")
        self.validate_length(user_id, "userId", max_length=MAX_USER_ID_LENGTH)
        self.validate_not_empty(content, "content", EmptyContentError)

        if not platforms:
            raise UnsupportedPlatformError(
                "At least one platform is required",
                details={"field": "platforms", "supported": sorted(SUPPORTED_PLATFORMS)},
            )
        for platform in platforms:
            self.validate_whitelist(platform, SUPPORTED_PLATFORMS, "platforms", UnsupportedPlatformError)

        run_at = parse_schedule_date(schedule_date)

        tone = (options or {}).get("tone")
        if tone is not None and tone not in CONTENT_TONES:
            raise ValidationError(
                f"Invalid tone: '{tone}'",
                details={"field": "options.tone", "allowed": sorted(CONTENT_TONES)},
            )

        logger.debug("Schedule request validated", platforms=platforms, run_at=run_at.isoformat())
        return run_at
