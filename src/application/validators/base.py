"""
Base Validator Module

Abstract base class and common validation utilities.

ENTERPRISE PATTERN: Template Method Pattern
--------------------------------------------
The BaseValidator provides reusable checks (emptiness, length, whitelist)
that raise the engine's ValidationError family, so the API exception
handlers map every boundary failure to a 400 with the offending field in
`details`.
"""

from abc import ABC, abstractmethod
from typing import Any

from src.core.exceptions import ValidationError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class BaseValidator(ABC):
    """
    Abstract base validator with common validation utilities.

    Subclasses implement validate() for their request type and call the
    helpers below; each helper raises on the first failure (fail fast).
    """

    def _fail(
        self,
        message: str,
        field: str,
        error_class: type[ValidationError] = ValidationError,
        **details: Any,
    ) -> None:
        logger.debug("Validation failed", field=field, message=message)
        raise error_class(message, details={"field": field, **details})

    def validate_not_empty(
        self, value: str | None, field_name: str, error_class: type[ValidationError] = ValidationError
    ) -> None:
        """
        Validate string is not empty or whitespace-only.

        Raises:
            ValidationError (or error_class): If value is empty or whitespace
        """
        if not value or not value.strip():
            self._fail(f"{field_name} cannot be empty", field_name, error_class)

    def validate_length(
        self,
        value: str,
        field_name: str,
        min_length: int | None = None,
        max_length: int | None = None,
    ) -> None:
        """
        Validate string length is within bounds.

        Example:
            validator.validate_length(user_id, "userId", min_length=1, max_length=255)
        """
        length = len(value)
        if min_length is not None and length < min_length:
            self._fail(f"{field_name} too short (minimum {min_length} characters)", field_name, length=length)
        if max_length is not None and length > max_length:
            self._fail(f"{field_name} too long (maximum {max_length} characters)", field_name, length=length)

    def validate_whitelist(
        self,
        value: str,
        allowed_values: set[str] | frozenset[str],
        field_name: str,
        error_class: type[ValidationError] = ValidationError,
    ) -> None:
        """
        Validate value is in allowed set (whitelist).

        ENTERPRISE PATTERN: Whitelist Validation
        -----------------------------------------
        Explicitly allow known-good values and reject everything else.
        """
        if value not in allowed_values:
            self._fail(
                f"Invalid {field_name}: '{value}' not in allowed values",
                field_name,
                error_class,
                value=value,
                allowed=sorted(allowed_values),
            )

    @abstractmethod
    def validate(self, **kwargs) -> Any:
        """Validate input data, raising a ValidationError on failure."""
        pass
