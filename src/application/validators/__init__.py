"""
Application Validators Module

Boundary validation for API requests. Validators raise the engine's
ValidationError family (src.core.exceptions), which the API maps to 400.

USAGE EXAMPLE:
--------------
    from src.application.validators import ScheduleRequestValidator

    validator = ScheduleRequestValidator()
    run_at = validator.validate(
        user_id="user-1",
        content="Launch day!",
        platforms=["twitter"],
        schedule_date="2026-10-19T09:00:00Z",
    )

DESIGN PATTERNS USED:
---------------------
1. Template Method: BaseValidator provides common checks
2. Single responsibility: one validator per request type
"""

from src.application.validators.base import BaseValidator
from src.application.validators.schedule_validator import (
    CONTENT_TONES,
    ScheduleRequestValidator,
    parse_schedule_date,
)

__all__ = [
    "BaseValidator",
    "ScheduleRequestValidator",
    "parse_schedule_date",
    "CONTENT_TONES",
]
