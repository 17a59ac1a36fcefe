"""
Unit Tests for ScheduleRequestValidator

Boundary checks applied before any job is created.
"""

from datetime import datetime, timezone

import pytest

from src.application.validators import ScheduleRequestValidator, parse_schedule_date
from src.core.exceptions import (
    EmptyContentError,
    InvalidScheduleDateError,
    UnsupportedPlatformError,
    ValidationError,
)


@pytest.fixture
def validator():
    return ScheduleRequestValidator()


def validate(validator, **overrides):
    fields = {
        "user_id": "user-1",
        "content": "Launch day!",
        "platforms": ["twitter", "linkedin"],
        "schedule_date": "2026-10-19T09:00:00Z",
    }
    fields.update(overrides)
    return validator.validate(**fields)


@pytest.mark.unit
class TestParseScheduleDate:
    """Test ISO-8601 parsing into aware UTC datetimes."""

    @pytest.mark.parametrize(
        "value",
        [
            "2026-10-19T09:00:00Z",
            "2026-10-19T09:00:00+00:00",
            "2026-10-19T11:00:00+02:00",
            "2026-10-19T09:00:00",
        ],
    )
    def test_equivalent_forms(self, value):
        assert parse_schedule_date(value) == datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)

    def test_result_is_utc(self):
        assert parse_schedule_date("2026-10-19T11:00:00+02:00").tzinfo == timezone.utc

    def test_datetime_passthrough(self):
        naive = datetime(2026, 10, 19, 9, 0)

        assert parse_schedule_date(naive) == datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["", "tomorrow", "2026-13-45T00:00:00Z"])
    def test_unparseable(self, value):
        with pytest.raises(InvalidScheduleDateError) as exc_info:
            parse_schedule_date(value)

        assert exc_info.value.details["field"] == "scheduleDate"


@pytest.mark.unit
class TestScheduleRequestValidator:
    """Test suite for ScheduleRequestValidator."""

    def test_valid_request_returns_run_at(self, validator):
        assert validate(validator) == datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)

    def test_missing_user_id(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validate(validator, user_id="  ")

        assert exc_info.value.details["field"] == "userId"

    def test_user_id_too_long(self, validator):
        with pytest.raises(ValidationError):
            validate(validator, user_id="u" * 256)

    def test_blank_content(self, validator):
        with pytest.raises(EmptyContentError):
            validate(validator, content="\n\t ")

    def test_no_platforms(self, validator):
        with pytest.raises(UnsupportedPlatformError):
            validate(validator, platforms=[])

    def test_unknown_platform(self, validator):
        with pytest.raises(UnsupportedPlatformError) as exc_info:
            validate(validator, platforms=["twitter", "friendster"])

        assert exc_info.value.details["value"] == "friendster"
        assert "twitter" in exc_info.value.details["allowed"]

    def test_known_tone_is_accepted(self, validator):
        validate(validator, options={"tone": "casual"})

    def test_unknown_tone(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validate(validator, options={"tone": "sarcastic"})

        assert exc_info.value.details["field"] == "options.tone"

    def test_domain_errors_are_validation_errors(self):
        for exc_class in (EmptyContentError, InvalidScheduleDateError, UnsupportedPlatformError):
            assert issubclass(exc_class, ValidationError)
