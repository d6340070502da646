import uuid
from datetime import datetime, timedelta, timezone

import pytest

from waitlist.errors import ValidationError
from waitlist.utils.validation import (
    as_utc,
    normalize_page,
    require_id,
    require_non_negative,
    require_positive,
    require_text,
    total_pages,
    validate_email,
)


class TestValidateEmail:
    @pytest.mark.parametrize("email", ["a@example.com", "first.last+tag@mail.example.org"])
    def test_valid(self, email):
        assert validate_email(email)

    @pytest.mark.parametrize("email", ["", "plain", "@example.com", "a@", "a@-example.com"])
    def test_invalid(self, email):
        assert not validate_email(email)

    def test_local_part_too_long(self):
        assert not validate_email("a" * 65 + "@example.com")


class TestRequire:
    def test_zero_uuid_is_missing(self):
        with pytest.raises(ValidationError) as exc_info:
            require_id(uuid.UUID(int=0), "campaign_id")
        assert exc_info.value.field == "campaign_id"

    def test_real_uuid_passes(self):
        value = uuid.uuid4()
        assert require_id(value, "campaign_id") == value

    def test_text_is_stripped(self):
        assert require_text("  Launch  ", "name") == "Launch"

    def test_text_too_long(self):
        with pytest.raises(ValidationError):
            require_text("x" * 256, "name")

    def test_positive_with_maximum(self):
        assert require_positive(10, "batch_size", 10) == 10
        with pytest.raises(ValidationError):
            require_positive(11, "batch_size", 10)
        with pytest.raises(ValidationError):
            require_positive(0, "batch_size")

    def test_non_negative(self):
        assert require_non_negative(0, "current_batch") == 0
        with pytest.raises(ValidationError):
            require_non_negative(-1, "current_batch")

    def test_validation_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            require_text("", "subject")


class TestAsUtc:
    def test_naive_is_treated_as_utc(self):
        assert as_utc(datetime(2030, 1, 1)).tzinfo == timezone.utc

    def test_aware_is_kept(self):
        tz = timezone(timedelta(hours=2))
        value = datetime(2030, 1, 1, tzinfo=tz)
        assert as_utc(value).tzinfo == tz


class TestPagination:
    @pytest.mark.parametrize(
        "page,limit,expected",
        [
            (None, None, (1, 25, 0)),
            (0, -5, (1, 25, 0)),
            (3, 10, (3, 10, 20)),
            (2, 1000, (2, 100, 100)),
        ],
    )
    def test_normalize_page(self, page, limit, expected):
        assert normalize_page(page, limit, 25, 100) == expected

    @pytest.mark.parametrize("total,expected", [(0, 0), (1, 1), (25, 1), (26, 2)])
    def test_total_pages(self, total, expected):
        assert total_pages(total, 25) == expected
