"""
test_phone.py — Tests for phone number normalization.

Covers:
    • Local numbers with a trunk zero → country-code prefix
    • Whitespace and leading '+' handling
    • Numbers passed through unchanged
    • Empty / unusable input

Run with:
    pytest tests/test_phone.py -v
"""

from __future__ import annotations

import pytest

from backend.app.core.errors import ValidationError
from backend.app.notifications.phone import DEFAULT_COUNTRY_CODE, normalize_phone


class TestLocalNumbers:
    """Numbers starting with the trunk zero."""

    def test_eleven_digit_local_gets_prefix(self):
        assert normalize_phone("08031234567") == "2348031234567"

    def test_default_country_code_is_nigeria(self):
        assert DEFAULT_COUNTRY_CODE == "234"

    def test_custom_country_code(self):
        assert normalize_phone("08031234567", country_code="233") == "2338031234567"

    def test_longer_local_also_prefixed(self):
        assert normalize_phone("080312345678") == "23480312345678"

    def test_short_zero_number_unchanged(self):
        """Fewer than 11 digits is not treated as a local number."""
        assert normalize_phone("0803123") == "0803123"


class TestCleanup:
    """Whitespace and '+' are stripped before anything else."""

    def test_internal_whitespace_removed(self):
        assert normalize_phone("0803 123 4567") == "2348031234567"

    def test_surrounding_whitespace_removed(self):
        assert normalize_phone("  08031234567\t") == "2348031234567"

    def test_plus_prefix_stripped(self):
        assert normalize_phone("+2348031234567") == "2348031234567"

    def test_plus_with_spaces(self):
        assert normalize_phone("+234 803 123 4567") == "2348031234567"

    def test_international_passthrough(self):
        assert normalize_phone("2348031234567") == "2348031234567"


class TestInvalidInput:
    """Nothing usable left after cleanup."""

    @pytest.mark.parametrize("raw", ["", "   ", "+", " + "])
    def test_raises_validation_error(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            normalize_phone(raw)
        assert exc_info.value.details["field"] == "phone_number"
        assert exc_info.value.status_code == 422

    def test_none_raises(self):
        with pytest.raises(ValidationError):
            normalize_phone(None)  # type: ignore[arg-type]
