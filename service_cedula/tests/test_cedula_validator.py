"""
Unit tests for cédula validation.
"""

import pytest

from service_cedula.app.validation.cedula import NationalId, validate, clean, format_display
from shared.errors import InvalidIdentifierError


class TestValidate:
    """Test cases for validate()."""

    @pytest.mark.parametrize("raw", ["00112345671", "001-1234567-1", " 001 1234567 1 ", "001.1234567.1"])
    def test_accepts_eleven_digits(self, raw):
        national_id = validate(raw)

        assert isinstance(national_id, NationalId)
        assert national_id.canonical == "00112345671"
        assert national_id.raw == raw

    def test_splits_into_parts(self):
        national_id = validate("40212345678")

        assert national_id.region == "402"
        assert national_id.sequence == "1234567"
        assert national_id.check == "8"
        assert national_id.formatted == "402-1234567-8"
        assert str(national_id) == "402-1234567-8"

    @pytest.mark.parametrize("raw", ["123", "", None, "0011234567", "001123456712", "abc-defghij-k"])
    def test_rejects_wrong_digit_count(self, raw):
        with pytest.raises(InvalidIdentifierError) as exc_info:
            validate(raw)

        assert exc_info.value.code == "CEDULA_INVALIDA"
        assert exc_info.value.http_status == 400
        assert exc_info.value.digits == clean(raw)

    def test_non_ascii_digits_are_ignored(self):
        with pytest.raises(InvalidIdentifierError):
            validate("٠٠١١٢٣٤٥٦٧١")

    def test_formatted_matches_offsets(self):
        for digits in ("00000000000", "99999999999", "12345678901"):
            national_id = validate(digits)
            assert national_id.formatted == f"{digits[0:3]}-{digits[3:10]}-{digits[10:11]}"

    def test_is_immutable(self):
        national_id = validate("00112345671")

        with pytest.raises(AttributeError):
            national_id.canonical = "99999999999"


class TestHelpers:
    """Test cases for clean() and format_display()."""

    def test_clean_strips_non_digits(self):
        assert clean("001-1234567-1") == "00112345671"
        assert clean(None) == ""

    def test_format_display(self):
        assert format_display("00112345671") == "001-1234567-1"
        assert format_display("123") == "123"
