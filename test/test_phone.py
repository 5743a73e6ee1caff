"""
Tests for phone number canonicalization.
"""

import doctest

import pytest

from callcenter.telephony import phone
from callcenter.telephony.phone import PhoneNumberError, normalize, to_e164


class TestNormalize:
    def test_ten_digits_get_country_code(self) -> None:
        assert normalize("5551234567") == "15551234567"

    def test_formatting_is_stripped(self) -> None:
        assert normalize("+1 (555) 123-4567") == "15551234567"
        assert normalize("555-123-4567") == "15551234567"
        assert normalize("555.123.4567 ") == "15551234567"

    def test_international_number_kept_as_is(self) -> None:
        assert normalize("+44 20 7946 0958") == "442079460958"

    def test_too_short_is_invalid_length(self) -> None:
        with pytest.raises(PhoneNumberError) as exc_info:
            normalize("12345")

        assert exc_info.value.kind == "InvalidLength"
        assert exc_info.value.digits == "12345"
        assert "10 digits" in str(exc_info.value)

    @pytest.mark.parametrize("raw", ["", "   ", "abc-def", "+1 555 12"])
    def test_blank_or_short_inputs_rejected(self, raw: str) -> None:
        with pytest.raises(PhoneNumberError):
            normalize(raw)

    def test_none_is_rejected(self) -> None:
        with pytest.raises(PhoneNumberError):
            normalize(None)  # type: ignore[arg-type]

    @pytest.mark.parametrize(
        "raw",
        ["5551234567", "+1 (555) 123-4567", "15551234567", "442079460958", "0049 30 1234567"],
    )
    def test_result_is_digits_only(self, raw: str) -> None:
        result = normalize(raw)
        assert result.isdigit()
        assert not result.startswith("+")

    @pytest.mark.parametrize("raw", ["15551234567", "+1 555 123 4567", "442079460958"])
    def test_idempotent(self, raw: str) -> None:
        once = normalize(raw)
        assert normalize(once) == once

    @pytest.mark.parametrize(
        "raw",
        ["５５５１２３４５６７", "٥٥٥١٢٣٤٥٦٧", "+1 ５５５ ١٢٣ 4567"],
    )
    def test_non_ascii_digits_are_stripped(self, raw: str) -> None:
        # Only 0-9 survive, so numbers typed with other digit sets come up short.
        with pytest.raises(PhoneNumberError) as exc_info:
            normalize(raw)

        assert exc_info.value.digits.isascii()

    def test_mixed_digit_sets_keep_only_ascii(self) -> None:
        result = normalize("555 123 4567 ٨")

        assert result == "15551234567"
        assert result.isascii()

    def test_length_valid_garbage_is_not_rejected(self) -> None:
        # No carrier or checksum validation beyond the digit count.
        assert normalize("0000000000") == "10000000000"

    def test_doctests(self) -> None:
        failures, _ = doctest.testmod(phone)
        assert failures == 0


def test_to_e164() -> None:
    assert to_e164("15551234567") == "+15551234567"
