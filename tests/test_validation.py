"""
Tests for input validation

Amount, name, phone and PIN rules, including the decimal-place check on the
raw text and phone normalization.
"""

import pytest
from decimal import Decimal

from basic_bank.errors import ErrorReason
from basic_bank.validation import (
    ValidationResult, describe_limit, normalize_phone, validate_amount,
    validate_name, validate_phone, validate_pin
)

from conftest import make_config


class TestValidateAmount:
    """Test amount validation"""

    def setup_method(self):
        self.config = make_config()

    def test_valid_amount_is_rounded(self):
        result = validate_amount("10.5", config=self.config)
        assert result.valid
        assert result.value == Decimal("10.50")
        assert str(result.value) == "10.50"

    def test_surrounding_whitespace_is_ignored(self):
        assert validate_amount("  250 ", config=self.config).value == Decimal("250.00")

    def test_smallest_amount(self):
        assert validate_amount("0.01", config=self.config).value == Decimal("0.01")

    @pytest.mark.parametrize("raw", ["", "   ", None])
    def test_empty_amount(self, raw):
        result = validate_amount(raw, config=self.config)
        assert not result.valid
        assert result.reason == ErrorReason.AMOUNT_REQUIRED
        assert result.message == "Enter an amount"

    @pytest.mark.parametrize("raw", ["abc", "12abc", "1,000", "0x10", "Infinity", "NaN", "1_000", "--5", "."])
    def test_not_a_number(self, raw):
        assert validate_amount(raw, config=self.config).reason == ErrorReason.NOT_A_NUMBER

    @pytest.mark.parametrize("raw", ["0", "0.00", "-5", "-0.01"])
    def test_non_positive(self, raw):
        result = validate_amount(raw, config=self.config)
        assert result.reason == ErrorReason.NON_POSITIVE
        assert "Example: 500 or 1000" in result.message

    def test_too_large(self):
        result = validate_amount("10000000.01", config=self.config)
        assert result.reason == ErrorReason.TOO_LARGE
        assert result.message == "Maximum amount is ₹1,00,00,000"

    def test_maximum_is_allowed(self):
        assert validate_amount("10000000", config=self.config).valid

    @pytest.mark.parametrize("raw", ["10.000", "1.999", "0.001", "5.125"])
    def test_too_many_decimals_on_raw_text(self, raw):
        result = validate_amount(raw, config=self.config)
        assert result.reason == ErrorReason.TOO_MANY_DECIMALS
        assert result.message == "Maximum 2 decimal places allowed"

    def test_exponent_notation(self):
        assert validate_amount("1e3", config=self.config).value == Decimal("1000.00")
        assert validate_amount("1.5e2", config=self.config).value == Decimal("150.00")

    def test_exponent_below_one_cent_is_non_positive(self):
        assert validate_amount("4e-3", config=self.config).reason == ErrorReason.NON_POSITIVE

    def test_leading_and_trailing_point(self):
        assert validate_amount(".5", config=self.config).value == Decimal("0.50")
        assert validate_amount("5.", config=self.config).value == Decimal("5.00")

    def test_insufficient_balance(self):
        result = validate_amount("600", Decimal("500.00"), self.config)
        assert result.reason == ErrorReason.INSUFFICIENT_BALANCE
        assert result.value == Decimal("600.00")
        assert result.message == "Insufficient balance Available: ₹500.00"

    def test_exact_balance_is_allowed(self):
        assert validate_amount("500", Decimal("500.00"), self.config).valid

    def test_limits_come_from_config(self):
        config = make_config(amount_max=Decimal("1000"))
        assert validate_amount("1000.01", config=config).reason == ErrorReason.TOO_LARGE


class TestValidateName:
    """Test name validation"""

    def setup_method(self):
        self.config = make_config()

    def test_name_is_trimmed(self):
        assert validate_name("  Asha Rao  ", self.config).value == "Asha Rao"

    def test_required(self):
        assert validate_name("   ", self.config).reason == ErrorReason.REQUIRED

    def test_too_short(self):
        result = validate_name("A", self.config)
        assert result.reason == ErrorReason.TOO_SHORT
        assert result.message == "Name must be at least 2 characters"

    def test_too_long(self):
        result = validate_name("x" * 51, self.config)
        assert result.reason == ErrorReason.TOO_LONG
        assert result.message == "Name cannot exceed 50 characters"

    def test_boundary_lengths(self):
        assert validate_name("Al", self.config).valid
        assert validate_name("x" * 50, self.config).valid

    @pytest.mark.parametrize("raw", ["Bob <script>", "Tom & Jerry", 'Say "hi"', "O'Brien"])
    def test_forbidden_characters(self, raw):
        assert validate_name(raw, self.config).reason == ErrorReason.INVALID_CHARS


class TestValidatePhone:
    """Test phone normalization and validation"""

    def test_indian_number_with_code(self):
        result = validate_phone("+91 98765 43210")
        assert result.valid
        assert result.value == "+919876543210"

    def test_plain_ten_digits_with_dashes(self):
        assert validate_phone("98765-43210").value == "9876543210"

    def test_kenyan_number_with_code(self):
        assert validate_phone("+254 712 345 678").value == "+254712345678"

    def test_local_number_with_zero(self):
        assert validate_phone("0712345678").valid
        assert validate_phone("09876543210").valid

    def test_seven_digits_rejected(self):
        result = validate_phone("1234567")
        assert result.reason == ErrorReason.INVALID_FORMAT
        assert "Format: 9876543210 or +91 9876543210" in result.message

    def test_empty_is_invalid_format(self):
        assert validate_phone("").reason == ErrorReason.INVALID_FORMAT
        assert validate_phone(None).reason == ErrorReason.INVALID_FORMAT

    @pytest.mark.parametrize("raw", ["++919876543210", "98765+43210", "+91+9876543210"])
    def test_malformed_sign(self, raw):
        assert validate_phone(raw).reason == ErrorReason.MALFORMED_SIGN

    @pytest.mark.parametrize("raw", ["98765abcde", "(987) 654-3210", "987.654.3210"])
    def test_invalid_characters(self, raw):
        assert validate_phone(raw).reason == ErrorReason.INVALID_CHARS

    def test_unknown_country_code_rejected(self):
        assert validate_phone("+1 415 555 0100").reason == ErrorReason.INVALID_FORMAT

    def test_normalize_phone(self):
        assert normalize_phone(" +91 98765-43210 ") == "+919876543210"
        assert normalize_phone("98765 43210") == "9876543210"
        assert normalize_phone("") == ""


class TestValidatePin:
    """Test PIN validation"""

    def setup_method(self):
        self.config = make_config()

    def test_valid_pin(self):
        assert validate_pin("1234", self.config).value == "1234"

    def test_pin_is_trimmed(self):
        assert validate_pin(" 0000 ", self.config).value == "0000"

    @pytest.mark.parametrize("raw", ["", "123", "12345", "12a4", "١٢٣٤", None])
    def test_invalid_pin(self, raw):
        result = validate_pin(raw, self.config)
        assert result.reason == ErrorReason.INVALID_PIN
        assert "PIN must be exactly 4 digits" in result.message


class TestValidationResult:
    """Test ValidationResult helpers"""

    def test_field_error(self):
        error = ValidationResult.fail(ErrorReason.INVALID_PIN, "4").field_error("pin")
        assert error.field == "pin"
        assert error.reason == ErrorReason.INVALID_PIN

    def test_valid_result_has_no_field_error(self):
        with pytest.raises(ValueError):
            ValidationResult.ok("1234").field_error("pin")

    def test_describe_limit(self):
        assert describe_limit(Decimal("10000")) == "₹10,000"
