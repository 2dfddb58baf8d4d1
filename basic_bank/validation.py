"""
Input Validation Module

Pure, stateless checks for amount, name, phone and PIN text. Every function
takes raw input and returns a ValidationResult; none of them raise.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from .config import BankConfig, get_config
from .currency import RUPEE, ZERO, format_inr, format_number, round_money
from .errors import ErrorReason, FieldError, message_for

# Digits only, ASCII. ``\d`` would accept other scripts' digits.
_NUMBER = re.compile(r"^[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?$")
_FORMATTING = re.compile(r"[\s-]")
_DIGITS = re.compile(r"^[0-9]+$")
_FORBIDDEN_NAME_CHARS = re.compile(r"[<>&\"']")

MOBILE_PATTERNS = {
    "india_with_code": re.compile(r"^\+91[0-9]{10}$"),
    "kenya_with_code": re.compile(r"^\+254[0-9]{9}$"),
    "local_with_zero": re.compile(r"^0[0-9]{9,10}$"),
    "plain": re.compile(r"^[0-9]{10}$"),
}


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a validator: a normalized value or a rejection reason"""
    valid: bool
    value: Any = None
    reason: Optional[ErrorReason] = None
    detail: Optional[str] = None

    @classmethod
    def ok(cls, value: Any) -> "ValidationResult":
        return cls(valid=True, value=value)

    @classmethod
    def fail(cls, reason: ErrorReason, detail: Optional[str] = None,
             value: Any = None) -> "ValidationResult":
        return cls(valid=False, value=value, reason=reason, detail=detail)

    @property
    def message(self) -> Optional[str]:
        if self.valid:
            return None
        return message_for(self.reason, self.detail)

    def field_error(self, field: str) -> FieldError:
        if self.valid:
            raise ValueError("A valid result has no field error")
        return FieldError(field, self.reason, self.detail)


def validate_amount(
    raw: Optional[str],
    available_balance: Optional[Decimal] = None,
    config: Optional[BankConfig] = None
) -> ValidationResult:
    """
    Validate an amount typed by the user

    The decimal-place check runs on the text as given, so "1.999" and
    "10.000" are rejected even though rounding would accept them.

    Args:
        raw: Amount text
        available_balance: When given, amounts above it are rejected with
            INSUFFICIENT_BALANCE carrying the formatted balance
        config: Limits to apply (global config if omitted)

    Returns:
        ValidationResult whose value is the amount rounded to the cent
    """
    config = config or get_config()
    text = str(raw if raw is not None else "").strip()

    if not text:
        return ValidationResult.fail(ErrorReason.AMOUNT_REQUIRED)

    if not _NUMBER.match(text):
        return ValidationResult.fail(ErrorReason.NOT_A_NUMBER)
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return ValidationResult.fail(ErrorReason.NOT_A_NUMBER)

    if amount <= 0:
        return ValidationResult.fail(ErrorReason.NON_POSITIVE)

    if amount > config.amount_max:
        return ValidationResult.fail(
            ErrorReason.TOO_LARGE,
            detail=describe_limit(config.amount_max)
        )

    _, dot, fraction = text.partition(".")
    if dot:
        fraction = re.split(r"[eE]", fraction)[0]
        if len(fraction) > config.amount_decimals:
            return ValidationResult.fail(
                ErrorReason.TOO_MANY_DECIMALS, detail=str(config.amount_decimals)
            )

    rounded = round_money(amount)
    # Exponent notation can still land below one cent ("4e-3")
    if rounded <= ZERO:
        return ValidationResult.fail(ErrorReason.NON_POSITIVE)

    if available_balance is not None and rounded > available_balance:
        return ValidationResult.fail(
            ErrorReason.INSUFFICIENT_BALANCE,
            detail=f"Available: {format_inr(available_balance)}",
            value=rounded
        )

    return ValidationResult.ok(rounded)


def validate_name(raw: Optional[str], config: Optional[BankConfig] = None) -> ValidationResult:
    """
    Validate a display name

    The trimmed name is returned unescaped; callers escape it before storing.
    """
    config = config or get_config()
    name = (raw or "").strip()

    if not name:
        return ValidationResult.fail(ErrorReason.REQUIRED)
    if len(name) < config.name_min_length:
        return ValidationResult.fail(ErrorReason.TOO_SHORT, str(config.name_min_length), value=name)
    if len(name) > config.name_max_length:
        return ValidationResult.fail(ErrorReason.TOO_LONG, str(config.name_max_length), value=name)
    if _FORBIDDEN_NAME_CHARS.search(name):
        return ValidationResult.fail(ErrorReason.INVALID_CHARS, value=name)

    return ValidationResult.ok(name)


def normalize_phone(raw: Optional[str]) -> str:
    """Strip formatting from a phone number, keeping a leading +"""
    if not raw:
        return ""
    text = str(raw).strip()
    has_plus = text.startswith("+")
    text = _FORMATTING.sub("", text)
    if not has_plus:
        text = re.sub(r"[^0-9]", "", text)
    return text


def validate_phone(raw: Optional[str]) -> ValidationResult:
    """
    Validate a mobile number and return it normalized

    Accepted shapes after normalization: +91 and 10 digits, +254 and 9
    digits, 0 and 9-10 digits, or 10 bare digits.
    """
    text = str(raw or "").strip()

    if not text:
        return ValidationResult.fail(ErrorReason.INVALID_FORMAT)

    if text.count("+") > 1 or ("+" in text and not text.startswith("+")):
        return ValidationResult.fail(ErrorReason.MALFORMED_SIGN)

    cleaned = _FORMATTING.sub("", text)
    digits = cleaned[1:] if cleaned.startswith("+") else cleaned
    if not _DIGITS.match(digits):
        return ValidationResult.fail(ErrorReason.INVALID_CHARS)

    mobile = normalize_phone(text)
    if not any(pattern.match(mobile) for pattern in MOBILE_PATTERNS.values()):
        return ValidationResult.fail(ErrorReason.INVALID_FORMAT)

    return ValidationResult.ok(mobile)


def validate_pin(raw: Optional[str], config: Optional[BankConfig] = None) -> ValidationResult:
    """Exactly ``pin_length`` ASCII digits"""
    config = config or get_config()
    pin = (raw or "").strip()
    if len(pin) != config.pin_length or not _DIGITS.match(pin):
        return ValidationResult.fail(ErrorReason.INVALID_PIN, str(config.pin_length))
    return ValidationResult.ok(pin)


def describe_limit(amount: Decimal) -> str:
    """Whole-rupee text used in confirmation prompts"""
    return f"{RUPEE}{format_number(amount, places=0)}"
