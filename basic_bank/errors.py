"""
Error Taxonomy Module

Every failure in the bank is recoverable and leaves the data model untouched.
Failures are reported per field so a form can mark each offending input.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional


class ErrorCategory(Enum):
    """How a failure is surfaced"""
    VALIDATION = "validation"        # Per field, input format or range
    AUTH = "auth"                    # Form level
    BUSINESS_RULE = "business_rule"  # Per field, valid input the rules refuse
    CONCURRENCY = "concurrency"      # Passive notice, not a field error


class ErrorReason(Enum):
    """Reason codes for every failure path"""
    # Amount
    AMOUNT_REQUIRED = "amount_required"
    NOT_A_NUMBER = "not_a_number"
    NON_POSITIVE = "non_positive"
    TOO_LARGE = "too_large"
    TOO_MANY_DECIMALS = "too_many_decimals"
    INSUFFICIENT_BALANCE = "insufficient_balance"

    # Name
    REQUIRED = "required"
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    INVALID_CHARS = "invalid_chars"

    # Phone
    MALFORMED_SIGN = "malformed_sign"
    INVALID_FORMAT = "invalid_format"

    # PIN
    INVALID_PIN = "invalid_pin"

    # Authentication
    NO_ACCOUNT = "no_account"
    MOBILE_MISMATCH = "mobile_mismatch"
    WRONG_PIN = "wrong_pin"
    NOT_AUTHENTICATED = "not_authenticated"

    # Transfer
    SELF_TRANSFER = "self_transfer"

    # Coordinator
    ACTION_IN_FLIGHT = "action_in_flight"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES.get(self, ErrorCategory.VALIDATION)


_CATEGORIES = {
    ErrorReason.INSUFFICIENT_BALANCE: ErrorCategory.BUSINESS_RULE,
    ErrorReason.SELF_TRANSFER: ErrorCategory.BUSINESS_RULE,
    ErrorReason.NO_ACCOUNT: ErrorCategory.AUTH,
    ErrorReason.MOBILE_MISMATCH: ErrorCategory.AUTH,
    ErrorReason.WRONG_PIN: ErrorCategory.AUTH,
    ErrorReason.NOT_AUTHENTICATED: ErrorCategory.AUTH,
    ErrorReason.ACTION_IN_FLIGHT: ErrorCategory.CONCURRENCY,
}


MESSAGES = {
    ErrorReason.AMOUNT_REQUIRED: "Enter an amount",
    ErrorReason.NOT_A_NUMBER: "Enter a valid number",
    ErrorReason.NON_POSITIVE: "Amount must be positive",
    ErrorReason.TOO_LARGE: "Maximum amount is {limit}",
    ErrorReason.TOO_MANY_DECIMALS: "Maximum {limit} decimal places allowed",
    ErrorReason.INSUFFICIENT_BALANCE: "Insufficient balance",
    ErrorReason.REQUIRED: "Enter your name",
    ErrorReason.TOO_SHORT: "Name must be at least {limit} characters",
    ErrorReason.TOO_LONG: "Name cannot exceed {limit} characters",
    ErrorReason.INVALID_CHARS: "Contains invalid characters",
    ErrorReason.MALFORMED_SIGN: "Mobile contains invalid characters",
    ErrorReason.INVALID_FORMAT: "Enter a valid 10-digit mobile number",
    ErrorReason.INVALID_PIN: "PIN must be exactly {limit} digits",
    ErrorReason.NO_ACCOUNT: "No account found.",
    ErrorReason.MOBILE_MISMATCH: "Mobile number not registered.",
    ErrorReason.WRONG_PIN: "Incorrect PIN.",
    ErrorReason.NOT_AUTHENTICATED: "Please log in first.",
    ErrorReason.SELF_TRANSFER: "Cannot transfer to yourself",
    ErrorReason.ACTION_IN_FLIGHT: "Please wait...",
}

HINTS = {
    ErrorReason.NON_POSITIVE: "Example: 500 or 1000",
    ErrorReason.MALFORMED_SIGN: "Only one + allowed at start",
    ErrorReason.INVALID_FORMAT: "Format: 9876543210 or +91 9876543210",
    ErrorReason.INVALID_PIN: "Example: 1234",
    ErrorReason.NO_ACCOUNT: "Please sign up first using the Sign Up tab.",
    ErrorReason.MOBILE_MISMATCH: "Check the number or sign up.",
    ErrorReason.WRONG_PIN: "Try again or contact support.",
}


def message_for(reason: ErrorReason, detail: Optional[str] = None) -> str:
    """Render the user-facing message for a reason.

    ``detail`` fills the ``{limit}`` placeholder when the message has one and
    is appended as a suggestion otherwise.
    """
    template = MESSAGES[reason]
    if "{limit}" in template:
        return template.format(limit=detail or "")
    hint = detail or HINTS.get(reason)
    return f"{template} {hint}" if hint else template


@dataclass(frozen=True)
class FieldError:
    """A single rejected input"""
    field: str
    reason: ErrorReason
    detail: Optional[str] = None

    @property
    def message(self) -> str:
        return message_for(self.reason, self.detail)


class BankError(Exception):
    """Base class for every bank failure"""

    category = ErrorCategory.VALIDATION

    def __init__(self, errors: Iterable[FieldError]):
        self.errors: List[FieldError] = list(errors)
        if not self.errors:
            raise ValueError("BankError needs at least one field error")
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in self.errors))

    @property
    def reason(self) -> ErrorReason:
        """Reason of the first reported field"""
        return self.errors[0].reason

    @property
    def reasons(self) -> List[ErrorReason]:
        return [e.reason for e in self.errors]

    def for_field(self, field: str) -> Optional[FieldError]:
        for error in self.errors:
            if error.field == field:
                return error
        return None

    @classmethod
    def single(cls, field: str, reason: ErrorReason, detail: Optional[str] = None) -> "BankError":
        return cls([FieldError(field, reason, detail)])

    @staticmethod
    def from_field_errors(errors: Iterable[FieldError]) -> "BankError":
        """Pick the exception class for a set of form errors.

        Any format error makes the whole form a ValidationError; a form refused
        only by business rules raises BusinessRuleError.
        """
        errors = list(errors)
        if all(e.reason.category == ErrorCategory.BUSINESS_RULE for e in errors):
            return BusinessRuleError(errors)
        return ValidationError(errors)


class ValidationError(BankError):
    """Amount, name, phone or PIN format/range violation"""
    category = ErrorCategory.VALIDATION


class AuthError(BankError):
    """No account, mobile mismatch, wrong PIN or not logged in"""
    category = ErrorCategory.AUTH


class BusinessRuleError(BankError):
    """Insufficient balance or self transfer"""
    category = ErrorCategory.BUSINESS_RULE


class ConcurrencyRejection(BankError):
    """Another balance-changing action is still settling"""
    category = ErrorCategory.CONCURRENCY

    def __init__(self, errors: Optional[Iterable[FieldError]] = None):
        super().__init__(errors or [FieldError("action", ErrorReason.ACTION_IN_FLIGHT)])
