"""
Money Helpers Module

Rupee amounts as Decimal with 2 decimal places. NEVER uses float for
monetary values; storage keeps them as Decimal strings.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")
RUPEE = "₹"


def round_money(value: Decimal) -> Decimal:
    """Round to the cent, half away from zero"""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def to_money(value: Union[str, int, Decimal]) -> Decimal:
    """
    Convert a stored or literal value to a rounded Decimal amount

    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"Refusing to build money from {type(value).__name__}")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal") from None
    if not amount.is_finite():
        raise ValueError(f"Cannot convert '{value}' to a finite amount")
    return round_money(amount)


def _group_indian(digits: str) -> str:
    # Last three digits, then groups of two (lakh/crore)
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_number(amount: Decimal, places: int = 2) -> str:
    """Format with Indian digit grouping, e.g. 1234567.5 -> 12,34,567.50"""
    quantum = Decimal(1).scaleb(-places)
    value = Decimal(amount).quantize(quantum, rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    text = f"{abs(value):.{places}f}"
    whole, _, fraction = text.partition(".")
    grouped = _group_indian(whole)
    return f"{sign}{grouped}.{fraction}" if fraction else f"{sign}{grouped}"


def format_inr(amount: Decimal) -> str:
    """Format for display, e.g. ₹1,23,456.78"""
    text = format_number(amount)
    if text.startswith("-"):
        return f"-{RUPEE}{text[1:]}"
    return f"{RUPEE}{text}"
