"""Amount parsing utilities."""

from decimal import Decimal, InvalidOperation
from typing import Optional
import re

_CURRENCY = re.compile(r"[$€£¥]|\b(?:USD|EUR|GBP)\b")


def parse_amount(amount_str: str) -> Decimal:
    """Parse an amount string into a Decimal.

    Handles various formats:
    - "123.45"
    - "$123.45"
    - "-123.45"
    - "-$123.45"
    - "1,234.56"
    - "(123.45)" (negative in parentheses)
    - "123.45-" (trailing minus)

    Args:
        amount_str: Amount string

    Returns:
        Decimal amount

    Raises:
        ValueError: If amount string cannot be parsed
    """
    if amount_str is None or not str(amount_str).strip():
        raise ValueError("Empty amount string")

    # Remove whitespace
    amount_str = str(amount_str).strip()

    # Handle parentheses notation (negative)
    is_negative = False
    if amount_str.startswith("(") and amount_str.endswith(")"):
        is_negative = True
        amount_str = amount_str[1:-1]

    if amount_str.endswith("-"):
        is_negative = not is_negative
        amount_str = amount_str[:-1]

    # Remove currency symbols
    amount_str = _CURRENCY.sub("", amount_str)

    # Remove thousands separators and inner spaces
    amount_str = amount_str.replace(",", "").replace(" ", "")

    try:
        amount = Decimal(amount_str)
    except InvalidOperation:
        raise ValueError(f"Could not parse amount '{amount_str}'")
    if not amount.is_finite():
        raise ValueError(f"Could not parse amount '{amount_str}'")
    return -amount if is_negative else amount


def parse_decimal(value: Optional[object], default: Optional[Decimal] = Decimal("0")) -> Optional[Decimal]:
    """Parse an optional numeric field, falling back to ``default``.

    Numbers coming from JSON sources are accepted as-is; floats go through
    ``str`` so that ``0.1`` stays ``Decimal("0.1")``.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    try:
        return parse_amount(str(value))
    except ValueError:
        return default
