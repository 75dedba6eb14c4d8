import re
from decimal import ROUND_HALF_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

# Type alias for money values
Money = Decimal

# Thousands separators, currency symbol and surrounding whitespace
_MONEY_NOISE = re.compile(r"[,$\s]")


def round_money(value: Union[Decimal, float, int, str]) -> Decimal:
    """
    Round monetary value to 2 decimal places using ROUND_HALF_UP.

    Examples:
        >>> round_money(10.125)
        Decimal('10.13')
        >>> round_money(10.124)
        Decimal('10.12')
        >>> round_money("10.115")
        Decimal('10.12')
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if value < 0:
        return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_DOWN)
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def parse_money(raw: str | None) -> Decimal | None:
    """
    Parse a statement amount such as "1,500.00", "$-25" or "-8000".

    Returns None for blank or non-numeric input instead of raising.

    Examples:
        >>> parse_money("$1,500.50")
        Decimal('1500.50')
        >>> parse_money("abc") is None
        True
    """
    cleaned = _MONEY_NOISE.sub("", raw or "")
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    try:
        return round_money(value)
    except InvalidOperation:
        # Too many digits to quantize in the default context
        return None
