"""
Money helpers.

Amounts are Decimal inside the engine; scale factors are exact
Fractions so that base * pool factor * global factor never rounds above
a cap. Strings are produced only at the output boundary.
"""

import math
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from fractions import Fraction

ZERO = Decimal("0")
CENT = Decimal("0.01")
FACTOR_PLACES = Decimal("0.0000000001")
DISPLAY_FACTOR_PLACES = Decimal("0.0001")


def quantize_money(amount: Decimal) -> Decimal:
    """
    Round an unscaled commission amount to cents (half up).

    Args:
        amount: Raw amount

    Returns:
        Amount with 2 decimal places
    """
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def floor_money(value: Decimal | Fraction) -> Decimal:
    """
    Round a non-negative scaled amount down to cents.

    Rounding down keeps every pool and the grand total at or below its cap.

    Example:
        >>> floor_money(Fraction(200000, 11))
        Decimal('18181.81')
    """
    cents = math.floor(Fraction(value) * 100)
    return (Decimal(cents) / 100).quantize(CENT)


def fraction_to_decimal(value: Fraction, places: Decimal = FACTOR_PLACES) -> Decimal:
    """Convert an exact factor to a Decimal for storage (rounded down)."""
    return (Decimal(value.numerator) / Decimal(value.denominator)).quantize(
        places, rounding=ROUND_DOWN
    )


def format_money(amount: Decimal) -> str:
    """
    Render an amount as a fixed 2-decimal string.

    Example:
        >>> format_money(Decimal("125.5"))
        '125.50'
    """
    quantized = quantize_money(amount)
    if quantized == ZERO:
        quantized = abs(quantized)
    return f"{quantized:f}"


def format_factor(value: Fraction | Decimal) -> str:
    """
    Render a scale factor with 2 to 4 decimals.

    Example:
        >>> format_factor(Fraction(40000, 41000))
        '0.9756'
        >>> format_factor(Fraction(1))
        '1.00'
    """
    if isinstance(value, Fraction):
        value = Decimal(value.numerator) / Decimal(value.denominator)
    text = f"{value.quantize(DISPLAY_FACTOR_PLACES, rounding=ROUND_HALF_UP):f}"
    whole, _, decimals = text.partition(".")
    decimals = decimals.rstrip("0").ljust(2, "0")
    return f"{whole}.{decimals}"


def to_decimal(value: object, field: str = "value") -> Decimal:
    """
    Coerce a stored numeric value to Decimal.

    Raises:
        ValueError: If the value is not numeric
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field} must be numeric, got {value!r}")
    if isinstance(value, float):
        return Decimal(str(value))
    try:
        return Decimal(value)  # type: ignore[arg-type]
    except (ArithmeticError, TypeError, ValueError) as e:
        raise ValueError(f"{field} must be numeric, got {value!r}") from e
