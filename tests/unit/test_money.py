"""
Tests for money helpers.

Tests cover:
- Half-up rounding of unscaled amounts
- Floor rounding of scaled amounts
- Output formatting of amounts and scale factors
"""

from decimal import Decimal
from fractions import Fraction

import pytest

from app.utils.money import (
    floor_money,
    format_factor,
    format_money,
    fraction_to_decimal,
    quantize_money,
    to_decimal,
)


class TestRounding:
    """Test amount rounding."""

    def test_quantize_half_up(self):
        """Test half cent rounds up."""
        assert quantize_money(Decimal("10.005")) == Decimal("10.01")

    def test_quantize_below_half(self):
        """Test below half cent rounds down."""
        assert quantize_money(Decimal("10.0049")) == Decimal("10.00")

    def test_floor_never_rounds_up(self):
        """Test scaled amount is truncated to the cent."""
        assert floor_money(Fraction(200000, 11)) == Decimal("18181.81")

    def test_floor_exact_amount(self):
        """Test exact cents are kept."""
        assert floor_money(Decimal("40000")) == Decimal("40000.00")

    def test_fraction_to_decimal_truncates(self):
        """Test stored factor is rounded down to 10 places."""
        assert fraction_to_decimal(Fraction(2, 3)) == Decimal("0.6666666666")


class TestFormatting:
    """Test output strings."""

    def test_format_money_two_decimals(self):
        """Test amounts always carry two decimals."""
        assert format_money(Decimal("125.5")) == "125.50"
        assert format_money(Decimal("0")) == "0.00"

    def test_format_money_negative_zero(self):
        """Test negative zero renders without a sign."""
        assert format_money(Decimal("-0.001")) == "0.00"

    def test_format_factor_one(self):
        """Test unscaled factor renders as 1.00."""
        assert format_factor(Fraction(1)) == "1.00"

    def test_format_factor_four_decimals(self):
        """Test global factor example renders with four decimals."""
        assert format_factor(Fraction(40000, 41000)) == "0.9756"

    def test_format_factor_trims_trailing_zeros(self):
        """Test trailing zeros are trimmed down to two decimals."""
        assert format_factor(Fraction(1, 2)) == "0.50"
        assert format_factor(Fraction(20000, 22000)) == "0.9091"


class TestToDecimal:
    """Test numeric coercion of stored values."""

    def test_float_goes_through_str(self):
        """Test floats do not leak binary noise."""
        assert to_decimal(0.1) == Decimal("0.1")

    def test_int_and_string(self):
        """Test ints and numeric strings are accepted."""
        assert to_decimal(10) == Decimal("10")
        assert to_decimal("2.5") == Decimal("2.5")

    @pytest.mark.parametrize("value", [None, True, "ten", object()])
    def test_rejects_non_numeric(self, value):
        """Test non-numeric values raise ValueError."""
        with pytest.raises(ValueError):
            to_decimal(value, "binary_rate")
