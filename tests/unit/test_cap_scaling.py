"""
Tests for pool and global scaling.

Tests cover:
- Pool factor min(1, cap / total)
- Global factor under both policies
- Emergency fallback when direct alone exceeds the global cap
- Per-entry rounding never exceeding caps
"""

from decimal import Decimal
from fractions import Fraction

from app.services.commission.cap_scaling import compute_scale_factors, pool_factor
from app.services.commission.config import GlobalScalePolicy
from app.utils.money import format_factor, format_money
from tests.factories import make_config

SV = Decimal("100000")


def unscaled(direct, binary, override):
    return {
        "direct": Decimal(direct),
        "binary": Decimal(binary),
        "override": Decimal(override),
    }


class TestPoolFactor:
    """Test single pool factors."""

    def test_under_cap(self):
        """Test a pool under its cap is unscaled."""
        assert pool_factor(Decimal("17000"), Decimal("15000")) == 1

    def test_over_cap(self):
        """Test a pool over its cap scales to the cap."""
        assert pool_factor(Decimal("20000"), Decimal("22000")) == Fraction(10, 11)

    def test_empty_pool(self):
        """Test an empty pool keeps factor 1."""
        assert pool_factor(Decimal("0"), Decimal("0")) == 1

    def test_zero_cap(self):
        """Test a positive pool with no cap pays nothing."""
        assert pool_factor(Decimal("0"), Decimal("10")) == 0


class TestScaleFactors:
    """Test week factors."""

    def test_direct_pool_capped_without_global_scaling(self, config):
        """Test direct pool scaled to 20% of SV and global factor stays 1."""
        factors = compute_scale_factors(SV, unscaled("22000", "15000", "2500"), config)

        assert format_money(factors.scale("direct", Decimal("22000"))) == "20000.00"
        assert format_factor(factors.global_factor) == "1.00"
        assert factors.pool_factors_json() == {
            "direct": "0.9091",
            "binary": "1.00",
            "override": "1.00",
        }

    def test_global_scaling_all_pools(self):
        """Test global factor 40000/41000 applies to every pool."""
        config = make_config(settings_overrides={"binary_pool_cap_percent": Decimal("18")})
        factors = compute_scale_factors(SV, unscaled("20000", "18000", "3000"), config)

        assert factors.global_factor == Fraction(40, 41)
        assert format_factor(factors.global_factor) == "0.9756"
        amounts = [
            factors.scale("direct", Decimal("20000")),
            factors.scale("binary", Decimal("18000")),
            factors.scale("override", Decimal("3000")),
        ]
        total = sum(amounts, Decimal("0"))
        assert total <= Decimal("40000")
        assert Decimal("40000") - total <= Decimal("0.03")

    def test_global_scaling_exclude_direct(self):
        """Test direct keeps its pool-scaled amount under EXCLUDE_DIRECT."""
        config = make_config(
            settings_overrides={"binary_pool_cap_percent": Decimal("18")},
            global_scale_policy=GlobalScalePolicy.EXCLUDE_DIRECT,
        )
        factors = compute_scale_factors(SV, unscaled("20000", "18000", "3000"), config)

        assert factors.global_factor == Fraction(20, 21)
        assert factors.combined("direct") == 1
        assert factors.scale("direct", Decimal("20000")) == Decimal("20000.00")
        total = (
            factors.scale("direct", Decimal("20000"))
            + factors.scale("binary", Decimal("18000"))
            + factors.scale("override", Decimal("3000"))
        )
        assert total <= Decimal("40000")
        assert not factors.emergency

    def test_emergency_fallback(self):
        """Test all pools scale when direct alone exceeds the global cap."""
        config = make_config(
            settings_overrides={"global_cap_percent": Decimal("15")},
            global_scale_policy=GlobalScalePolicy.EXCLUDE_DIRECT,
        )
        factors = compute_scale_factors(SV, unscaled("20000", "5000", "0"), config)

        assert factors.emergency
        assert factors.global_factor == Fraction(3, 5)
        assert factors.scale("direct", Decimal("20000")) == Decimal("12000.00")
        assert factors.scale("binary", Decimal("5000")) == Decimal("3000.00")

    def test_no_sales_volume(self, config):
        """Test nothing is payable in a week without SV."""
        factors = compute_scale_factors(Decimal("0"), unscaled("10", "5", "1"), config)
        assert factors.scale("direct", Decimal("10")) == Decimal("0.00")
        assert factors.scale("binary", Decimal("5")) == Decimal("0.00")

    def test_rounding_stays_under_pool_cap(self, config):
        """Test many small entries never sum above the pool cap."""
        factors = compute_scale_factors(
            Decimal("1000"), unscaled("300", "0", "0"), config
        )
        amounts = [factors.scale("direct", Decimal("1")) for _ in range(300)]
        assert sum(amounts, Decimal("0")) <= Decimal("200")
