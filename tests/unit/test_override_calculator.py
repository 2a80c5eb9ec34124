"""Tests for override commissions."""

from decimal import Decimal

from app.models.enums import Leg
from app.services.commission.binary_calculator import BinaryResult
from app.services.commission.override_calculator import calculate_overrides


def binary(user_id, amount):
    return BinaryResult(
        user_id=user_id,
        left_volume=Decimal("0"),
        right_volume=Decimal("0"),
        weak_leg=Leg.LEFT,
        weak_volume=Decimal("0"),
        paid_volume=Decimal("0"),
        rate=Decimal("0.1"),
        cap_amount=Decimal("250"),
        cap_applied=False,
        base_amount=Decimal(amount),
    )


class TestCalculateOverrides:
    """Test rank-gated overrides on downline binaries."""

    def test_levels_gated_by_rank(self, config):
        """Test each level requires its minimum rank."""
        sponsors = {4: 3, 3: 2, 2: 1}
        ranks = {3: 1, 2: 3, 1: 4}
        entries, failures = calculate_overrides([binary(4, "200")], sponsors, ranks, config)

        paid = {(e.user_id, e.level): e.base_amount for e in entries}
        assert paid == {(3, 1): Decimal("10.00"), (2, 2): Decimal("6.00")}
        assert failures == {}

    def test_unranked_upline_gets_nothing(self, config):
        """Test unranked uplines earn no override."""
        entries, _ = calculate_overrides([binary(2, "200")], {2: 1}, {1: 0}, config)
        assert entries == []

    def test_zero_binary_skipped(self, config):
        """Test downlines without binary base are ignored."""
        entries, _ = calculate_overrides([binary(2, "0")], {2: 1}, {1: 5}, config)
        assert entries == []

    def test_excluded_upline(self, config):
        """Test excluded uplines are skipped."""
        entries, _ = calculate_overrides(
            [binary(2, "100")], {2: 1}, {1: 5}, config, excluded={1}
        )
        assert entries == []

    def test_source_amount_recorded(self, config):
        """Test the downline's unscaled binary is the base."""
        entries, _ = calculate_overrides([binary(2, "100")], {2: 1}, {1: 1}, config)
        assert entries[0].source_binary_amount == Decimal("100")
        assert entries[0].rate == Decimal("0.05")
