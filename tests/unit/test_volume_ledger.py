"""
Tests for the binary volume ledger.

Tests cover:
- Ghost credit contribution under both expiry policies
- Posting sales up the binary tree
- Carry-forward limits, inactivity and age write-offs
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from app.models.enums import Leg
from app.services.commission.config import GhostExpiryPolicy
from app.services.commission.inputs import CarryBalance, MemberSnapshot
from app.services.commission.volume_ledger import BinaryVolumeLedger, ghost_contribution
from tests.factories import WEEK, at, ghost, make_config, sale, small_network


class TestGhostContribution:
    """Test ghost volume counted for a week."""

    def test_full_week(self):
        """Test a credit active all week counts in full."""
        credit = ghost(1, 1, "700", at(WEEK))
        assert ghost_contribution(credit, WEEK, GhostExpiryPolicy.PRORATED) == Decimal("700")

    def test_prorated_start_mid_week(self):
        """Test a credit starting Thursday counts 4/7."""
        credit = ghost(1, 1, "700", at(WEEK + timedelta(days=3)))
        assert ghost_contribution(credit, WEEK, GhostExpiryPolicy.PRORATED) == Decimal("400.00")

    def test_prorated_expiry_mid_week(self):
        """Test a credit expiring Sunday counts 6/7."""
        credit = ghost(1, 1, "700", at(date(2025, 1, 2)))
        assert ghost_contribution(credit, WEEK, GhostExpiryPolicy.PRORATED) == Decimal("600.00")

    def test_all_or_nothing_expiry_mid_week(self):
        """Test a credit expiring before week end counts nothing."""
        credit = ghost(1, 1, "700", at(date(2025, 1, 2)))
        assert ghost_contribution(credit, WEEK, GhostExpiryPolicy.ALL_OR_NOTHING) == Decimal("0")

    def test_all_or_nothing_start_mid_week(self):
        """Test a credit alive at week end counts in full."""
        credit = ghost(1, 1, "700", at(WEEK + timedelta(days=3)))
        assert ghost_contribution(credit, WEEK, GhostExpiryPolicy.ALL_OR_NOTHING) == Decimal("700")

    @pytest.mark.parametrize("policy", list(GhostExpiryPolicy))
    def test_expiring_exactly_at_week_end(self, policy):
        """Test a credit expiring at the week boundary counts in full."""
        credit = ghost(1, 1, "700", at(date(2025, 1, 3)))
        assert credit.expires_at == at(WEEK + timedelta(days=7))
        assert ghost_contribution(credit, WEEK, policy) == Decimal("700")

    @pytest.mark.parametrize("policy", list(GhostExpiryPolicy))
    def test_no_overlap(self, policy):
        """Test credits outside the week count nothing."""
        later = ghost(1, 1, "700", at(WEEK + timedelta(days=7)))
        earlier = ghost(2, 1, "700", at(date(2024, 12, 20)))
        assert ghost_contribution(later, WEEK, policy) == Decimal("0")
        assert ghost_contribution(earlier, WEEK, policy) == Decimal("0")

    def test_ledger_adds_ghost_to_leg(self, config):
        """Test the ledger applies credits to the credited leg."""
        ledger = BinaryVolumeLedger(
            WEEK,
            {1: MemberSnapshot(user_id=1)},
            config,
            ghost_credits=[ghost(1, 1, "300", at(WEEK), leg=Leg.RIGHT)],
        )
        node = ledger.node(1)
        assert node.right.ghost == Decimal("300")
        assert node.weak_leg is Leg.LEFT


class TestPostSales:
    """Test posting sales to binary ancestors."""

    def test_every_ancestor_gets_volume(self, config):
        """Test sales reach all ancestors on the right legs."""
        inputs = small_network()
        ledger = BinaryVolumeLedger(WEEK, inputs.members, config)
        failures = ledger.post_sales(inputs.transactions, inputs.binary_parents)

        assert failures == {}
        assert ledger.node(1).left.posted == Decimal("1400")
        assert ledger.node(1).right.posted == Decimal("600")
        assert ledger.node(2).left.posted == Decimal("400")
        assert ledger.node(4).is_empty

    def test_broken_walk_posts_nothing(self, config):
        """Test a cycle above a buyer posts no volume anywhere."""
        members = {uid: MemberSnapshot(user_id=uid) for uid in (1, 2, 3)}
        parents = {3: (1, Leg.LEFT), 1: (2, Leg.LEFT), 2: (1, Leg.RIGHT)}
        ledger = BinaryVolumeLedger(WEEK, members, config)
        failures = ledger.post_sales([sale(1, 3, "100")], parents)

        assert 3 in failures
        assert all(node.is_empty for node in ledger.nodes())

    def test_excluded_members_have_no_node(self, config):
        """Test excluded members are not tracked."""
        members = {uid: MemberSnapshot(user_id=uid) for uid in (1, 2)}
        ledger = BinaryVolumeLedger(WEEK, members, config, excluded={2: "sponsor cycle"})
        assert ledger.node(2) is None
        assert [n.user_id for n in ledger.nodes()] == [1]


class TestCarryForward:
    """Test carry-out computation."""

    def test_remaining_volume_carries(self, config):
        """Test unpaid volume carries on both legs."""
        inputs = small_network()
        ledger = BinaryVolumeLedger(WEEK, inputs.members, config)
        ledger.post_sales(inputs.transactions, inputs.binary_parents)

        rows = {row.leg: row for row in ledger.close_week(1, Decimal("600"))}
        assert rows[Leg.LEFT].carry_out == Decimal("800")
        assert rows[Leg.LEFT].carry_since == WEEK
        assert rows[Leg.RIGHT].carry_out == Decimal("0")
        assert rows[Leg.RIGHT].is_weak

    def test_carry_limited_by_weak_leg_average(self):
        """Test carry above multiplier x average weak volume is discarded."""
        config = make_config(settings_overrides={"carry_limit_floor": Decimal("0")})
        ledger = BinaryVolumeLedger(
            WEEK,
            {1: MemberSnapshot(user_id=1)},
            config,
            carry_in={(1, Leg.LEFT): CarryBalance(Decimal("10000"), date(2024, 12, 30))},
            weak_leg_history={1: [Decimal("100"), Decimal("100"), Decimal("100")]},
        )
        ledger.node(1).right.posted = Decimal("100")

        assert ledger.carry_limit(ledger.node(1)) == Decimal("500")
        rows = {row.leg: row for row in ledger.close_week(1, Decimal("100"))}
        assert rows[Leg.LEFT].carry_out == Decimal("500")
        assert rows[Leg.LEFT].flushed_out == Decimal("9400")
        assert rows[Leg.LEFT].carry_since == date(2024, 12, 30)

    def test_floor_without_weak_volume(self, config):
        """Test a member with no weak-leg history carries up to the floor."""
        ledger = BinaryVolumeLedger(
            WEEK,
            {1: MemberSnapshot(user_id=1)},
            config,
            carry_in={(1, Leg.LEFT): CarryBalance(Decimal("5000"), date(2024, 12, 30))},
        )
        assert ledger.carry_limit(ledger.node(1)) == Decimal("2500")
        rows = {row.leg: row for row in ledger.close_week(1, Decimal("0"))}
        assert rows[Leg.LEFT].carry_out == Decimal("2500")
        assert rows[Leg.LEFT].flushed_out == Decimal("2500")

    def test_floor_is_configurable(self):
        """Test the floor comes from commission settings."""
        config = make_config(settings_overrides={"carry_limit_floor": Decimal("400")})
        ledger = BinaryVolumeLedger(WEEK, {1: MemberSnapshot(user_id=1)}, config)
        assert ledger.carry_limit(ledger.node(1)) == Decimal("400")

    def test_inactive_member_flushes_carry(self, config):
        """Test carry is written off after the inactivity window."""
        member = MemberSnapshot(user_id=1, last_active_week=WEEK - timedelta(weeks=8))
        ledger = BinaryVolumeLedger(
            WEEK,
            {1: member},
            config,
            carry_in={(1, Leg.LEFT): CarryBalance(Decimal("900"), date(2024, 12, 30))},
        )
        node = ledger.node(1)
        assert node.inactive
        assert node.left.carry_in == Decimal("0")
        assert node.left.flushed_in == Decimal("900")

        node.left.posted = Decimal("50")
        rows = {row.leg: row for row in ledger.close_week(1, Decimal("0"))}
        assert rows[Leg.LEFT].carry_out == Decimal("0")
        assert rows[Leg.LEFT].flushed_out == Decimal("50")

    def test_purchase_keeps_member_active(self, config):
        """Test buying this week resets inactivity."""
        member = MemberSnapshot(user_id=1, last_active_week=WEEK - timedelta(weeks=20))
        ledger = BinaryVolumeLedger(WEEK, {1: member}, config, active_this_week=[1])
        assert not ledger.node(1).inactive

    def test_old_carry_flushed(self, config):
        """Test carry older than the flush window is written off."""
        ledger = BinaryVolumeLedger(
            WEEK,
            {1: MemberSnapshot(user_id=1)},
            config,
            carry_in={(1, Leg.RIGHT): CarryBalance(Decimal("300"), WEEK - timedelta(days=182))},
        )
        assert ledger.node(1).right.carry_in == Decimal("0")
        assert ledger.node(1).right.flushed_in == Decimal("300")

    def test_empty_node_has_no_rows(self, config):
        """Test members without volume produce no rows."""
        ledger = BinaryVolumeLedger(WEEK, {1: MemberSnapshot(user_id=1)}, config)
        assert ledger.close_week(1, Decimal("0")) == []

    def test_close_twice_rejected(self, config):
        """Test a node cannot be closed twice in one run."""
        ledger = BinaryVolumeLedger(WEEK, {1: MemberSnapshot(user_id=1)}, config)
        ledger.close_week(1, Decimal("0"))
        with pytest.raises(RuntimeError):
            ledger.close_week(1, Decimal("0"))


class TestGhostCarry:
    """Test ghost volume never turns into carry."""

    def test_unused_ghost_written_off(self, config):
        """Test ghost volume the payout did not consume is flushed."""
        ledger = BinaryVolumeLedger(
            WEEK,
            {1: MemberSnapshot(user_id=1)},
            config,
            ghost_credits=[ghost(1, 1, "1000", at(WEEK))],
        )
        ledger.node(1).right.posted = Decimal("200")

        rows = {row.leg: row for row in ledger.close_week(1, Decimal("200"))}
        assert rows[Leg.LEFT].ghost == Decimal("1000")
        assert rows[Leg.LEFT].carry_out == Decimal("0")
        assert rows[Leg.LEFT].flushed_out == Decimal("800")
        assert rows[Leg.RIGHT].carry_out == Decimal("0")

    def test_payout_consumes_ghost_first(self, config):
        """Test paid volume comes out of ghost before real volume."""
        ledger = BinaryVolumeLedger(
            WEEK,
            {1: MemberSnapshot(user_id=1)},
            config,
            ghost_credits=[ghost(1, 1, "300", at(WEEK))],
        )
        node = ledger.node(1)
        node.left.posted = Decimal("200")
        node.right.posted = Decimal("900")

        rows = {row.leg: row for row in ledger.close_week(1, Decimal("500"))}
        assert rows[Leg.LEFT].is_weak
        assert rows[Leg.LEFT].carry_out == Decimal("0")
        assert rows[Leg.LEFT].flushed_out == Decimal("0")
        assert rows[Leg.RIGHT].carry_out == Decimal("400")

    def test_expired_credit_stops_counting(self, config):
        """Test leg totals after the credit window drop to real volume."""
        credit = ghost(1, 1, "1000", at(WEEK))
        first = BinaryVolumeLedger(
            WEEK, {1: MemberSnapshot(user_id=1)}, config, ghost_credits=[credit]
        )
        first.node(1).right.posted = Decimal("200")
        carry = {
            (row.user_id, row.leg): CarryBalance(row.carry_out, row.carry_since)
            for row in first.close_week(1, Decimal("200"))
            if row.carry_out > 0
        }
        assert carry == {}

        next_week = WEEK + timedelta(days=7)
        second = BinaryVolumeLedger(
            next_week, {1: MemberSnapshot(user_id=1)}, config,
            carry_in=carry, ghost_credits=[credit],
        )
        assert second.node(1).left.total == Decimal("428.57")

        later = WEEK + timedelta(days=14)
        third = BinaryVolumeLedger(
            later, {1: MemberSnapshot(user_id=1)}, config,
            carry_in=carry, ghost_credits=[credit],
        )
        assert third.node(1).left.total == Decimal("0")
