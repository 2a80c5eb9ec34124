"""Tests for settlement lines and the weekly commitment."""

from decimal import Decimal

from app.models.enums import Leg
from app.services.commission.binary_calculator import BinaryResult
from app.services.commission.direct_calculator import DirectEntry
from app.services.commission.settlement import ScaledEntry, build_commitment, build_settlements
from tests.factories import WEEK


def direct(user_id, tx_id, amount):
    entry = DirectEntry(user_id, 99, tx_id, 1, Decimal("0.1"), Decimal(amount))
    return ScaledEntry("direct", entry, Decimal(amount))


def binary(user_id, amount, capped=False):
    entry = BinaryResult(
        user_id=user_id,
        left_volume=Decimal("0"),
        right_volume=Decimal("0"),
        weak_leg=Leg.LEFT,
        weak_volume=Decimal("0"),
        paid_volume=Decimal("0"),
        rate=Decimal("0.1"),
        cap_amount=Decimal("250"),
        cap_applied=capped,
        base_amount=Decimal(amount),
    )
    return ScaledEntry("binary", entry, Decimal(amount))


class TestBuildSettlements:
    """Test per-member aggregation."""

    def test_sums_per_pool(self):
        """Test entries fold into one line per member."""
        lines = build_settlements(
            WEEK, [direct(2, 1, "10"), direct(2, 2, "5.50"), binary(2, "20"), direct(1, 3, "1")]
        )
        assert [line.user_id for line in lines] == [1, 2]
        assert lines[1].direct == Decimal("15.50")
        assert lines[1].binary == Decimal("20")
        assert lines[1].total == Decimal("35.50")
        assert not lines[1].cap_applied

    def test_cap_flag_from_binary_cap(self):
        """Test a capped binary flags the line."""
        lines = build_settlements(WEEK, [binary(1, "250", capped=True)])
        assert lines[0].cap_applied

    def test_cap_flag_from_scaling(self):
        """Test a scaled-down entry flags the line."""
        entry = direct(1, 1, "10")
        scaled = ScaledEntry(entry.pool, entry.entry, Decimal("9"), factor_below_one=True)
        assert build_settlements(WEEK, [scaled])[0].cap_applied


class TestBuildCommitment:
    """Test leaf hashes and proofs on lines."""

    def test_lines_get_hash_and_proof(self):
        """Test every line is filled in."""
        lines = build_settlements(WEEK, [direct(uid, uid, "1") for uid in (1, 2, 3)])
        root = build_commitment(lines)
        assert root.startswith("sha256:")
        assert all(line.leaf_hash and line.proof for line in lines)
        assert lines[0].to_dict()["leafHash"] == lines[0].leaf_hash

    def test_amount_change_changes_root(self):
        """Test the root commits to amounts."""
        first = build_settlements(WEEK, [direct(1, 1, "1"), direct(2, 2, "1")])
        second = build_settlements(WEEK, [direct(1, 1, "1"), direct(2, 2, "1.01")])
        assert build_commitment(first) != build_commitment(second)
