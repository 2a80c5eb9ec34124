"""
Settlement aggregation and commitment.

Folds a week's scaled entries into one settlement line per member and
commits to the lines with a Merkle root. Each line keeps its leaf hash
and inclusion proof so a member's payout can be verified against the
published root alone.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from app.services.commission.binary_calculator import BinaryResult
from app.services.commission.direct_calculator import DirectEntry
from app.services.commission.override_calculator import OverrideEntry
from app.utils.merkle import MerkleTree, hash_leaf, settlement_leaf
from app.utils.money import format_money

ZERO = Decimal("0")


@dataclass(frozen=True)
class ScaledEntry:
    """A commission entry with its final (scaled) amount."""

    pool: str
    entry: DirectEntry | BinaryResult | OverrideEntry
    amount: Decimal
    factor_below_one: bool = False

    @property
    def user_id(self) -> int:
        return self.entry.user_id

    @property
    def base_amount(self) -> Decimal:
        return self.entry.base_amount


@dataclass
class SettlementLine:
    """One member's settlement for the week."""

    user_id: int
    week_start: date
    direct: Decimal = ZERO
    binary: Decimal = ZERO
    override: Decimal = ZERO
    cap_applied: bool = False
    leaf_hash: str | None = None
    proof: list[list[str]] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return self.direct + self.binary + self.override

    def leaf(self) -> dict[str, Any]:
        return settlement_leaf(
            self.user_id, self.week_start, self.direct, self.binary, self.override, self.total
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "direct": format_money(self.direct),
            "binary": format_money(self.binary),
            "override": format_money(self.override),
            "total": format_money(self.total),
            "capApplied": self.cap_applied,
            "leafHash": self.leaf_hash,
        }


def build_settlements(
    week_start: date, entries: Iterable[ScaledEntry]
) -> list[SettlementLine]:
    """
    Aggregate scaled entries per member.

    A line is flagged cap_applied when the member's binary hit its rank
    cap or any of their entries was scaled down.

    Returns:
        Lines sorted by user ID
    """
    lines: dict[int, SettlementLine] = {}
    totals: dict[int, dict[str, Decimal]] = defaultdict(
        lambda: {"direct": ZERO, "binary": ZERO, "override": ZERO}
    )

    for scaled in entries:
        line = lines.get(scaled.user_id)
        if line is None:
            line = lines[scaled.user_id] = SettlementLine(scaled.user_id, week_start)
        totals[scaled.user_id][scaled.pool] += scaled.amount
        if scaled.factor_below_one:
            line.cap_applied = True
        if isinstance(scaled.entry, BinaryResult) and scaled.entry.cap_applied:
            line.cap_applied = True

    for user_id, line in lines.items():
        line.direct = totals[user_id]["direct"]
        line.binary = totals[user_id]["binary"]
        line.override = totals[user_id]["override"]

    return [lines[user_id] for user_id in sorted(lines)]


def build_commitment(lines: list[SettlementLine]) -> str:
    """
    Compute the Merkle root over settlement lines.

    Fills in each line's leaf hash and inclusion proof.

    Returns:
        Commitment root ("sha256:...")
    """
    tree = MerkleTree()
    for line in lines:
        line.leaf_hash = hash_leaf(line.leaf())
        tree.add_leaf(line.leaf_hash)

    root = tree.compute_root()
    for line in lines:
        proof = tree.inclusion_proof(line.leaf_hash)
        line.proof = proof.to_json() if proof else []
    return root
