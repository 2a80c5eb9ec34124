"""
Binary commission calculator.

    base = min(weak_total * rate, cap)

where cap is the member's rank weekly cap bounded by the hard cap. The
weak-leg volume the payout consumes is removed from both legs; volume
above the cap is left to carry forward.
"""

from dataclasses import dataclass
from decimal import Decimal

from app.models.enums import Leg
from app.services.commission.config import CommissionConfig
from app.services.commission.volume_ledger import NodeVolume
from app.utils.money import quantize_money

ZERO = Decimal("0")


@dataclass(frozen=True)
class BinaryResult:
    """Unscaled binary commission for one member."""

    user_id: int
    left_volume: Decimal
    right_volume: Decimal
    weak_leg: Leg
    weak_volume: Decimal
    paid_volume: Decimal
    rate: Decimal
    cap_amount: Decimal
    cap_applied: bool
    base_amount: Decimal


def calculate_binary(
    node: NodeVolume, rank_level: int, config: CommissionConfig
) -> BinaryResult:
    """
    Compute a member's binary payout for the week.

    Args:
        node: Member's leg totals
        rank_level: Effective rank for the week
        config: Run configuration

    Returns:
        BinaryResult (base 0 when the weak leg is empty)
    """
    weak_leg = node.weak_leg
    weak_volume = node.weak_total
    rate = config.binary_rate
    cap = config.binary_cap_for(rank_level)

    raw = weak_volume * rate
    cap_applied = raw > cap
    base = quantize_money(min(raw, cap))

    if rate == 0:
        paid_volume = ZERO
    elif cap_applied:
        paid_volume = min(cap / rate, weak_volume)
    else:
        paid_volume = weak_volume

    return BinaryResult(
        user_id=node.user_id,
        left_volume=node.left.total,
        right_volume=node.right.total,
        weak_leg=weak_leg,
        weak_volume=weak_volume,
        paid_volume=paid_volume,
        rate=rate,
        cap_amount=cap,
        cap_applied=cap_applied,
        base_amount=base,
    )
