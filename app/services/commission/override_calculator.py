"""
Override commission calculator.

Uplines in the sponsor tree earn a share of each downline's unscaled
binary commission, gated by rank per level.
"""

from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal

from app.config.business_constants import OVERRIDE_DEPTH
from app.services.commission.binary_calculator import BinaryResult
from app.services.commission.config import CommissionConfig
from app.services.commission.tree import sponsor_chain
from app.utils.exceptions import TreeIntegrityError
from app.utils.money import quantize_money


@dataclass(frozen=True)
class OverrideEntry:
    """Unscaled override for one upline, level and downline."""

    user_id: int
    source_user_id: int
    level: int
    rate: Decimal
    source_binary_amount: Decimal
    base_amount: Decimal

    @property
    def sort_key(self) -> tuple[int, int, int]:
        return (self.user_id, self.level, self.source_user_id)


def calculate_overrides(
    binaries: Iterable[BinaryResult],
    sponsors: Mapping[int, int],
    ranks: Mapping[int, int],
    config: CommissionConfig,
    excluded: Collection[int] = (),
) -> tuple[list[OverrideEntry], dict[int, str]]:
    """
    Pay qualified uplines on downline binary commissions.

    Args:
        binaries: Binary results with a positive base
        sponsors: referee -> sponsor
        ranks: Effective rank level per member
        config: Run configuration
        excluded: Members left out of this run

    Returns:
        (entries sorted canonically, failures by downline)
    """
    entries: list[OverrideEntry] = []
    failures: dict[int, str] = {}

    for binary in binaries:
        if binary.base_amount <= 0:
            continue
        try:
            chain = list(sponsor_chain(sponsors, binary.user_id, OVERRIDE_DEPTH))
        except TreeIntegrityError as e:
            failures[binary.user_id] = e.reason
            continue

        for level, upline in chain:
            if upline in excluded:
                continue
            if not config.override_allowed(ranks.get(upline, 0), level):
                continue
            rate = config.override_rates[level]
            amount = quantize_money(binary.base_amount * rate)
            if amount <= 0:
                continue
            entries.append(
                OverrideEntry(
                    user_id=upline,
                    source_user_id=binary.user_id,
                    level=level,
                    rate=rate,
                    source_binary_amount=binary.base_amount,
                    base_amount=amount,
                )
            )

    entries.sort(key=lambda e: e.sort_key)
    return entries, failures
