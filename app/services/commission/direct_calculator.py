"""Direct (referral) commission calculator."""

from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal

from app.config.business_constants import DIRECT_DEPTH
from app.services.commission.config import CommissionConfig
from app.services.commission.inputs import MemberSnapshot, SaleRecord
from app.services.commission.tree import sponsor_chain
from app.utils.exceptions import TreeIntegrityError
from app.utils.money import quantize_money


@dataclass(frozen=True)
class DirectEntry:
    """Unscaled direct commission for one sponsor, tier and sale."""

    user_id: int
    source_user_id: int
    source_transaction_id: int
    tier: int
    rate: Decimal
    base_amount: Decimal

    @property
    def sort_key(self) -> tuple[int, int, int]:
        return (self.user_id, self.source_transaction_id, self.tier)


@dataclass
class DirectResult:
    entries: list[DirectEntry]
    forfeited: Decimal
    failures: dict[int, str]


def calculate_direct(
    sales: Iterable[SaleRecord],
    sponsors: Mapping[int, int],
    members: Mapping[int, MemberSnapshot],
    config: CommissionConfig,
    excluded: Collection[int] = (),
) -> DirectResult:
    """
    Pay tier 1-3 sponsors on each sale.

    A sponsor earns a tier only when their unlock level reaches it; the
    share is forfeited otherwise. Excluded members neither earn nor
    generate commissions.

    Args:
        sales: Eligible sales of the week
        sponsors: referee -> sponsor
        members: Members by ID (unlock levels)
        config: Run configuration
        excluded: Members left out of this run

    Returns:
        DirectResult with entries sorted canonically
    """
    entries: list[DirectEntry] = []
    forfeited = Decimal("0")
    failures: dict[int, str] = {}

    for sale in sales:
        if sale.user_id in excluded or sale.user_id in failures:
            continue
        try:
            chain = list(sponsor_chain(sponsors, sale.user_id, DIRECT_DEPTH))
        except TreeIntegrityError as e:
            failures[sale.user_id] = e.reason
            continue

        for tier, sponsor_id in chain:
            amount = quantize_money(sale.amount * config.direct_rates[tier])
            sponsor = members.get(sponsor_id)
            if sponsor is None or sponsor_id in excluded:
                continue
            if sponsor.unlock_level < tier:
                forfeited += amount
                continue
            if amount <= 0:
                continue
            entries.append(
                DirectEntry(
                    user_id=sponsor_id,
                    source_user_id=sale.user_id,
                    source_transaction_id=sale.transaction_id,
                    tier=tier,
                    rate=config.direct_rates[tier],
                    base_amount=amount,
                )
            )

    entries.sort(key=lambda e: e.sort_key)
    return DirectResult(entries=entries, forfeited=forfeited, failures=failures)
