"""
Transaction aggregator.

Sums a week's eligible sales into the total sales volume (SV) and per
buyer totals. Read-only.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from app.services.commission.inputs import SaleRecord
from app.utils.datetime_utils import parse_week_key

ZERO = Decimal("0")


@dataclass
class SalesAggregate:
    """Eligible sales of one week."""

    week_start: date
    sales_volume: Decimal = ZERO
    per_user: dict[int, Decimal] = field(default_factory=dict)
    sales: list[SaleRecord] = field(default_factory=list)


def aggregate_sales(
    week_start: str | date, transactions: Iterable[SaleRecord]
) -> SalesAggregate:
    """
    Sum eligible sales for a week.

    Transactions that are not eligible, carry a non-positive amount, or
    belong to another week are ignored.

    Args:
        week_start: Week key (must be a Monday)
        transactions: Candidate transactions

    Returns:
        SalesAggregate with SV, per-user totals and the counted sales

    Raises:
        InvalidWeekError: If week_start is not a week boundary
    """
    week = parse_week_key(week_start)
    per_user: dict[int, Decimal] = defaultdict(lambda: ZERO)
    counted: list[SaleRecord] = []
    total = ZERO

    for sale in sorted(transactions, key=lambda s: s.transaction_id):
        if not sale.is_eligible or sale.week_start != week or sale.amount <= 0:
            continue
        per_user[sale.user_id] += sale.amount
        total += sale.amount
        counted.append(sale)

    return SalesAggregate(
        week_start=week,
        sales_volume=total,
        per_user=dict(per_user),
        sales=counted,
    )
