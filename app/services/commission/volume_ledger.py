"""
Binary volume ledger.

Tracks, per member and leg, the week's leg total:

    total = carry_in + posted volume + active ghost credit volume

and turns what the binary payout did not consume into next week's
carry-out. Ghost volume never carries. Carry is bounded three ways:

- a multiplier of the member's average weak-leg volume, with a floor
  (excess discarded)
- a write-off after a run of inactive weeks
- a write-off once the balance is older than the volume flush window
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from fractions import Fraction

from loguru import logger

from app.models.enums import Leg
from app.services.commission.config import CommissionConfig, GhostExpiryPolicy
from app.services.commission.inputs import (
    CarryBalance,
    GhostCreditRecord,
    MemberSnapshot,
    SaleRecord,
)
from app.services.commission.tree import binary_ancestors
from app.utils.datetime_utils import week_bounds, weeks_between
from app.utils.exceptions import TreeIntegrityError
from app.utils.money import floor_money

ZERO = Decimal("0")
WEEK_SECONDS = 7 * 24 * 3600


@dataclass
class LegVolume:
    """One leg of one member for the week."""

    carry_in: Decimal = ZERO
    flushed_in: Decimal = ZERO
    posted: Decimal = ZERO
    ghost: Decimal = ZERO
    carry_since: date | None = None

    @property
    def total(self) -> Decimal:
        return self.carry_in + self.posted + self.ghost


@dataclass
class NodeVolume:
    """Both legs of one member for the week."""

    user_id: int
    left: LegVolume = field(default_factory=LegVolume)
    right: LegVolume = field(default_factory=LegVolume)
    inactive: bool = False

    def leg(self, leg: Leg) -> LegVolume:
        return self.left if leg is Leg.LEFT else self.right

    @property
    def weak_leg(self) -> Leg:
        """Leg with the smaller total; left on a tie."""
        return Leg.LEFT if self.left.total <= self.right.total else Leg.RIGHT

    @property
    def weak_total(self) -> Decimal:
        return self.leg(self.weak_leg).total

    @property
    def strong_total(self) -> Decimal:
        return self.leg(self.weak_leg.other).total

    @property
    def is_empty(self) -> bool:
        return all(
            value == ZERO
            for lv in (self.left, self.right)
            for value in (lv.carry_in, lv.flushed_in, lv.posted, lv.ghost)
        )


@dataclass(frozen=True)
class VolumeRow:
    """Closed-out leg for persistence (one binary_volume row)."""

    user_id: int
    leg: Leg
    posted: Decimal
    ghost: Decimal
    carry_in: Decimal
    flushed_in: Decimal
    total: Decimal
    carry_out: Decimal
    flushed_out: Decimal
    carry_since: date | None
    is_weak: bool


def ghost_contribution(
    credit: GhostCreditRecord,
    week_start: date,
    policy: GhostExpiryPolicy,
) -> Decimal:
    """
    Volume a ghost credit adds to its leg for a week.

    PRORATED counts the share of the week the credit was active.
    ALL_OR_NOTHING counts the full amount only if the credit is still
    active when the week ends (a credit expiring exactly at the week's
    end counts in full).

    Args:
        credit: Ghost credit window
        week_start: Week key
        policy: Expiry policy

    Returns:
        Volume contributed this week
    """
    start, end = week_bounds(week_start)
    if credit.starts_at >= end or credit.expires_at <= start:
        return ZERO

    if policy is GhostExpiryPolicy.ALL_OR_NOTHING:
        return credit.amount if credit.expires_at >= end else ZERO

    active_from = max(start, credit.starts_at)
    active_until = min(end, credit.expires_at)
    seconds = int((active_until - active_from).total_seconds())
    if seconds >= WEEK_SECONDS:
        return credit.amount
    return floor_money(Fraction(credit.amount) * seconds / WEEK_SECONDS)


class BinaryVolumeLedger:
    """
    Week-scoped volume state for every member with a valid binary chain.

    Usage:
        ledger = BinaryVolumeLedger(week, members, config, carry_in=..., ...)
        ledger.post_sales(aggregate.sales, binary_parents)
        node = ledger.node(user_id)
        rows = ledger.close_week(user_id, paid_volume)
    """

    def __init__(
        self,
        week_start: date,
        members: Mapping[int, MemberSnapshot],
        config: CommissionConfig,
        carry_in: Mapping[tuple[int, Leg], CarryBalance] | None = None,
        ghost_credits: Iterable[GhostCreditRecord] = (),
        weak_leg_history: Mapping[int, list[Decimal]] | None = None,
        active_this_week: Iterable[int] = (),
        excluded: Mapping[int, str] | None = None,
    ) -> None:
        self.week_start = week_start
        self.config = config
        self._members = members
        self._history = weak_leg_history or {}
        self._excluded = excluded or {}
        self._nodes: dict[int, NodeVolume] = {}
        self._closed: set[int] = set()

        active = set(active_this_week)
        for user_id, member in members.items():
            if user_id in self._excluded:
                continue
            self._nodes[user_id] = NodeVolume(
                user_id=user_id,
                inactive=self._is_inactive(member, user_id in active),
            )

        for (user_id, leg), balance in (carry_in or {}).items():
            node = self._nodes.get(user_id)
            if node is not None and balance.amount > 0:
                self._open_carry(node, leg, balance)

        for credit in ghost_credits:
            node = self._nodes.get(credit.user_id)
            if node is None:
                continue
            node.leg(credit.leg).ghost += ghost_contribution(
                credit, week_start, config.ghost_expiry_policy
            )

    def _is_inactive(self, member: MemberSnapshot, bought_this_week: bool) -> bool:
        if bought_this_week:
            return False
        last_seen = member.last_active_week or member.joined_week
        if last_seen is None:
            return False
        return weeks_between(last_seen, self.week_start) >= self.config.inactivity_flush_weeks

    def _open_carry(self, node: NodeVolume, leg: Leg, balance: CarryBalance) -> None:
        lv = node.leg(leg)
        too_old = (
            balance.since is not None
            and (self.week_start - balance.since).days >= self.config.volume_flush_days
        )
        if node.inactive or too_old:
            lv.flushed_in += balance.amount
            logger.debug(
                f"Carry written off for user {node.user_id} ({leg})",
                extra={
                    "amount": str(balance.amount),
                    "inactive": node.inactive,
                    "since": balance.since.isoformat() if balance.since else None,
                },
            )
            return
        lv.carry_in += balance.amount
        lv.carry_since = balance.since or self.week_start

    def post_sales(
        self,
        sales: Iterable[SaleRecord],
        binary_parents: Mapping[int, tuple[int, Leg]],
    ) -> dict[int, str]:
        """
        Post each sale's amount to every binary ancestor of the buyer.

        The walk for a buyer is collected first and posted only if it
        completes, so a corrupt chain posts nothing.

        Args:
            sales: Eligible sales of the week
            binary_parents: child -> (parent, leg)

        Returns:
            Buyers whose walk failed, with reasons
        """
        failures: dict[int, str] = {}
        for sale in sales:
            if sale.user_id in self._excluded or sale.user_id in failures:
                continue
            try:
                path = list(binary_ancestors(binary_parents, sale.user_id))
            except TreeIntegrityError as e:
                failures[sale.user_id] = e.reason
                continue
            for ancestor, leg in path:
                node = self._nodes.get(ancestor)
                if node is not None:
                    node.leg(leg).posted += sale.amount
        return failures

    def node(self, user_id: int) -> NodeVolume | None:
        """Volume state of a member (None if excluded)."""
        return self._nodes.get(user_id)

    def nodes(self) -> list[NodeVolume]:
        """All tracked nodes ordered by user ID."""
        return [self._nodes[uid] for uid in sorted(self._nodes)]

    def carry_limit(self, node: NodeVolume) -> Decimal:
        """
        Max carry-out per leg for a member.

        Returns:
            multiplier * average weak-leg volume over the trailing window,
            never below the configured carry limit floor
        """
        window = self.config.carry_average_weeks
        history = list(self._history.get(node.user_id, []))[: window - 1]
        samples = [node.weak_total, *history]
        average = sum(samples, ZERO) / len(samples)
        return max(self.config.carry_multiplier * average, self.config.carry_limit_floor)

    def close_week(self, user_id: int, paid_volume: Decimal) -> list[VolumeRow]:
        """
        Compute carry-out for both legs after the binary payout.

        paid_volume is removed from both legs, ghost volume first. Ghost
        volume the payout did not consume never carries: it is written off
        so a credit stops counting once its window ends. What remains of
        carry-in and posted volume carries forward up to the limit, and
        nothing carries for an inactive member.

        Args:
            user_id: Member
            paid_volume: Weak-leg volume consumed by the payout

        Returns:
            Two rows (left, right), or none if the node has no volume
        """
        node = self._nodes[user_id]
        if user_id in self._closed:
            raise RuntimeError(f"Week already closed for user {user_id}")
        self._closed.add(user_id)

        if node.is_empty:
            return []

        paid_volume = min(paid_volume, node.weak_total)
        limit = self.carry_limit(node)
        weak_leg = node.weak_leg
        rows: list[VolumeRow] = []

        for leg in (Leg.LEFT, Leg.RIGHT):
            lv = node.leg(leg)
            unused_ghost = max(lv.ghost - paid_volume, ZERO)
            paid_from_real = paid_volume - (lv.ghost - unused_ghost)
            remaining = max(lv.carry_in + lv.posted - paid_from_real, ZERO)
            if node.inactive:
                carry_out, flushed_out = ZERO, remaining
            elif remaining > limit:
                carry_out, flushed_out = limit, remaining - limit
            else:
                carry_out, flushed_out = remaining, ZERO
            flushed_out += unused_ghost

            carry_since = None
            if carry_out > 0:
                carry_since = lv.carry_since if lv.carry_in > 0 else self.week_start

            rows.append(
                VolumeRow(
                    user_id=user_id,
                    leg=leg,
                    posted=lv.posted,
                    ghost=lv.ghost,
                    carry_in=lv.carry_in,
                    flushed_in=lv.flushed_in,
                    total=lv.total,
                    carry_out=carry_out,
                    flushed_out=flushed_out,
                    carry_since=carry_since,
                    is_weak=leg is weak_leg,
                )
            )
        return rows
