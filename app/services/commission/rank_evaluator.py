"""
Rank evaluator.

Scans the rank table from the highest level down; a member qualifies for
the first level whose thresholds are all met. The stored rank is only
lowered under the RECALCULATED policy.
"""

from collections import defaultdict
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from decimal import Decimal

from app.config.business_constants import UNRANKED_LEVEL
from app.services.commission.config import CommissionConfig, RankPolicy, RankRule
from app.services.commission.inputs import MemberSnapshot
from app.services.commission.tree import sponsor_chain
from app.utils.exceptions import TreeIntegrityError
from app.utils.money import format_money

ZERO = Decimal("0")


@dataclass(frozen=True)
class RankMetrics:
    """Raw metric values a rank decision was based on."""

    personal_sales: Decimal = ZERO
    team_sales: Decimal = ZERO
    left_leg_volume: Decimal = ZERO
    right_leg_volume: Decimal = ZERO
    hashrate_ths: Decimal = ZERO
    direct_referrals: int = 0

    def to_dict(self) -> dict[str, str | int]:
        """JSON-safe snapshot for rank history rows."""
        data: dict[str, str | int] = {}
        for key, value in asdict(self).items():
            if isinstance(value, Decimal):
                data[key] = (
                    f"{value.normalize():f}" if key == "hashrate_ths" else format_money(value)
                )
            else:
                data[key] = value
        return data


@dataclass(frozen=True)
class RankEvaluation:
    """Outcome of evaluating one member."""

    user_id: int
    stored_level: int
    qualified_level: int
    effective_level: int
    metrics: RankMetrics

    @property
    def changed(self) -> bool:
        return self.effective_level != self.stored_level


def meets(rule: RankRule, metrics: RankMetrics) -> bool:
    """Check every threshold of a rank."""
    return (
        metrics.personal_sales >= rule.min_personal_sales
        and metrics.team_sales >= rule.min_team_sales
        and metrics.left_leg_volume >= rule.min_left_leg_volume
        and metrics.right_leg_volume >= rule.min_right_leg_volume
        and metrics.hashrate_ths >= rule.min_hashrate_ths
        and metrics.direct_referrals >= rule.min_direct_referrals
    )


class RankEvaluator:
    """Qualifies members against the configured rank table."""

    def __init__(self, config: CommissionConfig) -> None:
        self.config = config
        self._descending = sorted(config.ranks, key=lambda r: r.level, reverse=True)

    def qualify(self, metrics: RankMetrics) -> int:
        """Highest level whose thresholds are all met (0 if none)."""
        for rule in self._descending:
            if meets(rule, metrics):
                return rule.level
        return UNRANKED_LEVEL

    def evaluate(
        self, user_id: int, stored_level: int, metrics: RankMetrics
    ) -> RankEvaluation:
        """
        Evaluate one member.

        Args:
            user_id: Member
            stored_level: Rank currently stored for the member
            metrics: Metric values

        Returns:
            RankEvaluation with the qualifying and effective levels
        """
        qualified = self.qualify(metrics)
        if self.config.rank_policy is RankPolicy.STICKY:
            effective = max(stored_level, qualified)
        else:
            effective = qualified
        return RankEvaluation(
            user_id=user_id,
            stored_level=stored_level,
            qualified_level=qualified,
            effective_level=effective,
            metrics=metrics,
        )


def collect_metrics(
    members: Mapping[int, MemberSnapshot],
    sponsors: Mapping[int, int],
    prior_sales: Mapping[int, Decimal],
    week_sales: Mapping[int, Decimal],
    posted_volume: Mapping[int, tuple[Decimal, Decimal]],
) -> dict[int, RankMetrics]:
    """
    Build rank metrics for every member.

    Personal sales are lifetime eligible sales including this week. Team
    sales sum the personal sales of every member below in the sponsor tree.
    Leg volumes are the stored cumulative volumes plus this week's posted
    volume.

    Args:
        members: Members by ID
        sponsors: referee -> sponsor
        prior_sales: Sales before this week
        week_sales: Sales of this week
        posted_volume: user -> (left, right) posted this week

    Returns:
        Metrics keyed by user ID
    """
    personal = {
        uid: prior_sales.get(uid, ZERO) + week_sales.get(uid, ZERO)
        for uid in members
    }

    team: dict[int, Decimal] = defaultdict(lambda: ZERO)
    referrals: dict[int, int] = defaultdict(int)
    for uid in members:
        sponsor = sponsors.get(uid)
        if sponsor is not None:
            referrals[sponsor] += 1
        if personal[uid] == ZERO:
            continue
        try:
            for _, ancestor in sponsor_chain(sponsors, uid):
                team[ancestor] += personal[uid]
        except TreeIntegrityError:
            # Broken chains are excluded from the run before ranks matter
            continue

    metrics: dict[int, RankMetrics] = {}
    for uid, member in members.items():
        left, right = posted_volume.get(uid, (ZERO, ZERO))
        metrics[uid] = RankMetrics(
            personal_sales=personal[uid],
            team_sales=team[uid],
            left_leg_volume=member.left_cumulative + left,
            right_leg_volume=member.right_cumulative + right,
            hashrate_ths=member.hashrate_ths,
            direct_referrals=referrals[uid],
        )
    return metrics
