"""
Tests for rank evaluation.

Tests cover:
- Highest qualifying rank wins
- Sticky and recalculated policies
- Metric collection from sponsor tree and leg volumes
"""

from decimal import Decimal

from app.services.commission.inputs import MemberSnapshot
from app.services.commission.rank_evaluator import (
    RankEvaluator,
    RankMetrics,
    collect_metrics,
)
from tests.factories import make_config, rank_row

RANKS = [
    rank_row(1, "Bronze", min_personal_sales=Decimal("500")),
    rank_row(2, "Silver", min_personal_sales=Decimal("1000"), min_direct_referrals=2),
    rank_row(3, "Gold", min_personal_sales=Decimal("5000"), min_hashrate_ths=Decimal("100")),
]


class TestQualify:
    """Test threshold matching."""

    def test_highest_level_met(self, ranked_config):
        """Test the first matching level from the top is chosen."""
        evaluator = RankEvaluator(ranked_config)
        metrics = RankMetrics(personal_sales=Decimal("1500"), direct_referrals=2)
        assert evaluator.qualify(metrics) == 2

    def test_all_thresholds_required(self, ranked_config):
        """Test one missing threshold disqualifies the level."""
        evaluator = RankEvaluator(ranked_config)
        metrics = RankMetrics(personal_sales=Decimal("1500"), direct_referrals=1)
        assert evaluator.qualify(metrics) == 1

    def test_unranked(self, ranked_config):
        """Test no level met gives level 0."""
        assert RankEvaluator(ranked_config).qualify(RankMetrics()) == 0

    def test_hashrate_threshold(self):
        """Test hashrate is part of the thresholds."""
        evaluator = RankEvaluator(make_config(ranks=RANKS))
        short = RankMetrics(personal_sales=Decimal("5000"), hashrate_ths=Decimal("99.9"))
        enough = RankMetrics(personal_sales=Decimal("5000"), hashrate_ths=Decimal("100"))
        assert evaluator.qualify(short) == 1
        assert evaluator.qualify(enough) == 3


class TestPolicies:
    """Test sticky versus recalculated ranks."""

    def test_sticky_never_demotes(self):
        """Test sticky keeps a higher stored rank."""
        evaluator = RankEvaluator(make_config(ranks=RANKS, rank_policy="sticky"))
        result = evaluator.evaluate(1, 3, RankMetrics(personal_sales=Decimal("600")))
        assert result.qualified_level == 1
        assert result.effective_level == 3
        assert not result.changed

    def test_recalculated_demotes(self):
        """Test recalculated follows the qualifying level."""
        evaluator = RankEvaluator(make_config(ranks=RANKS, rank_policy="recalculated"))
        result = evaluator.evaluate(1, 3, RankMetrics(personal_sales=Decimal("600")))
        assert result.effective_level == 1
        assert result.changed

    def test_promotion_under_both_policies(self):
        """Test promotions apply regardless of policy."""
        for policy in ("sticky", "recalculated"):
            evaluator = RankEvaluator(make_config(ranks=RANKS, rank_policy=policy))
            result = evaluator.evaluate(1, 0, RankMetrics(personal_sales=Decimal("600")))
            assert result.effective_level == 1


class TestCollectMetrics:
    """Test metric collection."""

    def test_team_sales_and_referrals(self):
        """Test team sales roll up the whole sponsor chain."""
        members = {uid: MemberSnapshot(user_id=uid) for uid in (1, 2, 3, 4)}
        sponsors = {2: 1, 3: 1, 4: 2}
        metrics = collect_metrics(
            members,
            sponsors,
            prior_sales={2: Decimal("100")},
            week_sales={2: Decimal("1000"), 4: Decimal("400")},
            posted_volume={},
        )
        assert metrics[2].personal_sales == Decimal("1100")
        assert metrics[1].team_sales == Decimal("1500")
        assert metrics[2].team_sales == Decimal("400")
        assert metrics[1].direct_referrals == 2
        assert metrics[3].team_sales == Decimal("0")

    def test_leg_volume_adds_posted(self):
        """Test leg volume is cumulative plus this week's posted volume."""
        members = {
            1: MemberSnapshot(
                user_id=1,
                left_cumulative=Decimal("5000"),
                right_cumulative=Decimal("2000"),
                hashrate_ths=Decimal("12.5"),
            )
        }
        metrics = collect_metrics(
            members, {}, {}, {}, {1: (Decimal("100"), Decimal("50"))}
        )
        assert metrics[1].left_leg_volume == Decimal("5100")
        assert metrics[1].right_leg_volume == Decimal("2050")

    def test_cycle_does_not_raise(self):
        """Test corrupt sponsor chains are skipped."""
        members = {uid: MemberSnapshot(user_id=uid) for uid in (1, 2)}
        metrics = collect_metrics(
            members, {1: 2, 2: 1}, {}, {1: Decimal("10")}, {}
        )
        assert metrics[1].personal_sales == Decimal("10")

    def test_metrics_snapshot(self):
        """Test the stored snapshot uses strings for money."""
        snapshot = RankMetrics(
            personal_sales=Decimal("1500"), hashrate_ths=Decimal("12.50"), direct_referrals=3
        ).to_dict()
        assert snapshot["personal_sales"] == "1500.00"
        assert snapshot["hashrate_ths"] == "12.5"
        assert snapshot["direct_referrals"] == 3
