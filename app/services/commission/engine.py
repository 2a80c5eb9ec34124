"""
Weekly commission engine.

Pure computation over a WeekInputs snapshot: no I/O, no clock. The
service layer loads inputs, runs the engine in an executor and persists
the result.

Pipeline:
    aggregate sales -> exclude corrupt chains -> volume ledger ->
    ranks -> direct | binary (parallel) -> override ->
    cap & scaling (barrier) -> settlements + commitment
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from loguru import logger

from app.services.commission.aggregator import SalesAggregate, aggregate_sales
from app.services.commission.binary_calculator import BinaryResult, calculate_binary
from app.services.commission.cap_scaling import ScaleFactors, compute_scale_factors
from app.services.commission.config import CommissionConfig
from app.services.commission.direct_calculator import (
    DirectEntry,
    DirectResult,
    calculate_direct,
)
from app.services.commission.inputs import WeekInputs
from app.services.commission.override_calculator import OverrideEntry, calculate_overrides
from app.services.commission.rank_evaluator import (
    RankEvaluation,
    RankEvaluator,
    collect_metrics,
)
from app.services.commission.settlement import (
    ScaledEntry,
    SettlementLine,
    build_commitment,
    build_settlements,
)
from app.services.commission.tree import find_broken_chains
from app.services.commission.volume_ledger import BinaryVolumeLedger, VolumeRow
from app.utils.money import format_factor, format_money

ZERO = Decimal("0")


@dataclass(frozen=True)
class ExcludedMember:
    """A member left out of the run, with the reason."""

    user_id: int
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"userId": self.user_id, "reason": self.reason}


@dataclass
class WeekResult:
    """Everything one run computed."""

    week_start: date
    aggregate: SalesAggregate
    factors: ScaleFactors
    direct: list[ScaledEntry] = field(default_factory=list)
    binary: list[ScaledEntry] = field(default_factory=list)
    override: list[ScaledEntry] = field(default_factory=list)
    volume_rows: list[VolumeRow] = field(default_factory=list)
    ranks: dict[int, RankEvaluation] = field(default_factory=dict)
    settlements: list[SettlementLine] = field(default_factory=list)
    excluded: list[ExcludedMember] = field(default_factory=list)
    commitment: str = ""
    forfeited_direct: Decimal = ZERO

    @property
    def sales_volume(self) -> Decimal:
        return self.aggregate.sales_volume

    @property
    def totals(self) -> dict[str, Decimal]:
        """Scaled pool totals and grand total."""
        direct = sum((e.amount for e in self.direct), ZERO)
        binary = sum((e.amount for e in self.binary), ZERO)
        override = sum((e.amount for e in self.override), ZERO)
        return {
            "direct": direct,
            "binary": binary,
            "override": override,
            "total": direct + binary + override,
        }

    @property
    def rank_changes(self) -> list[RankEvaluation]:
        return [self.ranks[uid] for uid in sorted(self.ranks) if self.ranks[uid].changed]

    def to_dict(self, persisted: bool = False) -> dict[str, Any]:
        """Response payload (money and factors as strings)."""
        totals = self.totals
        return {
            "weekStart": self.week_start.isoformat(),
            "settlements": [line.to_dict() for line in self.settlements],
            "totals": {
                "SV": format_money(self.sales_volume),
                "T_dir": format_money(totals["direct"]),
                "T_bin": format_money(totals["binary"]),
                "T_ov": format_money(totals["override"]),
                "total": format_money(totals["total"]),
                "globalScaleFactor": format_factor(self.factors.global_factor),
            },
            "poolScaleFactors": self.factors.pool_factors_json(),
            "globalScalePolicy": self.factors.policy.value,
            "excluded": [member.to_dict() for member in self.excluded],
            "persisted": persisted,
        }


class WeeklyCommissionEngine:
    """
    Computes one week of commissions.

    Usage:
        engine = WeeklyCommissionEngine(config, max_workers=4)
        result = engine.run(inputs)
    """

    def __init__(self, config: CommissionConfig, max_workers: int = 4) -> None:
        self.config = config
        self.max_workers = max_workers
        self.ranks = RankEvaluator(config)

    def find_exclusions(self, inputs: WeekInputs) -> dict[int, str]:
        """Members with a corrupt sponsor or binary chain, or a placement conflict."""
        members = inputs.members.keys()
        parent_of = {child: parent for child, (parent, _) in inputs.binary_parents.items()}

        excluded: dict[int, str] = {}
        for user_id, reason in inputs.placement_conflicts.items():
            excluded[user_id] = reason
        for user_id, reason in find_broken_chains(parent_of, members, "binary").items():
            excluded.setdefault(user_id, reason)
        for user_id, reason in find_broken_chains(inputs.sponsors, members, "sponsor").items():
            excluded.setdefault(user_id, reason)
        return excluded

    def evaluate_ranks(
        self,
        inputs: WeekInputs,
        aggregate: SalesAggregate | None = None,
        ledger: BinaryVolumeLedger | None = None,
        excluded: dict[int, str] | None = None,
    ) -> dict[int, RankEvaluation]:
        """
        Evaluate ranks for every included member.

        Without a ledger, leg volumes are the stored cumulative volumes
        only (used for on-demand evaluation outside a settlement run).
        """
        aggregate = aggregate or aggregate_sales(inputs.week_start, inputs.transactions)
        excluded = excluded if excluded is not None else self.find_exclusions(inputs)

        posted: dict[int, tuple[Decimal, Decimal]] = {}
        if ledger is not None:
            for node in ledger.nodes():
                posted[node.user_id] = (node.left.posted, node.right.posted)

        metrics = collect_metrics(
            inputs.members,
            inputs.sponsors,
            inputs.prior_sales,
            aggregate.per_user,
            posted,
        )
        return {
            uid: self.ranks.evaluate(uid, member.rank_level, metrics[uid])
            for uid, member in sorted(inputs.members.items())
            if uid not in excluded
        }

    def _binaries(
        self,
        ledger: BinaryVolumeLedger,
        ranks: dict[int, int],
        excluded: frozenset[int] = frozenset(),
    ) -> tuple[list[BinaryResult], list[VolumeRow]]:
        results: list[BinaryResult] = []
        rows: list[VolumeRow] = []
        for node in ledger.nodes():
            if node.user_id in excluded:
                continue
            result = calculate_binary(node, ranks.get(node.user_id, 0), self.config)
            rows.extend(ledger.close_week(node.user_id, result.paid_volume))
            if result.base_amount > 0:
                results.append(result)
        return results, rows

    def run(self, inputs: WeekInputs) -> WeekResult:
        """
        Compute scaled commissions and settlements for a week.

        Members with corrupt tree data are excluded and listed in the
        result; the rest of the batch is unaffected.

        Args:
            inputs: Week snapshot

        Returns:
            WeekResult

        Raises:
            InvalidWeekError: If the week key is not a week start
        """
        config = self.config
        aggregate = aggregate_sales(inputs.week_start, inputs.transactions)
        week = aggregate.week_start
        excluded = self.find_exclusions(inputs)

        ledger = BinaryVolumeLedger(
            week,
            inputs.members,
            config,
            carry_in=inputs.carry_in,
            ghost_credits=inputs.ghost_credits,
            weak_leg_history=inputs.weak_leg_history,
            active_this_week=aggregate.per_user.keys(),
            excluded=excluded,
        )
        included_sales = [s for s in aggregate.sales if s.user_id not in excluded]
        for user_id, reason in ledger.post_sales(included_sales, inputs.binary_parents).items():
            excluded.setdefault(user_id, reason)
        included_sales = [s for s in included_sales if s.user_id not in excluded]
        frozen_excluded = frozenset(excluded)

        evaluations = self.evaluate_ranks(inputs, aggregate, ledger, excluded)
        levels = {uid: m.rank_level for uid, m in inputs.members.items()}
        levels.update({uid: ev.effective_level for uid, ev in evaluations.items()})

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            direct_future = pool.submit(
                calculate_direct,
                included_sales,
                inputs.sponsors,
                inputs.members,
                config,
                frozen_excluded,
            )
            binary_future = pool.submit(self._binaries, ledger, levels, frozen_excluded)
            direct: DirectResult = direct_future.result()
            binaries, volume_rows = binary_future.result()

        overrides, override_failures = calculate_overrides(
            binaries, inputs.sponsors, levels, config, frozen_excluded
        )
        for failures in (direct.failures, override_failures):
            for user_id, reason in failures.items():
                excluded.setdefault(user_id, reason)

        unscaled = {
            "direct": sum((e.base_amount for e in direct.entries), ZERO),
            "binary": sum((b.base_amount for b in binaries), ZERO),
            "override": sum((e.base_amount for e in overrides), ZERO),
        }
        factors = compute_scale_factors(aggregate.sales_volume, unscaled, config)

        def scale(
            pool_name: str, entries: list[DirectEntry] | list[BinaryResult] | list[OverrideEntry]
        ) -> list[ScaledEntry]:
            below_one = factors.combined(pool_name) < 1
            return [
                ScaledEntry(
                    pool=pool_name,
                    entry=entry,
                    amount=factors.scale(pool_name, entry.base_amount),
                    factor_below_one=below_one,
                )
                for entry in entries
            ]

        result = WeekResult(
            week_start=week,
            aggregate=aggregate,
            factors=factors,
            direct=scale("direct", direct.entries),
            binary=scale("binary", sorted(binaries, key=lambda b: b.user_id)),
            override=scale("override", overrides),
            volume_rows=volume_rows,
            ranks=evaluations,
            excluded=[
                ExcludedMember(uid, reason) for uid, reason in sorted(excluded.items())
            ],
            forfeited_direct=direct.forfeited,
        )
        result.settlements = build_settlements(
            week, [*result.direct, *result.binary, *result.override]
        )
        result.commitment = build_commitment(result.settlements)

        for member in result.excluded:
            logger.warning(
                f"User {member.user_id} excluded from week {week.isoformat()}: {member.reason}"
            )
        logger.info(
            f"Computed commissions for week {week.isoformat()}",
            extra={
                **factors.describe(),
                "settlements": len(result.settlements),
                "excluded": len(result.excluded),
                "total": str(result.totals["total"]),
            },
        )
        return result
