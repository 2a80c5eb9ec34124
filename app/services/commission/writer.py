"""
Settlement writer.

Turns a WeekResult into rows. Drafts replace any earlier draft of the
same week; a final write additionally posts cumulative node volume,
records rank changes and marks buyers active. The caller owns the
transaction: nothing here commits.
"""

from datetime import date, datetime
from decimal import Decimal
from fractions import Fraction
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import CommissionStatus, Leg, RankChangeReason, SettlementStatus
from app.models.weekly_settlement import WeeklySettlementMeta
from app.repositories.binary_node_repository import BinaryNodeRepository
from app.repositories.binary_volume_repository import BinaryVolumeRepository
from app.repositories.commission_repository import (
    BinaryCommissionRepository,
    DirectCommissionRepository,
    OverrideCommissionRepository,
)
from app.repositories.rank_repository import UserRankHistoryRepository
from app.repositories.settlement_repository import (
    SettlementMetaRepository,
    WeeklySettlementRepository,
)
from app.repositories.user_repository import UserRepository
from app.services.commission.binary_calculator import BinaryResult
from app.services.commission.cap_scaling import ScaleFactors
from app.services.commission.config import CommissionConfig
from app.services.commission.direct_calculator import DirectEntry
from app.services.commission.engine import WeekResult
from app.services.commission.override_calculator import OverrideEntry
from app.services.commission.settlement import ScaledEntry
from app.utils.money import fraction_to_decimal

ZERO = Decimal("0")


def _factor_columns(factors: ScaleFactors, pool: str) -> dict[str, Decimal]:
    global_factor = (
        factors.global_factor if pool in factors.global_pools else Fraction(1)
    )
    return {
        "pool_scale_factor": fraction_to_decimal(factors.pool[pool]),
        "global_scale_factor": fraction_to_decimal(global_factor),
        "scale_factor": fraction_to_decimal(factors.combined(pool)),
    }


class SettlementWriter:
    """Persists one week's computed result."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.direct = DirectCommissionRepository(session)
        self.binary = BinaryCommissionRepository(session)
        self.override = OverrideCommissionRepository(session)
        self.volumes = BinaryVolumeRepository(session)
        self.nodes = BinaryNodeRepository(session)
        self.settlements = WeeklySettlementRepository(session)
        self.meta = SettlementMetaRepository(session)
        self.users = UserRepository(session)
        self.rank_history = UserRankHistoryRepository(session)

    async def clear_draft(self, week_start: date) -> None:
        """Delete every draft row of a week."""
        await self.direct.delete_week(week_start)
        await self.binary.delete_week(week_start)
        await self.override.delete_week(week_start)
        await self.volumes.delete_week(week_start)
        await self.settlements.delete_drafts(week_start)
        await self.meta.delete_draft(week_start)

    async def write_draft(self, result: WeekResult) -> WeeklySettlementMeta:
        """
        Replace a week's draft with a freshly computed result.

        Returns:
            The draft meta row
        """
        await self.clear_draft(result.week_start)
        await self._write_rows(result, finalized_at=None)
        return await self._write_meta(result, finalized_at=None)

    async def write_final(
        self,
        result: WeekResult,
        config: CommissionConfig,
        finalized_at: datetime,
    ) -> WeeklySettlementMeta:
        """
        Write a finalized week.

        Args:
            result: Computed week
            config: Run configuration (rank names)
            finalized_at: Finalization timestamp

        Returns:
            The finalized meta row
        """
        week = result.week_start
        await self.clear_draft(week)
        await self._write_rows(result, finalized_at=finalized_at)

        posted: dict[int, dict[Leg, Decimal]] = {}
        for row in result.volume_rows:
            posted.setdefault(row.user_id, {})[row.leg] = row.posted
        for user_id, legs in sorted(posted.items()):
            left, right = legs.get(Leg.LEFT, ZERO), legs.get(Leg.RIGHT, ZERO)
            if left or right:
                await self.nodes.add_volume(user_id, left, right)

        history: list[dict[str, Any]] = []
        for evaluation in result.rank_changes:
            name = config.rank_name(evaluation.effective_level)
            await self.users.set_rank(evaluation.user_id, evaluation.effective_level, name)
            history.append({
                "user_id": evaluation.user_id,
                "old_rank_level": evaluation.stored_level,
                "new_rank_level": evaluation.effective_level,
                "new_rank_name": name,
                "criteria_met": evaluation.metrics.to_dict(),
                "week_start": week,
                "reason": RankChangeReason.EVALUATION.value,
                "achieved_at": finalized_at,
            })
        await self.rank_history.bulk_create(history)

        await self.users.mark_active(sorted(result.aggregate.per_user), week)

        meta = await self._write_meta(result, finalized_at=finalized_at)
        logger.info(
            f"Week {week.isoformat()} written as final",
            extra={
                "settlements": len(result.settlements),
                "rank_changes": len(history),
                "commitment": result.commitment,
            },
        )
        return meta

    async def _write_rows(
        self, result: WeekResult, finalized_at: datetime | None
    ) -> None:
        week = result.week_start
        factors = result.factors
        status = CommissionStatus.PENDING.value

        def entry_row(scaled: ScaledEntry) -> dict[str, Any]:
            return {
                "user_id": scaled.user_id,
                "week_start": week,
                "base_amount": scaled.base_amount,
                "scaled_amount": scaled.amount,
                "status": status,
                **_factor_columns(factors, scaled.pool),
            }

        direct_rows = []
        for scaled in result.direct:
            entry: DirectEntry = scaled.entry  # type: ignore[assignment]
            direct_rows.append({
                **entry_row(scaled),
                "source_user_id": entry.source_user_id,
                "source_transaction_id": entry.source_transaction_id,
                "tier": entry.tier,
            })

        binary_rows = []
        for scaled in result.binary:
            binary: BinaryResult = scaled.entry  # type: ignore[assignment]
            binary_rows.append({
                **entry_row(scaled),
                "left_volume": binary.left_volume,
                "right_volume": binary.right_volume,
                "weak_leg": binary.weak_leg.value,
                "weak_volume": binary.weak_volume,
                "paid_volume": binary.paid_volume,
                "cap_amount": binary.cap_amount,
                "cap_applied": binary.cap_applied,
            })

        override_rows = []
        for scaled in result.override:
            override: OverrideEntry = scaled.entry  # type: ignore[assignment]
            override_rows.append({
                **entry_row(scaled),
                "source_user_id": override.source_user_id,
                "level": override.level,
                "source_binary_amount": override.source_binary_amount,
            })

        volume_rows = [
            {
                "user_id": row.user_id,
                "leg": row.leg.value,
                "week_start": week,
                "volume": row.posted,
                "ghost_volume": row.ghost,
                "carry_in": row.carry_in,
                "flushed_in": row.flushed_in,
                "total_volume": row.total,
                "carry_out": row.carry_out,
                "flushed_out": row.flushed_out,
                "carry_since": row.carry_since,
                "is_weak": row.is_weak,
            }
            for row in result.volume_rows
        ]

        settlement_rows = [
            {
                "user_id": line.user_id,
                "week_start": week,
                "direct_total": line.direct,
                "binary_total": line.binary,
                "override_total": line.override,
                "grand_total": line.total,
                "cap_applied": line.cap_applied,
                "leaf_hash": line.leaf_hash,
                "merkle_proof": line.proof,
                "is_finalized": finalized_at is not None,
                "status": SettlementStatus.PENDING.value,
                "finalized_at": finalized_at,
            }
            for line in result.settlements
        ]

        await self.direct.bulk_create(direct_rows)
        await self.binary.bulk_create(binary_rows)
        await self.override.bulk_create(override_rows)
        await self.volumes.bulk_create(volume_rows)
        await self.settlements.bulk_create(settlement_rows)

    async def _write_meta(
        self, result: WeekResult, finalized_at: datetime | None
    ) -> WeeklySettlementMeta:
        factors = result.factors
        totals = result.totals
        return await self.meta.create(
            week_start=result.week_start,
            sales_volume=result.sales_volume,
            direct_total=totals["direct"],
            binary_total=totals["binary"],
            override_total=totals["override"],
            total_amount=totals["total"],
            direct_scale_factor=fraction_to_decimal(factors.pool["direct"]),
            binary_scale_factor=fraction_to_decimal(factors.pool["binary"]),
            override_scale_factor=fraction_to_decimal(factors.pool["override"]),
            global_scale_factor=fraction_to_decimal(factors.global_factor),
            global_scale_policy=factors.policy.value,
            commitment_root=result.commitment,
            settlement_count=len(result.settlements),
            excluded=[member.to_dict() for member in result.excluded],
            is_finalized=finalized_at is not None,
            finalized_at=finalized_at,
        )
