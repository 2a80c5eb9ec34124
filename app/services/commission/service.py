"""
Commission settlement service.

Loads a week, runs the engine off the event loop and persists the
result. Every run of a week holds that week's lock; a second run fails
fast with WeekAlreadyProcessing. The whole run is bounded by
settlement_timeout_seconds.
"""

import asyncio
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import settings
from app.models.weekly_settlement import WeeklySettlement, WeeklySettlementMeta
from app.repositories.settlement_repository import (
    SettlementMetaRepository,
    WeeklySettlementRepository,
)
from app.services.base_service import BaseService
from app.services.commission.config import (
    CommissionConfig,
    GhostExpiryPolicy,
    GlobalScalePolicy,
    RankPolicy,
)
from app.services.commission.engine import WeeklyCommissionEngine, WeekResult
from app.services.commission.inputs import WeekInputs
from app.services.commission.loader import WeekInputLoader
from app.services.commission.writer import SettlementWriter
from app.utils.datetime_utils import parse_week_key, previous_week, utc_now
from app.utils.distributed_lock import get_distributed_lock
from app.utils.exceptions import (
    CommissionEngineError,
    FinalizationFailed,
    FinalizationOutOfOrder,
    SettlementTimeout,
    WeekAlreadyProcessing,
)
from app.utils.merkle import settlement_leaf, verify_proof
from app.utils.money import format_factor, format_money


@dataclass
class StoredWeek:
    """A finalized week as it was written."""

    meta: WeeklySettlementMeta
    settlements: list[WeeklySettlement]

    def to_dict(self, persisted: bool = False) -> dict[str, Any]:
        meta = self.meta
        return {
            "weekStart": meta.week_start.isoformat(),
            "settlements": [
                {
                    "userId": row.user_id,
                    "direct": format_money(row.direct_total),
                    "binary": format_money(row.binary_total),
                    "override": format_money(row.override_total),
                    "total": format_money(row.grand_total),
                    "capApplied": row.cap_applied,
                    "leafHash": row.leaf_hash,
                }
                for row in self.settlements
            ],
            "totals": {
                "SV": format_money(meta.sales_volume),
                "T_dir": format_money(meta.direct_total),
                "T_bin": format_money(meta.binary_total),
                "T_ov": format_money(meta.override_total),
                "total": format_money(meta.total_amount),
                "globalScaleFactor": format_factor(meta.global_scale_factor),
            },
            "poolScaleFactors": {
                "direct": format_factor(meta.direct_scale_factor),
                "binary": format_factor(meta.binary_scale_factor),
                "override": format_factor(meta.override_scale_factor),
            },
            "globalScalePolicy": meta.global_scale_policy,
            "excluded": list(meta.excluded or []),
            "persisted": persisted,
        }


@dataclass
class CalculationOutcome:
    """Result of a calculate call."""

    result: WeekResult | StoredWeek
    persisted: bool
    already_finalized: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = self.result.to_dict(persisted=self.persisted)
        data["alreadyFinalized"] = self.already_finalized
        return data


@dataclass
class FinalizationOutcome:
    """Result of a finalize call."""

    week_start: date
    commitment: str | None
    settlement_count: int
    total_amount: Decimal
    already_finalized: bool

    @classmethod
    def from_meta(
        cls, meta: WeeklySettlementMeta, already_finalized: bool
    ) -> "FinalizationOutcome":
        return cls(
            week_start=meta.week_start,
            commitment=meta.commitment_root,
            settlement_count=meta.settlement_count,
            total_amount=meta.total_amount,
            already_finalized=already_finalized,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "weekStart": self.week_start.isoformat(),
            "commitment": self.commitment,
            "settlementCount": self.settlement_count,
            "totalAmount": format_money(self.total_amount),
            "alreadyFinalized": self.already_finalized,
        }


class CommissionSettlementService(BaseService):
    """
    Weekly commission calculation and finalization.

    Usage:
        async with async_session_maker() as session:
            service = CommissionSettlementService(session, redis_client)
            outcome = await service.finalize_week("2025-01-06")
    """

    def __init__(
        self,
        session: AsyncSession,
        redis_client: Any | None = None,
        global_scale_policy: GlobalScalePolicy | str | None = None,
        ghost_expiry_policy: GhostExpiryPolicy | str | None = None,
        rank_policy: RankPolicy | str | None = None,
        timeout: float | None = None,
    ) -> None:
        """
        Initialize settlement service.

        Args:
            session: Database session
            redis_client: redis.asyncio client for the week lock
            global_scale_policy: Override of the configured policy
            ghost_expiry_policy: Override of the configured policy
            rank_policy: Override of the configured policy
            timeout: Override of settlement_timeout_seconds
        """
        super().__init__(session)
        self.redis_client = redis_client
        self.loader = WeekInputLoader(session)
        self.writer = SettlementWriter(session)
        self.meta_repo = SettlementMetaRepository(session)
        self.settlement_repo = WeeklySettlementRepository(session)
        self.global_scale_policy = (
            global_scale_policy or settings.commission_global_scale_policy
        )
        self.ghost_expiry_policy = (
            ghost_expiry_policy or settings.commission_ghost_expiry_policy
        )
        self.rank_policy = rank_policy or settings.commission_rank_policy
        self.timeout = timeout or settings.settlement_timeout_seconds

    async def load_config(self) -> CommissionConfig:
        """Freeze commission settings with this service's policies."""
        return await self.loader.load_config(
            global_scale_policy=self.global_scale_policy,
            ghost_expiry_policy=self.ghost_expiry_policy,
            rank_policy=self.rank_policy,
        )

    async def calculate_week(
        self, week_start: str | date, persist: bool = False
    ) -> CalculationOutcome:
        """
        Compute a week's commissions.

        With persist=True the result replaces the week's draft rows.
        A finalized week is not recomputed; its stored settlements and
        totals are returned.

        Args:
            week_start: Week key
            persist: Write draft rows

        Returns:
            CalculationOutcome

        Raises:
            InvalidWeekError: Bad week key
            ConfigurationError: Missing or malformed settings
            WeekAlreadyProcessing: Another run holds the week
            SettlementTimeout: Run exceeded the time budget
            FinalizationFailed: Draft write failed (rolled back)
        """
        week = parse_week_key(week_start)
        return await self._locked(week, self._calculate(week, persist))

    async def finalize_week(self, week_start: str | date) -> FinalizationOutcome:
        """
        Finalize a week.

        Recomputes the week and writes entries, volume rows, node volume,
        rank changes, settlements with proofs and the meta row in one
        transaction. Finalizing a finalized week returns the stored
        commitment and totals.

        Weeks finalize in order: the previous week must be finalized
        unless no earlier week ever was, and no later week may be.
        Carry-out of week N is then always the carry-in of week N+1.

        Args:
            week_start: Week key

        Returns:
            FinalizationOutcome

        Raises:
            InvalidWeekError: Bad week key
            ConfigurationError: Missing or malformed settings
            WeekAlreadyProcessing: Another run holds the week
            FinalizationOutOfOrder: Previous week open or later week final
            SettlementTimeout: Run exceeded the time budget
            FinalizationFailed: Write failed (rolled back, week re-runnable)
        """
        week = parse_week_key(week_start)
        return await self._locked(week, self._finalize(week))

    async def get_proof(
        self, week_start: str | date, user_id: int
    ) -> dict[str, Any] | None:
        """
        Get a member's stored settlement leaf and inclusion proof.

        Args:
            week_start: Week key
            user_id: Member

        Returns:
            Proof payload, or None if the member has no settlement that week
        """
        week = parse_week_key(week_start)
        settlement = await self.settlement_repo.get_for_user(week, user_id)
        if settlement is None:
            return None
        meta = await self.meta_repo.get_for_week(week)
        root = meta.commitment_root if meta else None

        leaf = settlement_leaf(
            settlement.user_id,
            settlement.week_start,
            settlement.direct_total,
            settlement.binary_total,
            settlement.override_total,
            settlement.grand_total,
        )
        proof = settlement.merkle_proof or []
        return {
            "weekStart": week.isoformat(),
            "userId": user_id,
            "leaf": leaf,
            "leafHash": settlement.leaf_hash,
            "proof": proof,
            "commitment": root,
            "isFinalized": settlement.is_finalized,
            "verified": bool(
                root
                and settlement.leaf_hash
                and verify_proof(settlement.leaf_hash, proof, root)
            ),
        }

    async def _locked(self, week: date, run: Any) -> Any:
        lock = get_distributed_lock(redis_client=self.redis_client)
        async with lock.lock(
            f"settlement:week:{week.isoformat()}",
            timeout=settings.settlement_lock_timeout,
            blocking=False,
        ) as acquired:
            if not acquired:
                run.close()
                raise WeekAlreadyProcessing(week)
            try:
                return await asyncio.wait_for(run, timeout=self.timeout)
            except TimeoutError as e:
                await self.rollback()
                self.logger.error(
                    f"Settlement of week {week.isoformat()} timed out",
                    extra={"timeout": self.timeout},
                )
                raise SettlementTimeout(week, self.timeout) from e

    async def _run_engine(
        self, config: CommissionConfig, inputs: WeekInputs
    ) -> WeekResult:
        engine = WeeklyCommissionEngine(config, max_workers=settings.engine_max_workers)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, engine.run, inputs)

    async def _compute(self, week: date) -> tuple[CommissionConfig, WeekResult]:
        config = await self.load_config()
        inputs = await self.loader.load_week(week, config)
        result = await self._run_engine(config, inputs)
        return config, result

    async def _calculate(self, week: date, persist: bool) -> CalculationOutcome:
        meta = await self.meta_repo.get_for_week(week)
        if meta is not None and meta.is_finalized:
            if persist:
                self.logger.info(
                    f"Week {week.isoformat()} is finalized; draft not written"
                )
            stored = StoredWeek(meta, await self.settlement_repo.find_for_week(week))
            return CalculationOutcome(
                result=stored, persisted=False, already_finalized=True
            )

        _, result = await self._compute(week)

        persisted = False
        if persist:
            try:
                await self.writer.write_draft(result)
                await self.commit()
                persisted = True
            except asyncio.CancelledError:
                await self.rollback()
                raise
            except Exception as e:
                await self.rollback()
                self.logger.error(
                    f"Draft write for week {week.isoformat()} failed",
                    extra={"error": str(e)},
                    exc_info=True,
                )
                raise FinalizationFailed(week, str(e)) from e

        return CalculationOutcome(result=result, persisted=persisted)

    async def _finalize(self, week: date) -> FinalizationOutcome:
        meta = await self.meta_repo.get_for_week(week, for_update=True)
        if meta is not None and meta.is_finalized:
            self.logger.info(f"Week {week.isoformat()} already finalized")
            return FinalizationOutcome.from_meta(meta, already_finalized=True)

        await self._check_order(week)
        config, result = await self._compute(week)

        try:
            meta = await self.writer.write_final(result, config, utc_now())
            await self.commit()
        except asyncio.CancelledError:
            await self.rollback()
            raise
        except CommissionEngineError:
            await self.rollback()
            raise
        except Exception as e:
            await self.rollback()
            self.logger.error(
                f"Finalization of week {week.isoformat()} failed",
                extra={"error": str(e)},
                exc_info=True,
            )
            raise FinalizationFailed(week, str(e)) from e

        self.logger.success(
            f"Week {week.isoformat()} finalized",
            extra={
                "commitment": result.commitment,
                "settlements": len(result.settlements),
                "total": str(result.totals["total"]),
            },
        )
        return FinalizationOutcome.from_meta(meta, already_finalized=False)

    async def _check_order(self, week: date) -> None:
        previous = previous_week(week)
        prior = await self.meta_repo.get_for_week(previous)
        if prior is None or not prior.is_finalized:
            latest = await self.meta_repo.latest_finalized_before(week)
            if prior is not None or latest is not None:
                raise FinalizationOutOfOrder(
                    week, f"week {previous.isoformat()} is not finalized"
                )

        later = await self.meta_repo.earliest_finalized_after(week)
        if later is not None:
            raise FinalizationOutOfOrder(
                week, f"later week {later.isoformat()} is already finalized"
            )
