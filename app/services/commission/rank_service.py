"""
Rank administration service.

On-demand rank evaluation outside the weekly settlement, manual rank
assignment and rank statistics. Every stored change writes a history
row with the metrics it was based on.
"""

from datetime import date
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import UNRANKED_LEVEL, UNRANKED_NAME
from app.config.operational_constants import RANK_STATS_RECENT_LIMIT
from app.config.settings import settings
from app.models.enums import RankChangeReason
from app.repositories.rank_repository import UserRankHistoryRepository
from app.repositories.user_repository import UserRepository
from app.services.base_service import BaseService, log_operation, transaction
from app.services.commission.config import CommissionConfig, RankPolicy
from app.services.commission.engine import WeeklyCommissionEngine
from app.services.commission.loader import WeekInputLoader
from app.services.commission.rank_evaluator import RankEvaluation
from app.utils.datetime_utils import parse_week_key, utc_now, week_start_of

MANUAL_OVERRIDE_NOTE = "Manual admin override"


def evaluation_to_dict(evaluation: RankEvaluation, config: CommissionConfig) -> dict[str, Any]:
    """Response payload for one evaluation."""
    return {
        "userId": evaluation.user_id,
        "previousRank": config.rank_name(evaluation.stored_level),
        "previousLevel": evaluation.stored_level,
        "qualifiedLevel": evaluation.qualified_level,
        "rankLevel": evaluation.effective_level,
        "rankName": config.rank_name(evaluation.effective_level),
        "changed": evaluation.changed,
        "metrics": evaluation.metrics.to_dict(),
    }


class RankService(BaseService):
    """Rank evaluation and manual assignment."""

    def __init__(
        self,
        session: AsyncSession,
        rank_policy: RankPolicy | str | None = None,
    ) -> None:
        super().__init__(session)
        self.loader = WeekInputLoader(session)
        self.users = UserRepository(session)
        self.history = UserRankHistoryRepository(session)
        self.rank_policy = rank_policy or settings.commission_rank_policy

    async def _evaluate(
        self, week_start: str | date | None
    ) -> tuple[CommissionConfig, date, dict[int, RankEvaluation]]:
        week = (
            parse_week_key(week_start) if week_start is not None
            else week_start_of(utc_now())
        )
        config = await self.loader.load_config(rank_policy=self.rank_policy)
        inputs = await self.loader.load_week(week, config)
        engine = WeeklyCommissionEngine(config, max_workers=1)
        return config, week, engine.evaluate_ranks(inputs)

    async def _store(
        self,
        evaluation: RankEvaluation,
        config: CommissionConfig,
        week: date,
    ) -> None:
        name = config.rank_name(evaluation.effective_level)
        await self.users.set_rank(evaluation.user_id, evaluation.effective_level, name)
        await self.history.create(
            user_id=evaluation.user_id,
            old_rank_level=evaluation.stored_level,
            new_rank_level=evaluation.effective_level,
            new_rank_name=name,
            criteria_met=evaluation.metrics.to_dict(),
            week_start=week,
            reason=RankChangeReason.EVALUATION.value,
        )

    @log_operation
    @transaction
    async def evaluate_user(
        self, user_id: int, week_start: str | date | None = None
    ) -> dict[str, Any] | None:
        """
        Evaluate and store one member's rank.

        Args:
            user_id: Member
            week_start: Week whose sales count (default: current week)

        Returns:
            Evaluation payload, or None if the member is unknown or
            excluded for corrupt tree data
        """
        config, week, evaluations = await self._evaluate(week_start)
        evaluation = evaluations.get(user_id)
        if evaluation is None:
            return None
        if evaluation.changed:
            await self._store(evaluation, config, week)
        return evaluation_to_dict(evaluation, config)

    @log_operation
    @transaction
    async def evaluate_all(self, week_start: str | date | None = None) -> dict[str, Any]:
        """
        Evaluate and store every member's rank.

        Returns:
            Counts and the list of changes
        """
        config, week, evaluations = await self._evaluate(week_start)
        changes = []
        for evaluation in evaluations.values():
            if evaluation.changed:
                await self._store(evaluation, config, week)
                changes.append(evaluation_to_dict(evaluation, config))

        self.logger.info(
            f"Evaluated {len(evaluations)} ranks, {len(changes)} changed",
            extra={"week_start": week.isoformat()},
        )
        return {
            "weekStart": week.isoformat(),
            "evaluated": len(evaluations),
            "changed": len(changes),
            "promoted": sum(1 for c in changes if c["rankLevel"] > c["previousLevel"]),
            "changes": changes,
        }

    @log_operation
    @transaction
    async def set_rank(
        self,
        user_id: int,
        new_level: int,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """
        Assign a rank manually.

        Args:
            user_id: Member
            new_level: Rank level (0 = unranked)
            reason: Note stored with the history row

        Returns:
            Previous and new rank

        Raises:
            ValueError: Unknown member or rank level
        """
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise ValueError(f"User {user_id} not found")

        config = await self.loader.load_config(rank_policy=self.rank_policy)
        if new_level != UNRANKED_LEVEL and config.rank(new_level) is None:
            raise ValueError(f"Rank level {new_level} is not defined")

        name = config.rank_name(new_level)
        old_level = user.rank_level
        await self.users.set_rank(user_id, new_level, name)
        await self.history.create(
            user_id=user_id,
            old_rank_level=old_level,
            new_rank_level=new_level,
            new_rank_name=name,
            criteria_met=None,
            week_start=week_start_of(utc_now()),
            reason=RankChangeReason.MANUAL.value,
            note=reason or MANUAL_OVERRIDE_NOTE,
        )
        return {
            "userId": user_id,
            "previousLevel": old_level,
            "previousRank": config.rank_name(old_level),
            "rankLevel": new_level,
            "rankName": name,
        }

    async def get_stats(self) -> dict[str, Any]:
        """
        Rank distribution and the most recent changes.

        Returns:
            {"distribution": {name: count}, "recentPromotions": [...]}
        """
        distribution = await self.users.rank_distribution()
        distribution.setdefault(UNRANKED_NAME, 0)
        recent = await self.history.find_recent(RANK_STATS_RECENT_LIMIT)
        return {
            "distribution": distribution,
            "recentPromotions": [
                {
                    "userId": row.user_id,
                    "oldLevel": row.old_rank_level,
                    "newLevel": row.new_rank_level,
                    "rankName": row.new_rank_name,
                    "reason": row.reason,
                    "achievedAt": row.achieved_at.isoformat() if row.achieved_at else None,
                }
                for row in recent
            ],
        }
