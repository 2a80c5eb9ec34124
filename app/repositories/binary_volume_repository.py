"""
BinaryVolumeEntry repository.

Data access layer for weekly per-leg volume rows.
"""

from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.binary_volume import BinaryVolumeEntry
from app.models.weekly_settlement import WeeklySettlementMeta
from app.repositories.base import BaseRepository


# Week keys whose settlement is final
_FINALIZED_WEEKS = select(WeeklySettlementMeta.week_start).where(
    WeeklySettlementMeta.is_finalized.is_(True)
)


class BinaryVolumeRepository(BaseRepository[BinaryVolumeEntry]):
    """Binary volume repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize binary volume repository."""
        super().__init__(BinaryVolumeEntry, session)

    async def find_for_week(
        self, week_start: date, finalized_only: bool = False
    ) -> list[BinaryVolumeEntry]:
        """
        Get all volume rows of a week.

        Args:
            week_start: Week key
            finalized_only: Return nothing unless the week is finalized

        Returns:
            Rows ordered by user and leg
        """
        stmt = (
            select(BinaryVolumeEntry)
            .where(BinaryVolumeEntry.week_start == week_start)
            .order_by(BinaryVolumeEntry.user_id, BinaryVolumeEntry.leg)
        )
        if finalized_only:
            stmt = stmt.where(BinaryVolumeEntry.week_start.in_(_FINALIZED_WEEKS))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def weak_leg_history(
        self, before: date, weeks: int
    ) -> dict[int, list[Decimal]]:
        """
        Get recent weak-leg totals per user.

        Only finalized weeks count.

        Args:
            before: Exclusive upper week bound
            weeks: How many weeks back to look

        Returns:
            Mapping of user ID to weak-leg totals, newest first
        """
        if weeks <= 0:
            return {}
        stmt = (
            select(BinaryVolumeEntry.user_id, BinaryVolumeEntry.total_volume)
            .where(
                BinaryVolumeEntry.is_weak.is_(True),
                BinaryVolumeEntry.week_start < before,
                BinaryVolumeEntry.week_start >= before - timedelta(weeks=weeks),
                BinaryVolumeEntry.week_start.in_(_FINALIZED_WEEKS),
            )
            .order_by(
                BinaryVolumeEntry.user_id,
                BinaryVolumeEntry.week_start.desc(),
            )
        )
        result = await self.session.execute(stmt)
        history: dict[int, list[Decimal]] = {}
        for user_id, total in result.all():
            history.setdefault(user_id, []).append(total)
        return history

    async def delete_week(self, week_start: date) -> int:
        """
        Remove a week's rows before they are rewritten.

        Args:
            week_start: Week key

        Returns:
            Number of rows deleted
        """
        return await self.delete_where(BinaryVolumeEntry.week_start == week_start)
