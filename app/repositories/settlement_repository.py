"""
Settlement repositories.

Data access layer for weekly settlements and per-week settlement meta.
"""

from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.weekly_settlement import WeeklySettlement, WeeklySettlementMeta
from app.repositories.base import BaseRepository


class WeeklySettlementRepository(BaseRepository[WeeklySettlement]):
    """Weekly settlement repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize weekly settlement repository."""
        super().__init__(WeeklySettlement, session)

    async def find_for_week(self, week_start: date) -> list[WeeklySettlement]:
        """
        Get all settlements of a week.

        Args:
            week_start: Week key

        Returns:
            Settlements ordered by user
        """
        stmt = (
            select(WeeklySettlement)
            .where(WeeklySettlement.week_start == week_start)
            .order_by(WeeklySettlement.user_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_for_user(
        self, week_start: date, user_id: int
    ) -> WeeklySettlement | None:
        """
        Get one user's settlement for a week.

        Args:
            week_start: Week key
            user_id: User ID

        Returns:
            Settlement or None
        """
        return await self.get_by(week_start=week_start, user_id=user_id)

    async def delete_drafts(self, week_start: date) -> int:
        """
        Remove a week's non-finalized settlements.

        Args:
            week_start: Week key

        Returns:
            Number of rows deleted
        """
        return await self.delete_where(
            WeeklySettlement.week_start == week_start,
            WeeklySettlement.is_finalized.is_(False),
        )


class SettlementMetaRepository(BaseRepository[WeeklySettlementMeta]):
    """Settlement meta repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize settlement meta repository."""
        super().__init__(WeeklySettlementMeta, session)

    async def get_for_week(
        self, week_start: date, for_update: bool = False
    ) -> WeeklySettlementMeta | None:
        """
        Get the meta row of a week.

        Args:
            week_start: Week key
            for_update: Lock the row (SELECT FOR UPDATE)

        Returns:
            Meta row or None
        """
        stmt = select(WeeklySettlementMeta).where(
            WeeklySettlementMeta.week_start == week_start
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def delete_draft(self, week_start: date) -> int:
        """
        Remove a week's non-finalized meta row.

        Args:
            week_start: Week key

        Returns:
            Number of rows deleted
        """
        return await self.delete_where(
            WeeklySettlementMeta.week_start == week_start,
            WeeklySettlementMeta.is_finalized.is_(False),
        )

    async def latest_finalized_before(self, week_start: date) -> date | None:
        """
        Get the newest finalized week before a week.

        Args:
            week_start: Exclusive upper bound

        Returns:
            Week key or None
        """
        stmt = select(func.max(WeeklySettlementMeta.week_start)).where(
            WeeklySettlementMeta.week_start < week_start,
            WeeklySettlementMeta.is_finalized.is_(True),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def earliest_finalized_after(self, week_start: date) -> date | None:
        """
        Get the oldest finalized week after a week.

        Args:
            week_start: Exclusive lower bound

        Returns:
            Week key or None
        """
        stmt = select(func.min(WeeklySettlementMeta.week_start)).where(
            WeeklySettlementMeta.week_start > week_start,
            WeeklySettlementMeta.is_finalized.is_(True),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
