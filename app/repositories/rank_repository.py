"""
Rank repositories.

Data access layer for rank definitions and rank history.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.rank_definition import RankDefinition
from app.models.user_rank_history import UserRankHistory
from app.repositories.base import BaseRepository


class RankDefinitionRepository(BaseRepository[RankDefinition]):
    """Rank definition repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize rank definition repository."""
        super().__init__(RankDefinition, session)

    async def find_active(self) -> list[RankDefinition]:
        """
        Get active ranks ordered by level.

        Returns:
            List of rank definitions
        """
        stmt = (
            select(RankDefinition)
            .where(RankDefinition.is_active.is_(True))
            .order_by(RankDefinition.rank_level)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class UserRankHistoryRepository(BaseRepository[UserRankHistory]):
    """Rank history repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize rank history repository."""
        super().__init__(UserRankHistory, session)

    async def find_recent(self, limit: int = 20) -> list[UserRankHistory]:
        """
        Get the most recent rank changes.

        Args:
            limit: Max number of rows

        Returns:
            History rows, newest first
        """
        stmt = (
            select(UserRankHistory)
            .order_by(UserRankHistory.achieved_at.desc(), UserRankHistory.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
