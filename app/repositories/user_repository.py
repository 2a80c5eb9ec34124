"""
User repository.

Data access layer for User model.
"""

from datetime import date

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """User repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize user repository."""
        super().__init__(User, session)

    async def find_members(self) -> list[User]:
        """
        Get every active member ordered by ID.

        Returns:
            List of users
        """
        stmt = select(User).where(User.is_active.is_(True)).order_by(User.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def set_rank(self, user_id: int, level: int, name: str) -> None:
        """
        Store a user's current rank.

        Args:
            user_id: User ID
            level: New rank level
            name: New rank name
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(rank_level=level, rank_name=name)
        )
        await self.session.execute(stmt)

    async def mark_active(self, user_ids: list[int], week_start: date) -> None:
        """
        Record a week of personal purchase activity.

        Args:
            user_ids: Users who bought during the week
            week_start: Week key
        """
        if not user_ids:
            return
        stmt = (
            update(User)
            .where(
                User.id.in_(user_ids),
                (User.last_active_week.is_(None)) | (User.last_active_week < week_start),
            )
            .values(last_active_week=week_start)
        )
        await self.session.execute(stmt)

    async def rank_distribution(self) -> dict[str, int]:
        """
        Count members per stored rank name.

        Returns:
            Mapping of rank name to member count
        """
        stmt = (
            select(User.rank_name, func.count(User.id))
            .where(User.is_active.is_(True))
            .group_by(User.rank_name)
        )
        result = await self.session.execute(stmt)
        return {name: count for name, count in result.all()}
