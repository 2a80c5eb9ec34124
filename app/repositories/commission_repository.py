"""
Commission entry repositories.

Data access layer for direct, binary and override commission entries.
Rows of a week that is still a draft are deleted and rewritten as a
whole; finalized weeks are never touched.
"""

from datetime import date
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.commission import (
    BinaryCommission,
    DirectCommission,
    OverrideCommission,
)
from app.repositories.base import BaseRepository

EntryType = TypeVar("EntryType", DirectCommission, BinaryCommission, OverrideCommission)


class WeeklyEntryRepository(BaseRepository[EntryType]):
    """Shared queries for weekly commission entries."""

    async def find_for_week(self, week_start: date) -> list[EntryType]:
        """
        Get all entries of a week.

        Args:
            week_start: Week key

        Returns:
            Entries ordered by ID
        """
        stmt = (
            select(self.model)
            .where(self.model.week_start == week_start)
            .order_by(self.model.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def delete_week(self, week_start: date) -> int:
        """
        Remove a week's draft entries.

        Args:
            week_start: Week key

        Returns:
            Number of rows deleted
        """
        return await self.delete_where(self.model.week_start == week_start)


class DirectCommissionRepository(WeeklyEntryRepository[DirectCommission]):
    """Direct commission repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize direct commission repository."""
        super().__init__(DirectCommission, session)


class BinaryCommissionRepository(WeeklyEntryRepository[BinaryCommission]):
    """Binary commission repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize binary commission repository."""
        super().__init__(BinaryCommission, session)


class OverrideCommissionRepository(WeeklyEntryRepository[OverrideCommission]):
    """Override commission repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize override commission repository."""
        super().__init__(OverrideCommission, session)
