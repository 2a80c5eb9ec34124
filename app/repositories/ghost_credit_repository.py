"""
GhostVolumeCredit repository.

Data access layer for ghost volume credits.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import GhostCreditStatus
from app.models.ghost_volume_credit import GhostVolumeCredit
from app.repositories.base import BaseRepository


class GhostCreditRepository(BaseRepository[GhostVolumeCredit]):
    """Ghost credit repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ghost credit repository."""
        super().__init__(GhostVolumeCredit, session)

    async def find_overlapping(
        self, start: datetime, end: datetime
    ) -> list[GhostVolumeCredit]:
        """
        Get credits whose window overlaps an interval.

        Selection is by time window only; the stored status is ignored.

        Args:
            start: Interval start
            end: Interval end (exclusive)

        Returns:
            Credits ordered by ID
        """
        stmt = (
            select(GhostVolumeCredit)
            .where(
                GhostVolumeCredit.starts_at < end,
                GhostVolumeCredit.expires_at > start,
                GhostVolumeCredit.amount > 0,
            )
            .order_by(GhostVolumeCredit.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def expire_elapsed(self, now: datetime) -> int:
        """
        Sync stored status of credits whose window has passed.

        Args:
            now: Reference time

        Returns:
            Number of credits marked expired
        """
        stmt = (
            update(GhostVolumeCredit)
            .where(
                GhostVolumeCredit.status == GhostCreditStatus.ACTIVE.value,
                GhostVolumeCredit.expires_at <= now,
            )
            .values(status=GhostCreditStatus.EXPIRED.value)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def totals_starting_between(
        self, user_ids: list[int], start: datetime, end: datetime
    ) -> dict[int, Decimal]:
        """
        Sum credits per user that start inside an interval.

        Args:
            user_ids: Users to check
            start: Interval start
            end: Interval end (exclusive)

        Returns:
            Mapping of user ID to credited amount
        """
        if not user_ids:
            return {}
        stmt = (
            select(GhostVolumeCredit.user_id, func.sum(GhostVolumeCredit.amount))
            .where(
                GhostVolumeCredit.user_id.in_(user_ids),
                GhostVolumeCredit.starts_at >= start,
                GhostVolumeCredit.starts_at < end,
            )
            .group_by(GhostVolumeCredit.user_id)
        )
        result = await self.session.execute(stmt)
        return {uid: total or Decimal("0") for uid, total in result.all()}
