"""
ReferralEdge repository.

Data access layer for ReferralEdge model.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.referral_edge import ReferralEdge
from app.repositories.base import BaseRepository


class ReferralEdgeRepository(BaseRepository[ReferralEdge]):
    """Referral edge repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize referral edge repository."""
        super().__init__(ReferralEdge, session)

    async def find_direct_links(self) -> list[tuple[int, int]]:
        """
        Get active level 1 links.

        Returns:
            List of (referee_id, sponsor_id) ordered by edge ID
        """
        stmt = (
            select(ReferralEdge.referee_id, ReferralEdge.sponsor_id)
            .where(
                ReferralEdge.level == 1,
                ReferralEdge.is_active.is_(True),
            )
            .order_by(ReferralEdge.id)
        )
        result = await self.session.execute(stmt)
        return [(referee, sponsor) for referee, sponsor in result.all()]
