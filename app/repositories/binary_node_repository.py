"""
BinaryNode repository.

Data access layer for BinaryNode model.
"""

from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.binary_node import BinaryNode
from app.repositories.base import BaseRepository


class BinaryNodeRepository(BaseRepository[BinaryNode]):
    """Binary node repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize binary node repository."""
        super().__init__(BinaryNode, session)

    async def find_all_nodes(self) -> list[BinaryNode]:
        """
        Get every node ordered by owner.

        Returns:
            List of binary nodes
        """
        stmt = select(BinaryNode).order_by(BinaryNode.user_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add_volume(
        self, user_id: int, left: Decimal, right: Decimal
    ) -> None:
        """
        Add posted weekly volume to a node's cumulative legs.

        Args:
            user_id: Node owner
            left: Volume posted to the left leg
            right: Volume posted to the right leg
        """
        stmt = (
            update(BinaryNode)
            .where(BinaryNode.user_id == user_id)
            .values(
                left_volume=BinaryNode.left_volume + left,
                right_volume=BinaryNode.right_volume + right,
            )
        )
        await self.session.execute(stmt)

    async def get_leg_volumes(
        self, user_ids: list[int]
    ) -> dict[int, tuple[Decimal, Decimal]]:
        """
        Get cumulative leg volumes for a set of users.

        Args:
            user_ids: Node owners

        Returns:
            Mapping of user ID to (left, right) volume
        """
        if not user_ids:
            return {}
        stmt = select(
            BinaryNode.user_id, BinaryNode.left_volume, BinaryNode.right_volume
        ).where(BinaryNode.user_id.in_(user_ids))
        result = await self.session.execute(stmt)
        return {uid: (left, right) for uid, left, right in result.all()}
