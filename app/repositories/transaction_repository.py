"""
Transaction repository.

Read-only access to sales transactions.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.transaction import Transaction
from app.repositories.base import BaseRepository


class TransactionRepository(BaseRepository[Transaction]):
    """Transaction repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize transaction repository."""
        super().__init__(Transaction, session)

    async def find_for_week(self, week_start: date) -> list[Transaction]:
        """
        Get all transactions of a week, eligible or not.

        Args:
            week_start: Week key

        Returns:
            Transactions ordered by ID
        """
        stmt = (
            select(Transaction)
            .where(Transaction.week_start == week_start)
            .order_by(Transaction.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def sales_before(self, week_start: date) -> dict[int, Decimal]:
        """
        Sum eligible sales per user for all weeks before a week.

        Args:
            week_start: Exclusive upper bound

        Returns:
            Mapping of user ID to lifetime sales
        """
        stmt = (
            select(Transaction.user_id, func.sum(Transaction.amount))
            .where(
                Transaction.is_eligible.is_(True),
                Transaction.week_start < week_start,
            )
            .group_by(Transaction.user_id)
        )
        result = await self.session.execute(stmt)
        return {uid: total or Decimal("0") for uid, total in result.all()}

    async def last_active_weeks(self, week_start: date) -> dict[int, date]:
        """
        Get each user's latest week with an eligible purchase before a week.

        Args:
            week_start: Exclusive upper bound

        Returns:
            Mapping of user ID to week key
        """
        stmt = (
            select(Transaction.user_id, func.max(Transaction.week_start))
            .where(
                Transaction.is_eligible.is_(True),
                Transaction.week_start < week_start,
            )
            .group_by(Transaction.user_id)
        )
        result = await self.session.execute(stmt)
        return {uid: week for uid, week in result.all()}
