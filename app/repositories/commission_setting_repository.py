"""
CommissionSetting repository.

Data access layer for admin-editable commission settings.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.commission_setting import CommissionSetting
from app.repositories.base import BaseRepository


class CommissionSettingRepository(BaseRepository[CommissionSetting]):
    """Commission setting repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission setting repository."""
        super().__init__(CommissionSetting, session)

    async def as_mapping(self) -> dict[str, Decimal]:
        """
        Get all settings as a name to value mapping.

        Returns:
            Mapping of setting name to value
        """
        stmt = select(CommissionSetting.setting_name, CommissionSetting.setting_value)
        result = await self.session.execute(stmt)
        return {name: value for name, value in result.all()}
