"""
CommissionSetting model.

Key/value rows holding admin-editable rates and caps. Values are stored
as percentages (10 = 10%) except for absolute USD caps and counts.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.types import MoneyType


class CommissionSetting(Base):
    """
    CommissionSetting entity.

    Attributes:
        id: Primary key
        setting_name: Unique key (e.g. "binary_rate")
        setting_value: Numeric value
        description: Admin-facing description
        updated_at: Last change
    """

    __tablename__ = "commission_settings"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    setting_name: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True
    )
    setting_value: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CommissionSetting({self.setting_name}={self.setting_value})>"
        )
