"""
RankDefinition model.

Admin-maintained rank table. Read-only to the commission engine.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.types import HashrateType, MoneyType


class RankDefinition(Base):
    """
    RankDefinition entity.

    A user qualifies for a level when every threshold is met.

    Attributes:
        id: Primary key
        rank_level: Ordering key (higher = better)
        rank_name: Display name
        min_personal_sales: Lifetime personal sales threshold
        min_team_sales: Lifetime team sales threshold
        min_left_leg_volume: Cumulative left leg volume threshold
        min_right_leg_volume: Cumulative right leg volume threshold
        min_hashrate_ths: Owned hashrate threshold
        min_direct_referrals: Active direct referrals threshold
        weekly_cap_usd: Binary weekly cap for this rank
        hard_cap_usd: Absolute binary cap for this rank
        benefits: Raw benefits blob (parsed into RankBenefits)
        is_active: Rank participates in evaluation
    """

    __tablename__ = "rank_definitions"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    rank_level: Mapped[int] = mapped_column(
        Integer, nullable=False, unique=True
    )
    rank_name: Mapped[str] = mapped_column(String(64), nullable=False)

    min_personal_sales: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    min_team_sales: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    min_left_leg_volume: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    min_right_leg_volume: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    min_hashrate_ths: Mapped[Decimal] = mapped_column(
        HashrateType, default=Decimal("0"), nullable=False
    )
    min_direct_referrals: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )

    weekly_cap_usd: Mapped[Decimal | None] = mapped_column(
        MoneyType, nullable=True
    )
    hard_cap_usd: Mapped[Decimal | None] = mapped_column(
        MoneyType, nullable=True
    )

    benefits: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<RankDefinition(level={self.rank_level}, "
            f"name={self.rank_name!r})>"
        )
