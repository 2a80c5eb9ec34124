"""
WeeklySettlement and WeeklySettlementMeta models.

One settlement row per user per week plus one meta row per week holding
the commitment root and run totals. Finalized rows are append-only.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.enums import SettlementStatus
from app.models.types import MoneyType, ScaleFactorType


class WeeklySettlement(Base):
    """
    WeeklySettlement entity.

    grand_total always equals direct_total + binary_total + override_total,
    each being the sum of the user's scaled commission entries.

    Attributes:
        id: Primary key
        user_id: Settled user
        week_start: Week key
        direct_total: Scaled direct commissions
        binary_total: Scaled binary commission
        override_total: Scaled override commissions
        grand_total: Sum of the three
        cap_applied: A rank cap or a scale factor reduced this user's payout
        leaf_hash: Hash of the canonical settlement leaf
        merkle_proof: Inclusion proof against the week's commitment
        is_finalized: Week finalized flag
        status: Payout status
        finalized_at: Finalization timestamp
    """

    __tablename__ = "weekly_settlements"
    __table_args__ = (
        UniqueConstraint("user_id", "week_start", name="uq_weekly_settlement_user_week"),
        Index("idx_weekly_settlements_week", "week_start", "is_finalized"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    week_start: Mapped[date] = mapped_column(Date, nullable=False)

    direct_total: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    binary_total: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    override_total: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    grand_total: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    cap_applied: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    leaf_hash: Mapped[str | None] = mapped_column(String(80), nullable=True)
    merkle_proof: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)

    is_finalized: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), default=SettlementStatus.PENDING.value, nullable=False
    )
    finalized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<WeeklySettlement(user_id={self.user_id}, week={self.week_start}, "
            f"total={self.grand_total}, finalized={self.is_finalized})>"
        )


class WeeklySettlementMeta(Base):
    """
    Per-week run summary and commitment.

    Attributes:
        id: Primary key
        week_start: Week key (unique)
        sales_volume: SV
        direct_total / binary_total / override_total: Scaled pool totals
        total_amount: Scaled grand total
        *_scale_factor: Pool factors and the global factor
        global_scale_policy: Policy the global factor was computed with
        commitment_root: Merkle root over settlement leaves
        settlement_count: Number of settlement rows
        excluded: Users excluded from the run with reasons
        is_finalized: Week finalized flag
        finalized_at: Finalization timestamp
    """

    __tablename__ = "weekly_settlement_meta"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    week_start: Mapped[date] = mapped_column(Date, nullable=False, unique=True)

    sales_volume: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    direct_total: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    binary_total: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    override_total: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    direct_scale_factor: Mapped[Decimal] = mapped_column(ScaleFactorType, nullable=False)
    binary_scale_factor: Mapped[Decimal] = mapped_column(ScaleFactorType, nullable=False)
    override_scale_factor: Mapped[Decimal] = mapped_column(ScaleFactorType, nullable=False)
    global_scale_factor: Mapped[Decimal] = mapped_column(ScaleFactorType, nullable=False)
    global_scale_policy: Mapped[str] = mapped_column(String(20), nullable=False)

    commitment_root: Mapped[str | None] = mapped_column(String(80), nullable=True)
    settlement_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    excluded: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)

    is_finalized: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    finalized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<WeeklySettlementMeta(week={self.week_start}, "
            f"root={self.commitment_root}, finalized={self.is_finalized})>"
        )
