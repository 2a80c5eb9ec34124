"""
Commission entry models.

DirectCommission, BinaryCommission and OverrideCommission share the
base/scale/scaled amount columns. Rows for a week are replaced while the
week is a draft and never touched after it is finalized.
"""

from datetime import UTC, date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
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
from app.models.enums import CommissionStatus
from app.models.types import MoneyType, ScaleFactorType


class DirectCommission(Base):
    """
    Direct (sponsor tier) commission on a single transaction.

    Attributes:
        id: Primary key
        user_id: Sponsor receiving the commission
        source_user_id: Buyer
        source_transaction_id: Transaction the commission is paid on
        tier: Sponsor tier (1-3)
        week_start: Week key
        base_amount: rate(tier) * transaction amount
        scale_factor: pool factor * global factor
        scaled_amount: Final amount
        status: pending/paid/cancelled
    """

    __tablename__ = "direct_commissions"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "week_start", "tier", "source_transaction_id",
            name="uq_direct_commission_entry",
        ),
        Index("idx_direct_commissions_week", "week_start"),
        CheckConstraint("tier BETWEEN 1 AND 3", name="check_direct_tier"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    source_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    source_transaction_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("transactions.id", ondelete="RESTRICT"), nullable=False
    )
    tier: Mapped[int] = mapped_column(Integer, nullable=False)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    base_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    pool_scale_factor: Mapped[Decimal] = mapped_column(
        ScaleFactorType, default=Decimal("1"), nullable=False
    )
    global_scale_factor: Mapped[Decimal] = mapped_column(
        ScaleFactorType, default=Decimal("1"), nullable=False
    )
    scale_factor: Mapped[Decimal] = mapped_column(
        ScaleFactorType, default=Decimal("1"), nullable=False
    )
    scaled_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=CommissionStatus.PENDING.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<DirectCommission(user_id={self.user_id}, tier={self.tier}, "
            f"scaled={self.scaled_amount})>"
        )


class BinaryCommission(Base):
    """
    Weekly binary commission on the weak leg.

    Attributes:
        id: Primary key
        user_id: Node owner
        week_start: Week key
        left_volume: Left leg total
        right_volume: Right leg total
        weak_leg: Leg that was paid on
        weak_volume: Weak leg total
        paid_volume: Volume consumed by this payout
        cap_amount: Effective cap (min of rank weekly cap and hard cap)
        cap_applied: Whether the cap reduced the payout
        base_amount: Capped, unscaled amount
        scale_factor: pool factor * global factor
        scaled_amount: Final amount
        status: pending/paid/cancelled
    """

    __tablename__ = "binary_commissions"
    __table_args__ = (
        UniqueConstraint("user_id", "week_start", name="uq_binary_commission_user_week"),
        Index("idx_binary_commissions_week", "week_start"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    left_volume: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    right_volume: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    weak_leg: Mapped[str] = mapped_column(String(5), nullable=False)
    weak_volume: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    paid_volume: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    cap_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    cap_applied: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    base_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    pool_scale_factor: Mapped[Decimal] = mapped_column(
        ScaleFactorType, default=Decimal("1"), nullable=False
    )
    global_scale_factor: Mapped[Decimal] = mapped_column(
        ScaleFactorType, default=Decimal("1"), nullable=False
    )
    scale_factor: Mapped[Decimal] = mapped_column(
        ScaleFactorType, default=Decimal("1"), nullable=False
    )
    scaled_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=CommissionStatus.PENDING.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<BinaryCommission(user_id={self.user_id}, "
            f"week={self.week_start}, scaled={self.scaled_amount})>"
        )


class OverrideCommission(Base):
    """
    Override commission paid to an upline on a downline's binary payout.

    Attributes:
        id: Primary key
        user_id: Upline receiving the override
        source_user_id: Downline whose binary commission is the base
        level: Sponsor distance (1-3)
        week_start: Week key
        source_binary_amount: Downline binary base amount
        base_amount: rate(level) * source_binary_amount
        scale_factor: pool factor * global factor
        scaled_amount: Final amount
        status: pending/paid/cancelled
    """

    __tablename__ = "override_commissions"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "week_start", "level", "source_user_id",
            name="uq_override_commission_entry",
        ),
        Index("idx_override_commissions_week", "week_start"),
        CheckConstraint("level BETWEEN 1 AND 3", name="check_override_level"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    source_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    source_binary_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    base_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    pool_scale_factor: Mapped[Decimal] = mapped_column(
        ScaleFactorType, default=Decimal("1"), nullable=False
    )
    global_scale_factor: Mapped[Decimal] = mapped_column(
        ScaleFactorType, default=Decimal("1"), nullable=False
    )
    scale_factor: Mapped[Decimal] = mapped_column(
        ScaleFactorType, default=Decimal("1"), nullable=False
    )
    scaled_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=CommissionStatus.PENDING.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<OverrideCommission(user_id={self.user_id}, level={self.level}, "
            f"source={self.source_user_id}, scaled={self.scaled_amount})>"
        )
