"""
BinaryVolumeEntry model.

One row per (user, leg, week). Carry-out of week N is read back as the
carry-in of week N+1.
"""

from datetime import UTC, date, datetime
from decimal import Decimal

from sqlalchemy import (
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
from app.models.types import MoneyType


class BinaryVolumeEntry(Base):
    """
    BinaryVolumeEntry entity.

    total_volume = carry_in + volume + ghost_volume, where carry_in is
    after any write-off recorded in flushed_in.

    Attributes:
        id: Primary key
        user_id: Node owner
        leg: left/right
        week_start: Week key
        volume: Volume posted this week from downline sales
        ghost_volume: Active ghost credit contribution this week
        carry_in: Balance carried from the previous week
        flushed_in: Carry written off at the start of the week
        total_volume: Leg total used for weak/strong comparison
        carry_out: Balance carried into the next week
        flushed_out: Excess above the carry multiplier, discarded
        carry_since: Week the carried balance started accumulating
        is_weak: Whether this was the weak leg this week
    """

    __tablename__ = "binary_volume"
    __table_args__ = (
        UniqueConstraint("user_id", "leg", "week_start", name="uq_binary_volume_user_leg_week"),
        Index("idx_binary_volume_week", "week_start"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    leg: Mapped[str] = mapped_column(String(5), nullable=False)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)

    volume: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    ghost_volume: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    carry_in: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    flushed_in: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    total_volume: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    carry_out: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    flushed_out: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    carry_since: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_weak: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<BinaryVolumeEntry(user_id={self.user_id}, leg={self.leg}, "
            f"week={self.week_start}, total={self.total_volume})>"
        )
