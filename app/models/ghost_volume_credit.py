"""
GhostVolumeCredit model.

Temporary volume bonus assigned to one leg after a package purchase.
Whether a credit counts is derived from its time window; the stored
status column is a cache synced by the ghost volume job.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.enums import GhostCreditStatus
from app.models.types import MoneyType


class GhostVolumeCredit(Base):
    """
    GhostVolumeCredit entity.

    Attributes:
        id: Primary key
        user_id: Credited user
        leg: Leg receiving the volume
        amount: Credited volume
        starts_at: Window start
        expires_at: Window end (exclusive)
        status: Cached status (active/expired)
        purchase_id: Package purchase that produced the credit
        created_at: Creation timestamp
    """

    __tablename__ = "ghost_volume_credits"
    __table_args__ = (
        Index("idx_ghost_credits_window", "starts_at", "expires_at"),
        CheckConstraint("amount >= 0", name="check_ghost_amount_non_negative"),
        CheckConstraint("expires_at > starts_at", name="check_ghost_window"),
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
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    starts_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(10),
        default=GhostCreditStatus.ACTIVE.value,
        nullable=False,
    )
    purchase_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("package_purchases.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def status_at(self, moment: datetime) -> GhostCreditStatus:
        """Derived status at a point in time."""
        if self.starts_at <= moment < self.expires_at:
            return GhostCreditStatus.ACTIVE
        return GhostCreditStatus.EXPIRED

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<GhostVolumeCredit(id={self.id}, user_id={self.user_id}, "
            f"leg={self.leg}, amount={self.amount})>"
        )
