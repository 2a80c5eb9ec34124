"""
ReferralEdge model.

Sponsor to referee link written once at signup. Level 1 edges form the
sponsor chain; deeper levels are denormalized copies kept by the signup
flow.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class ReferralEdge(Base):
    """
    ReferralEdge entity.

    Attributes:
        id: Primary key
        sponsor_id: Upline user
        referee_id: Downline user
        level: Distance between sponsor and referee (1 = direct)
        leg: Binary leg the referee was placed on (left/right)
        is_active: Edge participates in commission walks
        created_at: Signup timestamp
    """

    __tablename__ = "referral_edges"
    __table_args__ = (
        UniqueConstraint("sponsor_id", "referee_id", name="uq_referral_edge"),
        Index("idx_referral_edges_referee_level", "referee_id", "level"),
        CheckConstraint("level >= 1", name="check_referral_level_positive"),
        CheckConstraint("sponsor_id != referee_id", name="check_referral_not_self"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    sponsor_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    referee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    leg: Mapped[str | None] = mapped_column(String(5), nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ReferralEdge(sponsor_id={self.sponsor_id}, "
            f"referee_id={self.referee_id}, level={self.level})>"
        )
