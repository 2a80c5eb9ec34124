"""
UserRankHistory model.

Append-only log of rank changes, written when the evaluated rank differs
from the stored one or an admin sets a rank by hand.
"""

from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.enums import RankChangeReason


class UserRankHistory(Base):
    """
    UserRankHistory entity.

    Attributes:
        id: Primary key
        user_id: User whose rank changed
        old_rank_level: Level before the change
        new_rank_level: Level after the change
        new_rank_name: Name after the change
        criteria_met: Metric snapshot used for the decision
        week_start: Settlement week that triggered the change (if any)
        reason: evaluation/manual
        note: Free-text admin note
        achieved_at: When the change was recorded
    """

    __tablename__ = "user_rank_history"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    old_rank_level: Mapped[int] = mapped_column(Integer, nullable=False)
    new_rank_level: Mapped[int] = mapped_column(Integer, nullable=False)
    new_rank_name: Mapped[str] = mapped_column(String(64), nullable=False)
    criteria_met: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )
    week_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    reason: Mapped[str] = mapped_column(
        String(20),
        default=RankChangeReason.EVALUATION.value,
        nullable=False,
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    achieved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<UserRankHistory(user_id={self.user_id}, "
            f"{self.old_rank_level}->{self.new_rank_level})>"
        )
