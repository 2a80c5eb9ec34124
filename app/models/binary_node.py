"""
BinaryNode model.

Placement of a user in the binary tree plus running leg totals. The
placement process writes child references; the commission engine adds
posted weekly volume to the cumulative columns at finalization.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.types import MoneyType


if TYPE_CHECKING:
    from app.models.user import User


class BinaryNode(Base):
    """
    BinaryNode entity.

    Attributes:
        user_id: Owner of the node (primary key)
        left_child_id: User placed directly on the left
        right_child_id: User placed directly on the right
        left_volume: Cumulative volume posted to the left leg
        right_volume: Cumulative volume posted to the right leg
        left_count: Members in the left subtree
        right_count: Members in the right subtree
        updated_at: Last mutation
    """

    __tablename__ = "binary_nodes"

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    left_child_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    right_child_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    left_volume: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    right_volume: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    left_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    right_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    user: Mapped["User"] = relationship(
        "User",
        back_populates="binary_node",
        foreign_keys=[user_id],
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<BinaryNode(user_id={self.user_id}, "
            f"left={self.left_volume}, right={self.right_volume})>"
        )
