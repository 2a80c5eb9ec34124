"""
User model.

A platform member as seen by the commission engine: rank, hashrate and
activity markers. Sponsor links live in referral_edges, binary placement
in binary_nodes.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.types import HashrateType


if TYPE_CHECKING:
    from app.models.binary_node import BinaryNode


class User(Base):
    """
    User entity.

    Attributes:
        id: Primary key
        username: Display handle
        rank_level: Stored rank level (0 = unranked member)
        rank_name: Stored rank name
        hashrate_ths: Owned hashrate in TH/s
        last_active_week: Week of the last eligible personal purchase
        is_active: Account enabled flag
        created_at: Signup timestamp
    """

    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_rank_level", "rank_level"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    username: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True
    )

    # Rank
    rank_level: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Current rank level (0 = Member)",
    )
    rank_name: Mapped[str] = mapped_column(
        String(64),
        default="Member",
        nullable=False,
    )

    hashrate_ths: Mapped[Decimal] = mapped_column(
        HashrateType,
        default=Decimal("0"),
        nullable=False,
        comment="Owned mining hashrate in TH/s",
    )

    last_active_week: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
        comment="Week start of last eligible personal purchase",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    binary_node: Mapped["BinaryNode | None"] = relationship(
        "BinaryNode",
        back_populates="user",
        uselist=False,
        foreign_keys="BinaryNode.user_id",
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<User(id={self.id}, rank_level={self.rank_level}, "
            f"active={self.is_active})>"
        )
