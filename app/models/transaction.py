"""
Transaction model.

A sales transaction produced by the purchase/payment pipeline. Immutable
once written; the commission engine only reads it.
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
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.types import MoneyType


class Transaction(Base):
    """
    Transaction entity.

    Attributes:
        id: Primary key
        user_id: Buyer
        amount: Sale amount
        currency: Currency code
        week_start: Monday of the week the sale belongs to
        is_eligible: Whether the sale counts toward volume and commissions
        purchase_id: Originating package purchase (if any)
        created_at: When the sale was recorded
    """

    __tablename__ = "transactions"
    __table_args__ = (
        Index("idx_transactions_week_eligible", "week_start", "is_eligible"),
        CheckConstraint("amount >= 0", name="check_transaction_amount_non_negative"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    currency: Mapped[str] = mapped_column(
        String(10), default="USD", nullable=False
    )
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    is_eligible: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="Counts toward SV and commissions",
    )
    purchase_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("package_purchases.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Transaction(id={self.id}, user_id={self.user_id}, "
            f"amount={self.amount}, week={self.week_start})>"
        )
