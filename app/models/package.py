"""
Package and PackagePurchase models.

Mining packages gate direct commission tiers (commission_unlock_level)
and seed ghost volume credits.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.enums import PurchaseStatus
from app.models.types import MoneyType


class Package(Base):
    """
    Package entity.

    Attributes:
        id: Primary key
        name: Catalog name
        price: Package price
        commission_unlock_level: Highest direct tier the owner can earn
        ghost_volume_amount: Ghost credit granted on purchase (None = default %)
        is_active: Listed in the catalog
    """

    __tablename__ = "packages"
    __table_args__ = (
        CheckConstraint(
            "commission_unlock_level BETWEEN 1 AND 3",
            name="check_package_unlock_level",
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    commission_unlock_level: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
        comment="Direct commission tiers unlocked for the owner",
    )
    ghost_volume_amount: Mapped[Decimal | None] = mapped_column(
        MoneyType,
        nullable=True,
        comment="Ghost volume on purchase; NULL uses the default percent of price",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    purchases: Mapped[list["PackagePurchase"]] = relationship(
        "PackagePurchase", back_populates="package"
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Package(id={self.id}, name={self.name!r}, "
            f"unlock={self.commission_unlock_level})>"
        )


class PackagePurchase(Base):
    """
    PackagePurchase entity.

    Attributes:
        id: Primary key
        user_id: Buyer
        package_id: Purchased package
        amount: Amount paid
        status: pending/completed/refunded
        completed_at: Completion timestamp
        created_at: Creation timestamp
    """

    __tablename__ = "package_purchases"
    __table_args__ = (
        Index("idx_package_purchases_user_status", "user_id", "status"),
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
    package_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("packages.id", ondelete="RESTRICT"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=PurchaseStatus.PENDING.value,
        nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    package: Mapped["Package"] = relationship(
        "Package", back_populates="purchases"
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<PackagePurchase(id={self.id}, user_id={self.user_id}, "
            f"package_id={self.package_id}, status={self.status})>"
        )
