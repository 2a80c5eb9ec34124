"""
Package repository.

Data access layer for packages and package purchases.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import PurchaseStatus
from app.models.ghost_volume_credit import GhostVolumeCredit
from app.models.package import Package, PackagePurchase
from app.repositories.base import BaseRepository


class PackageRepository(BaseRepository[Package]):
    """Package repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize package repository."""
        super().__init__(Package, session)

    async def unlock_levels(self) -> dict[int, int]:
        """
        Get each buyer's highest unlocked direct commission tier.

        Returns:
            Mapping of user ID to unlock level (completed purchases only)
        """
        stmt = (
            select(
                PackagePurchase.user_id,
                func.max(Package.commission_unlock_level),
            )
            .join(Package, Package.id == PackagePurchase.package_id)
            .where(PackagePurchase.status == PurchaseStatus.COMPLETED.value)
            .group_by(PackagePurchase.user_id)
        )
        result = await self.session.execute(stmt)
        return {uid: level for uid, level in result.all()}

    async def purchases_without_ghost_credit(
        self, limit: int = 1000
    ) -> list[tuple[PackagePurchase, Package]]:
        """
        Get completed purchases that have not produced a ghost credit yet.

        Args:
            limit: Max number of purchases

        Returns:
            (purchase, package) pairs in completion order
        """
        stmt = (
            select(PackagePurchase, Package)
            .join(Package, Package.id == PackagePurchase.package_id)
            .outerjoin(
                GhostVolumeCredit,
                GhostVolumeCredit.purchase_id == PackagePurchase.id,
            )
            .where(
                PackagePurchase.status == PurchaseStatus.COMPLETED.value,
                PackagePurchase.completed_at.is_not(None),
                GhostVolumeCredit.id.is_(None),
            )
            .order_by(PackagePurchase.completed_at, PackagePurchase.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [(purchase, package) for purchase, package in result.all()]
