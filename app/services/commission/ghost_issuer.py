"""
Ghost volume issuer.

Turns completed package purchases into temporary ghost volume credits on
the buyer's weak leg, and keeps the stored status of elapsed credits in
sync. The engine itself never reads the stored status: a credit counts
by its time window alone.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import settings
from app.models.enums import Leg
from app.models.ghost_volume_credit import GhostVolumeCredit
from app.models.package import Package, PackagePurchase
from app.repositories.binary_node_repository import BinaryNodeRepository
from app.repositories.ghost_credit_repository import GhostCreditRepository
from app.repositories.package_repository import PackageRepository
from app.services.base_service import BaseService, transaction
from app.services.commission.config import CommissionConfig
from app.services.commission.loader import WeekInputLoader
from app.utils.datetime_utils import utc_now, week_bounds, week_start_of
from app.utils.money import quantize_money

ZERO = Decimal("0")


def ghost_amount(
    purchase: PackagePurchase, package: Package, config: CommissionConfig
) -> Decimal:
    """Package ghost amount, or the configured share of the purchase price."""
    if package.ghost_volume_amount is not None:
        return quantize_money(package.ghost_volume_amount)
    return quantize_money(purchase.amount * config.ghost_volume_percent)


def weak_leg_of(volumes: tuple[Decimal, Decimal] | None) -> Leg:
    """Leg with less cumulative volume; left when unknown or tied."""
    if volumes is None:
        return Leg.LEFT
    left, right = volumes
    return Leg.LEFT if left <= right else Leg.RIGHT


class GhostVolumeService(BaseService):
    """Ghost credit issuance and expiry sync."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.loader = WeekInputLoader(session)
        self.packages = PackageRepository(session)
        self.credits = GhostCreditRepository(session)
        self.nodes = BinaryNodeRepository(session)

    @transaction
    async def issue_pending_credits(
        self, limit: int | None = None, now: datetime | None = None
    ) -> int:
        """
        Create credits for completed purchases that have none.

        The amount is trimmed so a member's credits starting in one week
        stay within the weekly ghost cap. A purchase that finds the cap
        exhausted still gets a zero credit so it is not picked up again.

        Args:
            limit: Max purchases per call (default ghost_issue_batch_size)
            now: Reference time for the stored status

        Returns:
            Number of credits created
        """
        now = now or utc_now()
        pending = await self.packages.purchases_without_ghost_credit(
            limit or settings.ghost_issue_batch_size
        )
        if not pending:
            return 0

        config = await self.loader.load_config()
        user_ids = sorted({purchase.user_id for purchase, _ in pending})
        leg_volumes = await self.nodes.get_leg_volumes(user_ids)
        used: dict[tuple[int, date], Decimal] = {}
        duration = timedelta(days=config.ghost_duration_days)

        created = 0
        for purchase, package in pending:
            starts_at = purchase.completed_at
            week = week_start_of(starts_at)
            key = (purchase.user_id, week)
            if key not in used:
                start, end = week_bounds(week)
                totals = await self.credits.totals_starting_between(
                    [purchase.user_id], start, end
                )
                used[key] = totals.get(purchase.user_id, ZERO)

            remaining = max(config.ghost_weekly_cap - used[key], ZERO)
            amount = min(ghost_amount(purchase, package, config), remaining)
            used[key] += amount

            credit = GhostVolumeCredit(
                user_id=purchase.user_id,
                leg=weak_leg_of(leg_volumes.get(purchase.user_id)).value,
                amount=amount,
                starts_at=starts_at,
                expires_at=starts_at + duration,
                purchase_id=purchase.id,
            )
            credit.status = credit.status_at(now).value
            self.session.add(credit)
            created += 1

            if amount == ZERO:
                self.logger.info(
                    f"Weekly ghost cap reached for user {purchase.user_id}",
                    extra={"purchase_id": purchase.id, "week_start": week.isoformat()},
                )

        await self.session.flush()
        self.logger.info(f"Issued {created} ghost credits")
        return created

    @transaction
    async def expire_credits(self, now: datetime | None = None) -> int:
        """
        Mark credits whose window has passed as expired.

        Returns:
            Number of credits updated
        """
        expired = await self.credits.expire_elapsed(now or utc_now())
        if expired:
            self.logger.info(f"Marked {expired} ghost credits expired")
        return expired
