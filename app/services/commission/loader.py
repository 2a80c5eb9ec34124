"""
Week input loader.

Reads everything one run needs from the database and returns a plain
WeekInputs snapshot plus the frozen CommissionConfig. Nothing here
computes commissions.
"""

from collections import Counter
from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import Leg
from app.repositories.binary_node_repository import BinaryNodeRepository
from app.repositories.binary_volume_repository import BinaryVolumeRepository
from app.repositories.commission_setting_repository import CommissionSettingRepository
from app.repositories.ghost_credit_repository import GhostCreditRepository
from app.repositories.package_repository import PackageRepository
from app.repositories.rank_repository import RankDefinitionRepository
from app.repositories.referral_edge_repository import ReferralEdgeRepository
from app.repositories.transaction_repository import TransactionRepository
from app.repositories.user_repository import UserRepository
from app.services.commission.config import (
    CommissionConfig,
    GhostExpiryPolicy,
    GlobalScalePolicy,
    RankPolicy,
    load_commission_config,
)
from app.services.commission.inputs import (
    CarryBalance,
    GhostCreditRecord,
    MemberSnapshot,
    SaleRecord,
    WeekInputs,
)
from app.utils.datetime_utils import previous_week, week_bounds, week_start_of

ZERO = Decimal("0")


class WeekInputLoader:
    """Builds run inputs from the database."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.users = UserRepository(session)
        self.edges = ReferralEdgeRepository(session)
        self.nodes = BinaryNodeRepository(session)
        self.transactions = TransactionRepository(session)
        self.volumes = BinaryVolumeRepository(session)
        self.ghost_credits = GhostCreditRepository(session)
        self.packages = PackageRepository(session)
        self.ranks = RankDefinitionRepository(session)
        self.settings = CommissionSettingRepository(session)

    async def load_config(
        self,
        global_scale_policy: GlobalScalePolicy | str = GlobalScalePolicy.ALL_POOLS,
        ghost_expiry_policy: GhostExpiryPolicy | str = GhostExpiryPolicy.PRORATED,
        rank_policy: RankPolicy | str = RankPolicy.STICKY,
    ) -> CommissionConfig:
        """
        Load and freeze commission settings and rank rules.

        Raises:
            ConfigurationError: If settings are missing or malformed
        """
        return load_commission_config(
            await self.settings.as_mapping(),
            await self.ranks.find_active(),
            global_scale_policy=global_scale_policy,
            ghost_expiry_policy=ghost_expiry_policy,
            rank_policy=rank_policy,
        )

    async def load_week(self, week_start: date, config: CommissionConfig) -> WeekInputs:
        """
        Load the snapshot for one week.

        Carry-in and weak-leg history are read from finalized weeks only;
        draft volume rows never feed another week.

        Args:
            week_start: Validated week key
            config: Run configuration (carry window size)

        Returns:
            WeekInputs
        """
        users = await self.users.find_members()
        unlock_levels = await self.packages.unlock_levels()
        last_active = await self.transactions.last_active_weeks(week_start)
        nodes = await self.nodes.find_all_nodes()
        leg_volumes = {n.user_id: (n.left_volume, n.right_volume) for n in nodes}

        members = {
            user.id: MemberSnapshot(
                user_id=user.id,
                rank_level=user.rank_level,
                hashrate_ths=user.hashrate_ths,
                unlock_level=unlock_levels.get(user.id, config.default_unlock_level),
                joined_week=week_start_of(user.created_at) if user.created_at else None,
                last_active_week=max(
                    (w for w in (user.last_active_week, last_active.get(user.id)) if w),
                    default=None,
                ),
                left_cumulative=leg_volumes.get(user.id, (ZERO, ZERO))[0],
                right_cumulative=leg_volumes.get(user.id, (ZERO, ZERO))[1],
            )
            for user in users
        }

        conflicts: dict[int, str] = {}

        sponsors: dict[int, int] = {}
        links = await self.edges.find_direct_links()
        sponsor_counts = Counter(referee for referee, _ in links)
        for referee, sponsor in links:
            if sponsor_counts[referee] > 1:
                conflicts[referee] = f"{sponsor_counts[referee]} active sponsors"
                continue
            sponsors[referee] = sponsor

        binary_parents: dict[int, tuple[int, Leg]] = {}
        placements = [
            (child, node.user_id, leg)
            for node in nodes
            for child, leg in (
                (node.left_child_id, Leg.LEFT),
                (node.right_child_id, Leg.RIGHT),
            )
            if child is not None
        ]
        parent_counts = Counter(child for child, _, _ in placements)
        for child, parent, leg in placements:
            if parent_counts[child] > 1:
                conflicts.setdefault(child, f"placed under {parent_counts[child]} binary parents")
                continue
            binary_parents[child] = (parent, leg)

        transactions = [
            SaleRecord(
                transaction_id=tx.id,
                user_id=tx.user_id,
                amount=tx.amount,
                week_start=tx.week_start,
                currency=tx.currency,
                is_eligible=tx.is_eligible,
            )
            for tx in await self.transactions.find_for_week(week_start)
        ]

        start, end = week_bounds(week_start)
        ghost_credits = [
            GhostCreditRecord(
                credit_id=credit.id,
                user_id=credit.user_id,
                leg=Leg(credit.leg),
                amount=credit.amount,
                starts_at=credit.starts_at,
                expires_at=credit.expires_at,
            )
            for credit in await self.ghost_credits.find_overlapping(start, end)
        ]

        carry_in = {
            (row.user_id, Leg(row.leg)): CarryBalance(row.carry_out, row.carry_since)
            for row in await self.volumes.find_for_week(
                previous_week(week_start), finalized_only=True
            )
            if row.carry_out > 0
        }

        return WeekInputs(
            week_start=week_start,
            members=members,
            sponsors=sponsors,
            binary_parents=binary_parents,
            placement_conflicts=conflicts,
            transactions=transactions,
            ghost_credits=ghost_credits,
            carry_in=carry_in,
            weak_leg_history=await self.volumes.weak_leg_history(
                week_start, config.carry_average_weeks - 1
            ),
            prior_sales=await self.transactions.sales_before(week_start),
        )
