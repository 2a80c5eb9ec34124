"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from app.models.base import Base

# Members and trees
from app.models.binary_node import BinaryNode
from app.models.binary_volume import BinaryVolumeEntry
from app.models.referral_edge import ReferralEdge
from app.models.user import User

# Sales
from app.models.package import Package, PackagePurchase
from app.models.transaction import Transaction

# Volume bonuses
from app.models.ghost_volume_credit import GhostVolumeCredit

# Ranks and configuration
from app.models.commission_setting import CommissionSetting
from app.models.rank_definition import RankDefinition
from app.models.user_rank_history import UserRankHistory

# Commissions and settlements
from app.models.commission import (
    BinaryCommission,
    DirectCommission,
    OverrideCommission,
)
from app.models.weekly_settlement import WeeklySettlement, WeeklySettlementMeta

from app.models.enums import (
    CommissionStatus,
    CommissionType,
    GhostCreditStatus,
    Leg,
    PurchaseStatus,
    RankChangeReason,
    SettlementStatus,
)

__all__ = [
    "Base",
    "BinaryCommission",
    "BinaryNode",
    "BinaryVolumeEntry",
    "CommissionSetting",
    "CommissionStatus",
    "CommissionType",
    "DirectCommission",
    "GhostCreditStatus",
    "GhostVolumeCredit",
    "Leg",
    "OverrideCommission",
    "Package",
    "PackagePurchase",
    "PurchaseStatus",
    "RankChangeReason",
    "RankDefinition",
    "ReferralEdge",
    "SettlementStatus",
    "Transaction",
    "User",
    "UserRankHistory",
    "WeeklySettlement",
    "WeeklySettlementMeta",
]
