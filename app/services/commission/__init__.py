"""
Weekly commission settlement.

Modules:
- config: frozen rates, caps, rank rules and policies for one run
- inputs / loader: week snapshot and the database loader that builds it
- aggregator, volume_ledger, rank_evaluator: sales, leg volume and ranks
- direct_calculator, binary_calculator, override_calculator: unscaled pools
- cap_scaling: pool and global scale factors
- settlement, engine: per-member settlement lines and the full run
- writer, service: persistence, locking and finalization
- rank_service, ghost_issuer: rank administration and ghost credits
"""

from app.services.commission.config import (
    CommissionConfig,
    GhostExpiryPolicy,
    GlobalScalePolicy,
    RankPolicy,
    load_commission_config,
)
from app.services.commission.engine import WeeklyCommissionEngine, WeekResult
from app.services.commission.ghost_issuer import GhostVolumeService
from app.services.commission.rank_service import RankService
from app.services.commission.service import (
    CalculationOutcome,
    CommissionSettlementService,
    FinalizationOutcome,
    StoredWeek,
)

__all__ = [
    "CalculationOutcome",
    "CommissionConfig",
    "CommissionSettlementService",
    "FinalizationOutcome",
    "GhostExpiryPolicy",
    "GhostVolumeService",
    "GlobalScalePolicy",
    "RankPolicy",
    "RankService",
    "StoredWeek",
    "WeekResult",
    "WeeklyCommissionEngine",
    "load_commission_config",
]
