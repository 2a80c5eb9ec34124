"""
Services.

Business logic layer.
"""

# Base Service Infrastructure
from app.services.base_service import (
    BaseService,
    log_operation,
    transaction,
)

# Commission Settlement
from app.services.commission import (
    CommissionSettlementService,
    GhostVolumeService,
    RankService,
)


__all__ = [
    # Base Infrastructure
    "BaseService",
    "transaction",
    "log_operation",
    # Commission Settlement
    "CommissionSettlementService",
    "GhostVolumeService",
    "RankService",
]
