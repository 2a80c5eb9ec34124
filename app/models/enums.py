"""
Shared enumerations for database models.

Values are stored as plain strings (String columns), so every enum is a
StrEnum and compares equal to its stored value.
"""

from enum import StrEnum


class Leg(StrEnum):
    """Binary tree leg."""

    LEFT = "left"
    RIGHT = "right"

    @property
    def other(self) -> "Leg":
        """Opposite leg."""
        return Leg.RIGHT if self is Leg.LEFT else Leg.LEFT


class CommissionStatus(StrEnum):
    """Commission entry status."""

    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class CommissionType(StrEnum):
    """Commission pool."""

    DIRECT = "direct"
    BINARY = "binary"
    OVERRIDE = "override"


class SettlementStatus(StrEnum):
    """Weekly settlement payout status."""

    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"


class GhostCreditStatus(StrEnum):
    """Ghost volume credit status."""

    ACTIVE = "active"
    EXPIRED = "expired"


class PurchaseStatus(StrEnum):
    """Package purchase status."""

    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"


class RankChangeReason(StrEnum):
    """Why a rank history row was written."""

    EVALUATION = "evaluation"
    MANUAL = "manual"
