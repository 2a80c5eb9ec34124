"""
Week input snapshot.

Plain, immutable records the engine computes from. The loader builds
them from the database; tests build them by hand.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from app.config.business_constants import DEFAULT_UNLOCK_LEVEL
from app.models.enums import Leg

ZERO = Decimal("0")


@dataclass(frozen=True)
class MemberSnapshot:
    """A member's state at the start of the week."""

    user_id: int
    rank_level: int = 0
    hashrate_ths: Decimal = ZERO
    unlock_level: int = DEFAULT_UNLOCK_LEVEL
    joined_week: date | None = None
    last_active_week: date | None = None
    left_cumulative: Decimal = ZERO
    right_cumulative: Decimal = ZERO


@dataclass(frozen=True)
class SaleRecord:
    """A sales transaction."""

    transaction_id: int
    user_id: int
    amount: Decimal
    week_start: date
    currency: str = "USD"
    is_eligible: bool = True


@dataclass(frozen=True)
class GhostCreditRecord:
    """A ghost volume credit window."""

    credit_id: int
    user_id: int
    leg: Leg
    amount: Decimal
    starts_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class CarryBalance:
    """Carry-out of the previous week for one leg."""

    amount: Decimal
    since: date | None = None


@dataclass
class WeekInputs:
    """
    Everything one weekly run reads.

    Attributes:
        week_start: Week key
        members: Members by user ID
        sponsors: referee -> level 1 sponsor (active edges only)
        binary_parents: child -> (parent, leg the child sits on)
        placement_conflicts: Users with more than one sponsor or parent
        transactions: The week's transactions (eligible or not)
        ghost_credits: Credits whose window overlaps the week
        carry_in: (user, leg) -> previous week's carry-out
        weak_leg_history: user -> recent weak-leg totals, newest first
        prior_sales: user -> eligible sales before this week
    """

    week_start: date
    members: dict[int, MemberSnapshot]
    sponsors: dict[int, int] = field(default_factory=dict)
    binary_parents: dict[int, tuple[int, Leg]] = field(default_factory=dict)
    placement_conflicts: dict[int, str] = field(default_factory=dict)
    transactions: list[SaleRecord] = field(default_factory=list)
    ghost_credits: list[GhostCreditRecord] = field(default_factory=list)
    carry_in: dict[tuple[int, Leg], CarryBalance] = field(default_factory=dict)
    weak_leg_history: dict[int, list[Decimal]] = field(default_factory=dict)
    prior_sales: dict[int, Decimal] = field(default_factory=dict)
