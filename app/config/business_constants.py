"""
Business logic constants for the commission engine.

Defaults used when a commission_settings row is absent. Rates and caps
are fractions (Decimal("0.10") = 10%); absolute caps are USD.
"""

from decimal import Decimal


# =============================================================================
# DIRECT COMMISSIONS
# =============================================================================

# Sponsor tier rates, applied to the transaction amount
DIRECT_RATES = {
    1: Decimal("0.10"),
    2: Decimal("0.05"),
    3: Decimal("0.03"),
}

# Tier unlocked for members without a completed package
DEFAULT_UNLOCK_LEVEL = 1

DIRECT_DEPTH = 3


# =============================================================================
# BINARY COMMISSIONS
# =============================================================================

BINARY_RATE = Decimal("0.10")

# Weekly cap for members without a rank (or a rank without a cap)
BINARY_WEEKLY_CAP_DEFAULT = Decimal("250")

# Absolute binary cap regardless of rank
BINARY_HARD_CAP = Decimal("40000")

# Carry-forward is capped at this multiple of average weak-leg volume
CARRY_MULTIPLIER = Decimal("5")

# Carry limit never drops below this volume (members with little or no
# weak-leg history); the volume an unranked weekly binary cap pays out
CARRY_LIMIT_FLOOR = Decimal("2500")

# Weeks averaged for the carry multiplier (including the current week)
CARRY_AVERAGE_WEEKS = 4

# Consecutive inactive weeks before carry is written off
INACTIVITY_FLUSH_WEEKS = 8

# Carry older than this is written off
VOLUME_FLUSH_DAYS = 180


# =============================================================================
# OVERRIDE COMMISSIONS
# =============================================================================

OVERRIDE_RATES = {
    1: Decimal("0.05"),
    2: Decimal("0.03"),
    3: Decimal("0.02"),
}

# Minimum rank level an upline needs to earn each override level
OVERRIDE_MIN_RANK_LEVELS = {
    1: 1,
    2: 3,
    3: 5,
}

OVERRIDE_DEPTH = 3


# =============================================================================
# POOL CAPS (fraction of weekly SV)
# =============================================================================

DIRECT_POOL_CAP = Decimal("0.20")
BINARY_POOL_CAP = Decimal("0.17")
OVERRIDE_POOL_CAP = Decimal("0.03")
GLOBAL_CAP = Decimal("0.40")


# =============================================================================
# GHOST VOLUME
# =============================================================================

# Ghost volume as a fraction of the package price when the package has none
GHOST_VOLUME_PERCENT = Decimal("0.80")

GHOST_DURATION_DAYS = 10

# Max ghost volume credited to one member per week
GHOST_WEEKLY_CAP = Decimal("20000")


# =============================================================================
# RANKS
# =============================================================================

UNRANKED_LEVEL = 0
UNRANKED_NAME = "Member"
