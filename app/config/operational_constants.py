"""
Operational constants for the settlement engine.

Technical/operational constants used across the application.
Includes lock timeouts, retry configurations and job time limits.
"""

# =============================================================================
# LOCK TIMEOUTS (seconds)
# =============================================================================
# Used by distributed_lock.py for Redis locks

# Medium operations (ghost credit issuance)
LOCK_TIMEOUT_MEDIUM = 60

# Long operations (weekly calculation and finalization)
LOCK_TIMEOUT_LONG = 300

# Very long operations (full rank re-evaluation)
LOCK_TIMEOUT_EXTENDED = 600


# =============================================================================
# BLOCKING TIMEOUTS (seconds)
# =============================================================================
# How long to wait for lock acquisition

BLOCKING_TIMEOUT_DEFAULT = 5.0

# Waiting out a running ghost credit issuance before settlement
BLOCKING_TIMEOUT_LONG = 60.0


# =============================================================================
# RETRY CONFIGURATIONS
# =============================================================================

# Default retry count for most operations
DEFAULT_MAX_RETRIES = 3

# Weekly finalization (critical - more retries)
SETTLEMENT_MAX_RETRIES = 5


# =============================================================================
# DRAMATIQ TASK TIME LIMITS (milliseconds)
# =============================================================================

# Short tasks (1 minute) - ghost credit expiry sync
DRAMATIQ_TIME_LIMIT_SHORT = 60_000

# Standard tasks (5 minutes) - ghost credit issuance, rank evaluation
DRAMATIQ_TIME_LIMIT_STANDARD = 300_000

# Long tasks (10 minutes) - weekly settlement
DRAMATIQ_TIME_LIMIT_LONG = 600_000


# =============================================================================
# API LIMITS
# =============================================================================

# Recent rank promotions returned by the stats endpoint
RANK_STATS_RECENT_LIMIT = 20
