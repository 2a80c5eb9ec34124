"""
Exception handling utilities.

Defines the commission engine's error types and the categories jobs use
to decide whether a failure is worth retrying.
"""

from datetime import date

from sqlalchemy.exc import OperationalError


class CommissionEngineError(Exception):
    """Base class for all commission engine errors."""

    error_code = "ENGINE_ERROR"


class InvalidWeekError(CommissionEngineError):
    """Raised when a week key is missing, malformed, or not a week start."""

    error_code = "INVALID_WEEK"


class ConfigurationError(CommissionEngineError):
    """Raised when required rates or caps are missing or malformed."""

    error_code = "CONFIGURATION_ERROR"


class WeekAlreadyProcessing(CommissionEngineError):
    """Raised when another run holds the lock for the same week."""

    error_code = "WEEK_ALREADY_PROCESSING"

    def __init__(self, week_start: date) -> None:
        self.week_start = week_start
        super().__init__(
            f"Week {week_start.isoformat()} is already being processed"
        )


class FinalizationFailed(CommissionEngineError):
    """Raised when persisting a week fails; nothing was written."""

    error_code = "FINALIZATION_FAILED"

    def __init__(self, week_start: date, reason: str) -> None:
        self.week_start = week_start
        self.reason = reason
        super().__init__(
            f"Finalization of week {week_start.isoformat()} failed: {reason}"
        )


class FinalizationOutOfOrder(CommissionEngineError):
    """Raised when finalizing a week would break the weekly carry chain."""

    error_code = "FINALIZATION_OUT_OF_ORDER"

    def __init__(self, week_start: date, reason: str) -> None:
        self.week_start = week_start
        self.reason = reason
        super().__init__(
            f"Week {week_start.isoformat()} cannot be finalized: {reason}"
        )


class SettlementTimeout(CommissionEngineError):
    """Raised when a settlement run exceeds its time budget."""

    error_code = "SETTLEMENT_TIMEOUT"

    def __init__(self, week_start: date, timeout: float) -> None:
        self.week_start = week_start
        self.timeout = timeout
        super().__init__(
            f"Settlement of week {week_start.isoformat()} "
            f"timed out after {timeout}s"
        )


class TreeIntegrityError(CommissionEngineError):
    """Raised for a single member whose sponsor or binary chain is corrupt."""

    error_code = "TREE_INTEGRITY"

    def __init__(self, user_id: int, reason: str) -> None:
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"User {user_id}: {reason}")


class LockNotAcquiredError(Exception):
    """Raised when a distributed lock cannot be taken."""


# Exception categories based on handling strategy

# Never retried - the same input will fail the same way
NON_RETRYABLE = (
    InvalidWeekError,
    ConfigurationError,
    FinalizationOutOfOrder,
)

# Transient - the job runner may retry
RETRYABLE = (
    OperationalError,
    LockNotAcquiredError,
    WeekAlreadyProcessing,
    FinalizationFailed,
    SettlementTimeout,
)


def is_retryable(exc: BaseException) -> bool:
    """
    Check if a failed job should be retried.

    Args:
        exc: Exception to check

    Returns:
        True if exception is transient
    """
    if isinstance(exc, NON_RETRYABLE):
        return False
    return isinstance(exc, RETRYABLE)
