"""
Datetime utilities.

Provides timezone-aware datetime functions and week key handling.
Weeks start on Monday 00:00 UTC; a week key is the ISO date of that
Monday.
"""

from datetime import UTC, date, datetime, time, timedelta

from app.utils.exceptions import InvalidWeekError

WEEK = timedelta(days=7)


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone info.

    Returns:
        Current datetime in UTC with timezone awareness
    """
    return datetime.now(UTC)


def parse_week_key(value: str | date | None) -> date:
    """
    Parse and validate a week key.

    Args:
        value: ISO date string (YYYY-MM-DD) or date

    Returns:
        The Monday the key names

    Raises:
        InvalidWeekError: If the key is missing, malformed or not a Monday
    """
    if value is None or value == "":
        raise InvalidWeekError("weekStart is required")

    if isinstance(value, datetime):
        raise InvalidWeekError("weekStart must be a date, not a timestamp")

    if isinstance(value, date):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = date.fromisoformat(value)
        except ValueError as e:
            raise InvalidWeekError(
                f"weekStart must be YYYY-MM-DD, got {value!r}"
            ) from e
        if len(value) != 10:
            raise InvalidWeekError(
                f"weekStart must be YYYY-MM-DD, got {value!r}"
            )
    else:
        raise InvalidWeekError(f"Unsupported weekStart type: {type(value).__name__}")

    if parsed.weekday() != 0:
        raise InvalidWeekError(
            f"weekStart {parsed.isoformat()} is not a week boundary (Monday)"
        )
    return parsed


def week_start_of(moment: date | datetime) -> date:
    """Monday of the week containing the given date or UTC timestamp."""
    if isinstance(moment, datetime):
        moment = moment.astimezone(UTC).date()
    return moment - timedelta(days=moment.weekday())


def week_bounds(week_start: date) -> tuple[datetime, datetime]:
    """
    Get the UTC interval covered by a week.

    Returns:
        (start, end) where end is exclusive
    """
    start = datetime.combine(week_start, time.min, tzinfo=UTC)
    return start, start + WEEK


def previous_week(week_start: date) -> date:
    """Week key of the preceding week."""
    return week_start - WEEK


def weeks_between(earlier: date, later: date) -> int:
    """Whole weeks from one week key to another (negative if reversed)."""
    return (later - earlier).days // 7
