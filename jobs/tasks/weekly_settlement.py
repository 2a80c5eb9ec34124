"""
Weekly settlement task.

Finalizes the previous week every Monday. Pending ghost credits are
issued first, so purchases completed after the last daily issuance
still count in the week they fall in. Finalization is idempotent, so a
retry after a partial failure or a duplicate schedule is harmless.
"""

import dramatiq
from loguru import logger

from app.config.operational_constants import DRAMATIQ_TIME_LIMIT_LONG, SETTLEMENT_MAX_RETRIES
from app.services.commission.service import CommissionSettlementService, FinalizationOutcome
from app.utils.datetime_utils import previous_week, utc_now, week_start_of
from app.utils.redis_utils import redis_client_context
from jobs.async_runner import create_local_session, run_async
from jobs.broker import should_retry_settlement
from jobs.tasks.ghost_volume import issue_all_pending_credits


def default_week() -> str:
    """Week key of the last completed week."""
    return previous_week(week_start_of(utc_now())).isoformat()


@dramatiq.actor(
    max_retries=SETTLEMENT_MAX_RETRIES,
    time_limit=DRAMATIQ_TIME_LIMIT_LONG,
    retry_when=should_retry_settlement,
)
def finalize_week(week_start: str | None = None) -> None:
    """
    Finalize a week's commissions.

    Args:
        week_start: Week key (default: the previous week)
    """
    week = week_start or default_week()
    logger.info(f"Starting weekly settlement for {week}...")

    try:
        outcome = run_async(_finalize_week_async(week))
    except Exception as e:
        logger.exception(f"Weekly settlement for {week} failed: {e}")
        raise

    if outcome.already_finalized:
        logger.info(f"Week {week} was already finalized ({outcome.commitment})")
    else:
        logger.info(
            f"Weekly settlement for {week} complete: "
            f"{outcome.settlement_count} settlements, total {outcome.total_amount}, "
            f"commitment {outcome.commitment}"
        )


async def _finalize_week_async(week_start: str) -> FinalizationOutcome:
    """Async implementation of weekly finalization."""
    async with redis_client_context() as redis_client:
        issued = await issue_all_pending_credits(redis_client)
        if issued:
            logger.info(f"Issued {issued} pending ghost credits before settlement")
        async with create_local_session() as session:
            service = CommissionSettlementService(session, redis_client)
            return await service.finalize_week(week_start)
