"""
Rank evaluation task.

Re-evaluates every member's rank on demand (admin trigger). Weekly
finalization records rank changes on its own.
"""

from typing import Any

import dramatiq
from loguru import logger

from app.config.operational_constants import DRAMATIQ_TIME_LIMIT_STANDARD, LOCK_TIMEOUT_EXTENDED
from app.services.commission.rank_service import RankService
from app.utils.distributed_lock import DistributedLock
from app.utils.redis_utils import redis_client_context
from jobs.async_runner import create_local_session, run_async
from jobs.broker import broker  # noqa: F401


@dramatiq.actor(max_retries=3, time_limit=DRAMATIQ_TIME_LIMIT_STANDARD)
def evaluate_all_ranks(week_start: str | None = None) -> None:
    """
    Evaluate and store every member's rank.

    Args:
        week_start: Week whose sales count (default: current week)
    """
    logger.info("Starting rank evaluation...")

    try:
        result = run_async(_evaluate_all_ranks_async(week_start))
    except Exception as e:
        logger.exception(f"Rank evaluation failed: {e}")
        raise

    if result is None:
        logger.info("Rank evaluation already running, skipped")
        return
    logger.info(
        f"Rank evaluation complete: {result['evaluated']} evaluated, "
        f"{result['changed']} changed"
    )


async def _evaluate_all_ranks_async(week_start: str | None) -> dict[str, Any] | None:
    """Async implementation of rank evaluation."""
    async with redis_client_context() as redis_client:
        lock = DistributedLock(redis_client=redis_client)
        async with lock.lock("rank_evaluation", timeout=LOCK_TIMEOUT_EXTENDED) as acquired:
            if not acquired:
                return None
            async with create_local_session() as session:
                return await RankService(session).evaluate_all(week_start)
