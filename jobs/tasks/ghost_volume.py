"""
Ghost volume tasks.

Issues credits for newly completed package purchases and syncs the
stored status of elapsed credits. Weekly settlement drains the pending
purchases first so late purchases count in the week that just closed.
"""

from typing import Any

import dramatiq
from loguru import logger

from app.config.operational_constants import (
    BLOCKING_TIMEOUT_LONG,
    DRAMATIQ_TIME_LIMIT_SHORT,
    DRAMATIQ_TIME_LIMIT_STANDARD,
    LOCK_TIMEOUT_MEDIUM,
)
from app.config.settings import settings
from app.services.commission.ghost_issuer import GhostVolumeService
from app.utils.distributed_lock import DistributedLock
from app.utils.exceptions import LockNotAcquiredError
from app.utils.redis_utils import redis_client_context
from jobs.async_runner import create_local_session, run_async
from jobs.broker import broker  # noqa: F401


@dramatiq.actor(max_retries=3, time_limit=DRAMATIQ_TIME_LIMIT_STANDARD)
def issue_ghost_credits(limit: int | None = None) -> None:
    """
    Create ghost credits for completed purchases.

    Args:
        limit: Max purchases to process (default from settings)
    """
    logger.info("Starting ghost credit issuance...")

    try:
        created = run_async(_issue_ghost_credits_async(limit))
    except Exception as e:
        logger.exception(f"Ghost credit issuance failed: {e}")
        raise

    logger.info(f"Ghost credit issuance complete: {created} credits created")


@dramatiq.actor(max_retries=3, time_limit=DRAMATIQ_TIME_LIMIT_SHORT)
def expire_ghost_credits() -> None:
    """Mark ghost credits past their window as expired."""
    try:
        expired = run_async(_expire_ghost_credits_async())
    except Exception as e:
        logger.exception(f"Ghost credit expiry sync failed: {e}")
        raise

    logger.info(f"Ghost credit expiry sync complete: {expired} credits expired")


async def _issue_ghost_credits_async(limit: int | None) -> int:
    """Async implementation of ghost credit issuance."""
    async with redis_client_context() as redis_client:
        lock = DistributedLock(redis_client=redis_client)
        async with lock.lock("ghost_credit_issuance", timeout=LOCK_TIMEOUT_MEDIUM) as acquired:
            if not acquired:
                logger.info("Ghost credit issuance already running, skipping")
                return 0
            async with create_local_session() as session:
                return await GhostVolumeService(session).issue_pending_credits(limit)


async def issue_all_pending_credits(redis_client: Any) -> int:
    """
    Issue credits for every pending purchase, one batch at a time.

    Waits for a running issuance to finish instead of skipping.

    Raises:
        LockNotAcquiredError: Issuance still running after the wait
    """
    lock = DistributedLock(redis_client=redis_client)
    async with lock.lock(
        "ghost_credit_issuance",
        timeout=LOCK_TIMEOUT_MEDIUM,
        blocking=True,
        blocking_timeout=BLOCKING_TIMEOUT_LONG,
    ) as acquired:
        if not acquired:
            raise LockNotAcquiredError("ghost_credit_issuance")
        total = 0
        async with create_local_session() as session:
            service = GhostVolumeService(session)
            while True:
                created = await service.issue_pending_credits()
                total += created
                if created < settings.ghost_issue_batch_size:
                    return total


async def _expire_ghost_credits_async() -> int:
    """Async implementation of the expiry sync."""
    async with create_local_session() as session:
        return await GhostVolumeService(session).expire_credits()
