"""
Job scheduler.

Enqueues dramatiq messages on a cron schedule; the work itself runs in
dramatiq workers. Schedule (UTC by default):

- Monday 00:30: finalize the previous week (issues pending ghost
  credits first)
- Daily 01:00: issue ghost credits for completed purchases
- Hourly: sync ghost credit expiry status

Run with:
    python -m jobs.scheduler
"""

import asyncio
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from app.config.database import async_session_maker
from app.config.logging import setup_logging
from app.config.settings import settings
from jobs.health import set_scheduler, set_session_maker, start_health_server, stop_health_server
from jobs.worker import expire_ghost_credits, finalize_week, issue_ghost_credits


def enqueue_weekly_settlement() -> None:
    """Queue finalization of the week that just ended."""
    message = finalize_week.send()
    logger.info(f"Queued weekly settlement ({message.message_id})")


def enqueue_ghost_issuance() -> None:
    """Queue ghost credit issuance."""
    issue_ghost_credits.send()


def enqueue_ghost_expiry() -> None:
    """Queue ghost credit expiry sync."""
    expire_ghost_credits.send()


def create_scheduler() -> AsyncIOScheduler:
    """
    Build the scheduler with all jobs registered.

    Returns:
        AsyncIOScheduler (not started)
    """
    scheduler = AsyncIOScheduler(timezone=settings.scheduler_timezone)
    scheduler.add_job(
        enqueue_weekly_settlement,
        CronTrigger(
            day_of_week="mon",
            hour=settings.weekly_settlement_hour,
            minute=settings.weekly_settlement_minute,
            timezone=settings.scheduler_timezone,
        ),
        id="weekly_settlement",
        name="Finalize previous week",
        max_instances=1,
        coalesce=True,
        misfire_grace_time=3600,
    )
    scheduler.add_job(
        enqueue_ghost_issuance,
        CronTrigger(hour=settings.ghost_issue_hour, minute=0, timezone=settings.scheduler_timezone),
        id="ghost_credit_issuance",
        name="Issue ghost credits",
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        enqueue_ghost_expiry,
        CronTrigger(minute=5, timezone=settings.scheduler_timezone),
        id="ghost_credit_expiry",
        name="Sync ghost credit expiry",
        max_instances=1,
        coalesce=True,
    )
    return scheduler


async def main() -> None:
    """Run the scheduler and its health server until SIGINT/SIGTERM."""
    setup_logging("scheduler")
    if not settings.scheduler_enabled:
        logger.warning("Scheduler disabled (SCHEDULER_ENABLED=false)")
        return

    scheduler = create_scheduler()
    scheduler.start()
    set_scheduler(scheduler)
    set_session_maker(async_session_maker)
    runner, _ = await start_health_server(settings.api_host, settings.health_port)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info("Scheduler started")
    try:
        await stop.wait()
    finally:
        scheduler.shutdown(wait=False)
        await stop_health_server(runner)
        logger.info("Scheduler stopped")


if __name__ == "__main__":
    asyncio.run(main())
