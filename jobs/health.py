"""
Health check endpoints.

Served by the scheduler process on its own port and mounted on the
admin API. /health reports the database and, when one is registered,
the scheduler and its next run times.
"""

import asyncio

from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Components checked by the handlers (registered at startup)
_scheduler: AsyncIOScheduler | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def set_scheduler(scheduler: AsyncIOScheduler | None) -> None:
    """
    Register the scheduler to report on.

    Args:
        scheduler: AsyncIOScheduler instance to monitor
    """
    global _scheduler
    _scheduler = scheduler
    logger.info("Scheduler registered for health checks")


def set_session_maker(session_maker: async_sessionmaker[AsyncSession] | None) -> None:
    """Register the session factory used for the database check."""
    global _session_maker
    _session_maker = session_maker


async def check_database() -> bool:
    """Run SELECT 1 (True when no database is registered)."""
    if _session_maker is None:
        return True
    try:
        async with _session_maker() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


def scheduler_status() -> dict | None:
    """Scheduler state, or None when no scheduler is registered."""
    if _scheduler is None:
        return None
    jobs = _scheduler.get_jobs()
    return {
        "running": _scheduler.running,
        "jobs_count": len(jobs),
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in jobs
        ],
    }


async def health_handler(request: web.Request) -> web.Response:
    """
    Health check endpoint.

    Returns:
        JSON response with database and scheduler status
    """
    database_ok = await check_database()
    scheduler = scheduler_status()
    healthy = database_ok and (scheduler is None or scheduler["running"])

    return web.json_response(
        {
            "status": "healthy" if healthy else "unhealthy",
            "database": "ok" if database_ok else "unavailable",
            "scheduler": scheduler,
        },
        status=200 if healthy else 503,
    )


async def readiness_handler(request: web.Request) -> web.Response:
    """
    Readiness check endpoint.

    Returns:
        JSON response indicating if the process can take work
    """
    scheduler = scheduler_status()
    ready = await check_database() and (scheduler is None or scheduler["running"])
    return web.json_response(
        {
            "status": "ready" if ready else "not_ready",
            "ready": ready,
        },
        status=200 if ready else 503,
    )


async def liveness_handler(request: web.Request) -> web.Response:
    """
    Liveness check endpoint.

    Returns:
        JSON response indicating if the process is alive
    """
    return web.json_response(
        {
            "status": "alive",
            "alive": True,
        }
    )


def add_health_routes(app: web.Application) -> None:
    """Mount /health, /readiness and /liveness on an application."""
    app.router.add_get("/health", health_handler)
    app.router.add_get("/readiness", readiness_handler)
    app.router.add_get("/liveness", liveness_handler)


async def start_health_server(
    host: str = "0.0.0.0",
    port: int = 8081,
) -> tuple[web.AppRunner, web.TCPSite]:
    """
    Start a standalone health check server.

    Args:
        host: Host to bind to
        port: Port to bind to

    Returns:
        Tuple of (AppRunner, TCPSite) for cleanup
    """
    app = web.Application()
    add_health_routes(app)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"Health check server started on {host}:{port}")
    return runner, site


async def stop_health_server(
    runner: web.AppRunner,
    timeout: int = 5,
) -> None:
    """
    Stop health check server gracefully.

    Args:
        runner: AppRunner to cleanup
        timeout: Maximum time to wait for cleanup in seconds
    """
    logger.info("Stopping health check server...")
    try:
        await asyncio.wait_for(runner.cleanup(), timeout=timeout)
        logger.info("Health check server stopped successfully")
    except TimeoutError:
        logger.warning(f"Health check server cleanup timed out after {timeout}s")
