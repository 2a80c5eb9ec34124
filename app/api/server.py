"""
Admin API server.

Run with:
    python -m app.api.server
"""

import asyncio
import signal
from typing import Any

from aiohttp import web
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.payouts import REDIS_KEY, SESSION_MAKER_KEY, add_payout_routes, error_middleware
from app.config.settings import settings
from jobs.health import add_health_routes, set_session_maker


def create_app(
    session_maker: async_sessionmaker[AsyncSession],
    redis_client: Any | None = None,
) -> web.Application:
    """
    Build the admin API application.

    Args:
        session_maker: Session factory, one session per request
        redis_client: redis.asyncio client for week locks (in-process
            locks when None)

    Returns:
        aiohttp Application
    """
    app = web.Application(middlewares=[error_middleware])
    app[SESSION_MAKER_KEY] = session_maker
    app[REDIS_KEY] = redis_client
    add_payout_routes(app)
    add_health_routes(app)
    return app


async def main() -> None:
    """Serve the admin API until SIGINT/SIGTERM."""
    from app.config.database import async_engine, async_session_maker
    from app.config.logging import setup_logging
    from app.utils.redis_utils import get_redis_client

    setup_logging("api")
    redis_client = get_redis_client()
    set_session_maker(async_session_maker)

    runner = web.AppRunner(create_app(async_session_maker, redis_client))
    await runner.setup()
    site = web.TCPSite(runner, settings.api_host, settings.api_port)
    await site.start()
    logger.info(f"Admin API listening on {settings.api_host}:{settings.api_port}")

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await stop.wait()
    finally:
        await runner.cleanup()
        await redis_client.aclose()
        await async_engine.dispose()
        logger.info("Admin API stopped")


if __name__ == "__main__":
    asyncio.run(main())
