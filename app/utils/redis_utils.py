"""Redis connection utilities.

Redis backs the dramatiq broker and the per-week settlement lock. Jobs
and the API open their own client per process and close it on exit.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as redis

from app.config.settings import settings


def get_redis_client() -> redis.Redis:
    """
    Create a Redis client with settings from config.

    Returns:
        redis.Redis: Client with decode_responses=True

    Example:
        >>> client = get_redis_client()
        >>> await client.set("key", "value")
        >>> await client.aclose()
    """
    return redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password,
        db=settings.redis_db,
        decode_responses=True,
    )


@asynccontextmanager
async def redis_client_context() -> AsyncIterator[redis.Redis]:
    """
    Redis client closed when the block exits.

    Usage:
        async with redis_client_context() as client:
            service = CommissionSettlementService(session, client)
    """
    client = get_redis_client()
    try:
        yield client
    finally:
        await client.aclose()


def get_redis_url_masked() -> str:
    """
    Build Redis URL with masked password for safe logging.

    Returns:
        str: e.g. "redis://:****@localhost:6379/0"
    """
    if settings.redis_password:
        return f"redis://:****@{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
    return f"redis://{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
