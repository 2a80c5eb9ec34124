"""
Distributed lock.

Redis SET NX PX lock with token-checked release. Without a Redis client
the lock falls back to a process-local asyncio.Lock (single-process
deployments and tests).
"""

import asyncio
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from loguru import logger

from app.config.operational_constants import (
    BLOCKING_TIMEOUT_DEFAULT,
    LOCK_TIMEOUT_MEDIUM,
)

# Deletes the key only if it still holds our token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

_POLL_INTERVAL = 0.1

# Process-local locks, keyed by lock name
_local_locks: dict[str, asyncio.Lock] = {}


class DistributedLock:
    """
    Named lock shared between workers.

    Usage:
        lock = DistributedLock(redis_client=redis_client)
        async with lock.lock("settlement:2025-01-06", timeout=60) as acquired:
            if not acquired:
                return
            ...
    """

    def __init__(
        self,
        redis_client: Any | None = None,
        key_prefix: str = "lock:",
    ) -> None:
        """
        Initialize lock.

        Args:
            redis_client: redis.asyncio client (preferred backend)
            key_prefix: Prefix for Redis keys
        """
        self.redis_client = redis_client
        self.key_prefix = key_prefix

    @asynccontextmanager
    async def lock(
        self,
        key: str,
        timeout: int = LOCK_TIMEOUT_MEDIUM,
        blocking: bool = False,
        blocking_timeout: float = BLOCKING_TIMEOUT_DEFAULT,
    ) -> AsyncIterator[bool]:
        """
        Acquire the lock for the duration of the block.

        Args:
            key: Lock name
            timeout: Lock expiry in seconds (Redis backend)
            blocking: Wait for the lock instead of failing fast
            blocking_timeout: Max seconds to wait when blocking

        Yields:
            True if the lock is held, False otherwise
        """
        token = uuid.uuid4().hex
        acquired = await self._acquire(key, token, timeout, blocking, blocking_timeout)
        if not acquired:
            logger.warning(f"Lock {key} is held elsewhere")
        try:
            yield acquired
        finally:
            if acquired:
                await self._release(key, token)

    async def _acquire(
        self,
        key: str,
        token: str,
        timeout: int,
        blocking: bool,
        blocking_timeout: float,
    ) -> bool:
        deadline = time.monotonic() + (blocking_timeout if blocking else 0)
        while True:
            if await self._try_acquire(key, token, timeout):
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(_POLL_INTERVAL)

    async def _try_acquire(self, key: str, token: str, timeout: int) -> bool:
        if self.redis_client is not None:
            result = await self.redis_client.set(
                f"{self.key_prefix}{key}", token, nx=True, px=timeout * 1000
            )
            return bool(result)

        local = _local_locks.setdefault(key, asyncio.Lock())
        if local.locked():
            return False
        await local.acquire()
        return True

    async def _release(self, key: str, token: str) -> None:
        try:
            if self.redis_client is not None:
                await self.redis_client.eval(
                    _RELEASE_SCRIPT, 1, f"{self.key_prefix}{key}", token
                )
            else:
                local = _local_locks.get(key)
                if local is not None and local.locked():
                    local.release()
        except Exception as e:
            # Redis keys expire on their own
            logger.error(f"Failed to release lock {key}: {e}")


def get_distributed_lock(redis_client: Any | None = None) -> DistributedLock:
    """
    Build a lock using the best available backend.

    Args:
        redis_client: Optional redis.asyncio client

    Returns:
        DistributedLock instance
    """
    return DistributedLock(redis_client=redis_client)
