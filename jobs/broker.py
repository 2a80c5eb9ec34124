"""
Dramatiq broker configuration.

Redis-based message broker for task queue. Failed messages are retried
only for transient errors; bad input and bad configuration fail the
same way every time.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import CurrentMessage, Retries, ShutdownNotifications
from loguru import logger

from app.config.operational_constants import DEFAULT_MAX_RETRIES, SETTLEMENT_MAX_RETRIES
from app.config.settings import settings
from app.utils.exceptions import is_retryable
from app.utils.redis_utils import get_redis_url_masked


def should_retry(retries_so_far: int, exception: Exception) -> bool:
    """Default retry policy: transient errors, up to DEFAULT_MAX_RETRIES."""
    return retries_so_far < DEFAULT_MAX_RETRIES and is_retryable(exception)


def should_retry_settlement(retries_so_far: int, exception: Exception) -> bool:
    """Retry policy for weekly finalization."""
    return retries_so_far < SETTLEMENT_MAX_RETRIES and is_retryable(exception)


# Initialize Redis broker with graceful shutdown middleware
redis_broker = RedisBroker(
    host=settings.redis_host,
    port=settings.redis_port,
    password=settings.redis_password if settings.redis_password else None,
    db=settings.redis_db,
)

# ShutdownNotifications: Allows workers to gracefully shutdown
# CurrentMessage: Provides access to current message in actors
# Retries: Exponential backoff for transient failures
redis_broker.add_middleware(ShutdownNotifications())
redis_broker.add_middleware(CurrentMessage())
redis_broker.add_middleware(
    Retries(
        max_retries=DEFAULT_MAX_RETRIES,
        min_backoff=1000,  # 1 second
        max_backoff=60000,  # 1 minute
        retry_when=should_retry,
    )
)

# Set as default broker
dramatiq.set_broker(redis_broker)

# Export broker
broker = redis_broker

logger.info(f"Dramatiq broker initialized: {get_redis_url_masked()}")
