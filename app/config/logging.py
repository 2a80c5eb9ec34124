"""
Logging configuration.

loguru sinks for stderr and a rotating file.
"""

import sys

from loguru import logger

from app.config.settings import settings


def setup_logging(service: str = "settlement") -> None:
    """
    Configure loguru sinks.

    Args:
        service: Name bound into every record
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[service]}</cyan> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
            "<level>{message}</level>"
        ),
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            rotation="1 day",
            retention="7 days",
            level=settings.log_level,
            encoding="utf-8",
            enqueue=True,
        )
    logger.configure(extra={"service": service})
    logger.info(f"Logging configured (level={settings.log_level})")
