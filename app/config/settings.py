"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
Commission rates and caps are not settings: they live in the
commission_settings table and are frozen per run (see
app.services.commission.config).
"""

from typing import Literal

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.config.operational_constants import LOCK_TIMEOUT_LONG


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False
    database_pool_size: int = Field(
        default=10,
        gt=0,
        description="SQLAlchemy connection pool size",
    )

    # Redis (dramatiq broker and distributed locks)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0

    # Environment
    environment: str = "production"
    debug: bool = False

    # Logging
    log_level: str = "INFO"
    log_file: str | None = Field(
        default="logs/settlement.log",
        description="Rotating log file path (None disables the file sink)",
    )

    # Admin API
    api_host: str = "0.0.0.0"
    api_port: int = Field(default=8080, gt=0, lt=65536)
    health_port: int = Field(default=8081, gt=0, lt=65536)

    # Settlement runs
    settlement_timeout_seconds: float = Field(
        default=240.0,
        gt=0,
        description="Abort a calculation/finalization after this many seconds",
    )
    settlement_lock_timeout: int = Field(
        default=LOCK_TIMEOUT_LONG,
        gt=0,
        description="Per-week lock expiry in seconds",
    )
    engine_max_workers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Worker threads for unscaled commission computation",
    )

    # Commission policies
    commission_global_scale_policy: Literal["all_pools", "exclude_direct"] = Field(
        default="all_pools",
        description="Pools the global scale factor applies to",
    )
    commission_ghost_expiry_policy: Literal["prorated", "all_or_nothing"] = Field(
        default="prorated",
        description="How a ghost credit counts in the week it starts or expires",
    )
    commission_rank_policy: Literal["sticky", "recalculated"] = Field(
        default="sticky",
        description="Whether rank evaluation may demote",
    )

    # Ghost volume issuance
    ghost_issue_batch_size: int = Field(default=500, gt=0)
    ghost_issue_hour: int = Field(default=1, ge=0, le=23)

    # Scheduler
    scheduler_enabled: bool = True
    scheduler_timezone: str = "UTC"
    weekly_settlement_hour: int = Field(default=0, ge=0, le=23)
    weekly_settlement_minute: int = Field(default=30, ge=0, le=59)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode='after')
    def validate_production(self) -> 'Settings':
        """Validate production-specific requirements."""
        if self.environment == 'production':
            # DEBUG must be False in production
            if self.debug:
                raise ValueError(
                    'DEBUG must be False in production environment. '
                    'Set DEBUG=false in your .env file.'
                )
            if self.settlement_timeout_seconds >= self.settlement_lock_timeout:
                logger.warning(
                    'SETTLEMENT_TIMEOUT_SECONDS should be below '
                    'SETTLEMENT_LOCK_TIMEOUT so a run never outlives its lock.'
                )
        return self

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if not v.startswith(('postgresql://', 'postgresql+asyncpg://')):
            raise ValueError(
                'DATABASE_URL must start with postgresql:// or postgresql+asyncpg://'
            )
        if v.startswith('postgresql://'):
            v = v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level name."""
        level = v.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f'Invalid LOG_LEVEL: {v}')
        return level


# Global settings instance
settings = Settings()
