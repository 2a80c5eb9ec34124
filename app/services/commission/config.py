"""
Commission configuration snapshot.

Rates, caps and rank rules are loaded once at the start of a run and
frozen into a CommissionConfig, so a run never sees a setting change
halfway through.

commission_settings stores rates and pool caps as percentages
(10 = 10%); CommissionConfig holds them as fractions (Decimal("0.10")).
"""

from collections.abc import Iterable, Mapping
from decimal import Decimal
from enum import StrEnum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from app.config import business_constants as bc
from app.utils.exceptions import ConfigurationError
from app.utils.money import to_decimal

HUNDRED = Decimal("100")


class GlobalScalePolicy(StrEnum):
    """Which pools the global scale factor touches."""

    ALL_POOLS = "all_pools"
    EXCLUDE_DIRECT = "exclude_direct"


class GhostExpiryPolicy(StrEnum):
    """How a ghost credit counts in the week its window starts or ends."""

    PRORATED = "prorated"
    ALL_OR_NOTHING = "all_or_nothing"


class RankPolicy(StrEnum):
    """Whether evaluation may lower a stored rank."""

    STICKY = "sticky"
    RECALCULATED = "recalculated"


# Settings that must exist; the run fails before any computation otherwise
REQUIRED_SETTINGS = (
    "direct_rate_tier_1",
    "direct_rate_tier_2",
    "direct_rate_tier_3",
    "binary_rate",
    "override_rate_level_1",
    "override_rate_level_2",
    "override_rate_level_3",
    "direct_pool_cap_percent",
    "binary_pool_cap_percent",
    "override_pool_cap_percent",
    "global_cap_percent",
)


class RankDefinitionLike(Protocol):
    """Attributes read from a rank definition row."""

    rank_level: int
    rank_name: str
    min_personal_sales: Decimal
    min_team_sales: Decimal
    min_left_leg_volume: Decimal
    min_right_leg_volume: Decimal
    min_hashrate_ths: Decimal
    min_direct_referrals: int
    weekly_cap_usd: Decimal | None
    hard_cap_usd: Decimal | None
    benefits: dict[str, Any] | None


class RankBenefits(BaseModel):
    """Typed view of a rank's benefits blob.

    Unknown keys are ignored; only fields the engine acts on are kept.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    max_override_level: int | None = Field(
        default=None,
        ge=0,
        le=bc.OVERRIDE_DEPTH,
        description="Deepest override level this rank earns (overrides the level map)",
    )
    label: str | None = Field(default=None, description="Display label")


class RankRule(BaseModel):
    """One rank level and its thresholds."""

    model_config = ConfigDict(frozen=True)

    level: int = Field(..., ge=0, description="Rank level (higher = better)")
    name: str = Field(..., min_length=1)
    min_personal_sales: Decimal = Field(default=Decimal("0"), ge=0)
    min_team_sales: Decimal = Field(default=Decimal("0"), ge=0)
    min_left_leg_volume: Decimal = Field(default=Decimal("0"), ge=0)
    min_right_leg_volume: Decimal = Field(default=Decimal("0"), ge=0)
    min_hashrate_ths: Decimal = Field(default=Decimal("0"), ge=0)
    min_direct_referrals: int = Field(default=0, ge=0)
    weekly_cap: Decimal | None = Field(default=None, ge=0)
    hard_cap: Decimal | None = Field(default=None, ge=0)
    benefits: RankBenefits = Field(default_factory=RankBenefits)

    @classmethod
    def from_row(cls, row: RankDefinitionLike) -> "RankRule":
        """Build a rule from a rank_definitions row."""
        return cls(
            level=row.rank_level,
            name=row.rank_name,
            min_personal_sales=row.min_personal_sales,
            min_team_sales=row.min_team_sales,
            min_left_leg_volume=row.min_left_leg_volume,
            min_right_leg_volume=row.min_right_leg_volume,
            min_hashrate_ths=row.min_hashrate_ths,
            min_direct_referrals=row.min_direct_referrals,
            weekly_cap=row.weekly_cap_usd,
            hard_cap=row.hard_cap_usd,
            benefits=RankBenefits.model_validate(row.benefits or {}),
        )


class CommissionConfig(BaseModel):
    """Immutable configuration for one settlement run."""

    model_config = ConfigDict(frozen=True)

    # Direct
    direct_rates: dict[int, Decimal] = Field(default_factory=lambda: dict(bc.DIRECT_RATES))
    default_unlock_level: int = Field(default=bc.DEFAULT_UNLOCK_LEVEL, ge=0, le=bc.DIRECT_DEPTH)

    # Binary
    binary_rate: Decimal = Field(default=bc.BINARY_RATE, ge=0, le=1)
    binary_weekly_cap_default: Decimal = Field(default=bc.BINARY_WEEKLY_CAP_DEFAULT, ge=0)
    binary_hard_cap: Decimal = Field(default=bc.BINARY_HARD_CAP, ge=0)
    carry_multiplier: Decimal = Field(default=bc.CARRY_MULTIPLIER, ge=0)
    carry_limit_floor: Decimal = Field(default=bc.CARRY_LIMIT_FLOOR, ge=0)
    carry_average_weeks: int = Field(default=bc.CARRY_AVERAGE_WEEKS, ge=1)
    inactivity_flush_weeks: int = Field(default=bc.INACTIVITY_FLUSH_WEEKS, ge=1)
    volume_flush_days: int = Field(default=bc.VOLUME_FLUSH_DAYS, ge=7)

    # Override
    override_rates: dict[int, Decimal] = Field(default_factory=lambda: dict(bc.OVERRIDE_RATES))
    override_min_rank_levels: dict[int, int] = Field(
        default_factory=lambda: dict(bc.OVERRIDE_MIN_RANK_LEVELS)
    )

    # Pool caps (fractions of SV)
    direct_pool_cap: Decimal = Field(default=bc.DIRECT_POOL_CAP, ge=0, le=1)
    binary_pool_cap: Decimal = Field(default=bc.BINARY_POOL_CAP, ge=0, le=1)
    override_pool_cap: Decimal = Field(default=bc.OVERRIDE_POOL_CAP, ge=0, le=1)
    global_cap: Decimal = Field(default=bc.GLOBAL_CAP, ge=0, le=1)

    # Ghost volume
    ghost_volume_percent: Decimal = Field(default=bc.GHOST_VOLUME_PERCENT, ge=0, le=1)
    ghost_duration_days: int = Field(default=bc.GHOST_DURATION_DAYS, ge=1)
    ghost_weekly_cap: Decimal = Field(default=bc.GHOST_WEEKLY_CAP, ge=0)

    # Policies
    global_scale_policy: GlobalScalePolicy = GlobalScalePolicy.ALL_POOLS
    ghost_expiry_policy: GhostExpiryPolicy = GhostExpiryPolicy.PRORATED
    rank_policy: RankPolicy = RankPolicy.STICKY

    ranks: tuple[RankRule, ...] = ()

    @model_validator(mode="after")
    def validate_tables(self) -> "CommissionConfig":
        """Check tier maps and rank table consistency."""
        for name, table in (
            ("direct_rates", self.direct_rates),
            ("override_rates", self.override_rates),
        ):
            if sorted(table) != list(range(1, bc.DIRECT_DEPTH + 1)):
                raise ValueError(f"{name} must define levels 1-{bc.DIRECT_DEPTH}")
            if any(rate < 0 or rate > 1 for rate in table.values()):
                raise ValueError(f"{name} must be between 0% and 100%")
        if sorted(self.override_min_rank_levels) != list(range(1, bc.OVERRIDE_DEPTH + 1)):
            raise ValueError(f"override_min_rank_levels must define levels 1-{bc.OVERRIDE_DEPTH}")

        levels = [rank.level for rank in self.ranks]
        if len(levels) != len(set(levels)):
            raise ValueError("rank levels must be unique")
        return self

    def rank(self, level: int) -> RankRule | None:
        """Rank rule for a level, if defined."""
        for rule in self.ranks:
            if rule.level == level:
                return rule
        return None

    def rank_name(self, level: int) -> str:
        """Display name for a level."""
        rule = self.rank(level)
        if rule is not None:
            return rule.name
        return bc.UNRANKED_NAME if level == bc.UNRANKED_LEVEL else f"Level {level}"

    def binary_cap_for(self, level: int) -> Decimal:
        """
        Effective binary cap for a rank level.

        Args:
            level: Rank level

        Returns:
            min(rank weekly cap, rank hard cap, global hard cap)
        """
        rule = self.rank(level)
        weekly = self.binary_weekly_cap_default
        hard = self.binary_hard_cap
        if rule is not None:
            if rule.weekly_cap is not None:
                weekly = rule.weekly_cap
            if rule.hard_cap is not None:
                hard = min(hard, rule.hard_cap)
        return min(weekly, hard)

    def override_allowed(self, rank_level: int, override_level: int) -> bool:
        """
        Check whether a rank earns a given override level.

        A rank's max_override_level benefit takes precedence over the
        level map.
        """
        rule = self.rank(rank_level)
        if rule is not None and rule.benefits.max_override_level is not None:
            return override_level <= rule.benefits.max_override_level
        required = self.override_min_rank_levels.get(override_level)
        return required is not None and rank_level >= required

    @property
    def pool_caps(self) -> dict[str, Decimal]:
        """Pool cap fractions keyed by pool name."""
        return {
            "direct": self.direct_pool_cap,
            "binary": self.binary_pool_cap,
            "override": self.override_pool_cap,
        }


def _percent(values: Mapping[str, Decimal], key: str) -> Decimal:
    return to_decimal(values[key], key) / HUNDRED


def _optional(values: Mapping[str, Any], key: str, default: Any, cast: type = Decimal) -> Any:
    if key not in values or values[key] is None:
        return default
    value = to_decimal(values[key], key)
    if cast is int:
        if value != value.to_integral_value():
            raise ValueError(f"{key} must be a whole number, got {value}")
        return int(value)
    return value


def load_commission_config(
    settings_rows: Mapping[str, Any],
    rank_rows: Iterable[RankDefinitionLike],
    global_scale_policy: GlobalScalePolicy | str = GlobalScalePolicy.ALL_POOLS,
    ghost_expiry_policy: GhostExpiryPolicy | str = GhostExpiryPolicy.PRORATED,
    rank_policy: RankPolicy | str = RankPolicy.STICKY,
) -> CommissionConfig:
    """
    Build the frozen configuration for a run.

    Args:
        settings_rows: commission_settings as name -> value
        rank_rows: Active rank definitions
        global_scale_policy: Global factor policy
        ghost_expiry_policy: Ghost credit proration policy
        rank_policy: Sticky or recalculated ranks

    Returns:
        CommissionConfig

    Raises:
        ConfigurationError: If a required setting is missing or any value
            is malformed
    """
    missing = [key for key in REQUIRED_SETTINGS if settings_rows.get(key) is None]
    if missing:
        raise ConfigurationError(
            f"Missing commission settings: {', '.join(missing)}"
        )

    try:
        ranks = tuple(
            sorted((RankRule.from_row(row) for row in rank_rows), key=lambda r: r.level)
        )
        pct = settings_rows.get("ghost_volume_percent")
        return CommissionConfig(
            direct_rates={
                tier: _percent(settings_rows, f"direct_rate_tier_{tier}")
                for tier in range(1, bc.DIRECT_DEPTH + 1)
            },
            default_unlock_level=_optional(
                settings_rows, "default_unlock_level", bc.DEFAULT_UNLOCK_LEVEL, int
            ),
            binary_rate=_percent(settings_rows, "binary_rate"),
            binary_weekly_cap_default=_optional(
                settings_rows, "binary_weekly_cap_default", bc.BINARY_WEEKLY_CAP_DEFAULT
            ),
            binary_hard_cap=_optional(settings_rows, "binary_hard_cap", bc.BINARY_HARD_CAP),
            carry_multiplier=_optional(settings_rows, "carry_multiplier", bc.CARRY_MULTIPLIER),
            carry_limit_floor=_optional(settings_rows, "carry_limit_floor", bc.CARRY_LIMIT_FLOOR),
            carry_average_weeks=_optional(
                settings_rows, "carry_average_weeks", bc.CARRY_AVERAGE_WEEKS, int
            ),
            inactivity_flush_weeks=_optional(
                settings_rows, "inactivity_flush_weeks", bc.INACTIVITY_FLUSH_WEEKS, int
            ),
            volume_flush_days=_optional(
                settings_rows, "volume_flush_days", bc.VOLUME_FLUSH_DAYS, int
            ),
            override_rates={
                level: _percent(settings_rows, f"override_rate_level_{level}")
                for level in range(1, bc.OVERRIDE_DEPTH + 1)
            },
            override_min_rank_levels={
                level: _optional(
                    settings_rows,
                    f"override_min_rank_level_{level}",
                    bc.OVERRIDE_MIN_RANK_LEVELS[level],
                    int,
                )
                for level in range(1, bc.OVERRIDE_DEPTH + 1)
            },
            direct_pool_cap=_percent(settings_rows, "direct_pool_cap_percent"),
            binary_pool_cap=_percent(settings_rows, "binary_pool_cap_percent"),
            override_pool_cap=_percent(settings_rows, "override_pool_cap_percent"),
            global_cap=_percent(settings_rows, "global_cap_percent"),
            ghost_volume_percent=(
                bc.GHOST_VOLUME_PERCENT if pct is None
                else to_decimal(pct, "ghost_volume_percent") / HUNDRED
            ),
            ghost_duration_days=_optional(
                settings_rows, "ghost_duration_days", bc.GHOST_DURATION_DAYS, int
            ),
            ghost_weekly_cap=_optional(settings_rows, "ghost_weekly_cap", bc.GHOST_WEEKLY_CAP),
            global_scale_policy=GlobalScalePolicy(global_scale_policy),
            ghost_expiry_policy=GhostExpiryPolicy(ghost_expiry_policy),
            rank_policy=RankPolicy(rank_policy),
            ranks=ranks,
        )
    except (ValidationError, ValueError) as e:
        raise ConfigurationError(f"Invalid commission settings: {e}") from e


def default_settings_rows() -> dict[str, Decimal]:
    """
    Default commission_settings content (percent form).

    Used to seed the table and as a fixture in tests.
    """
    rows = {
        f"direct_rate_tier_{tier}": rate * HUNDRED
        for tier, rate in bc.DIRECT_RATES.items()
    }
    rows.update({
        f"override_rate_level_{level}": rate * HUNDRED
        for level, rate in bc.OVERRIDE_RATES.items()
    })
    rows.update({
        "binary_rate": bc.BINARY_RATE * HUNDRED,
        "direct_pool_cap_percent": bc.DIRECT_POOL_CAP * HUNDRED,
        "binary_pool_cap_percent": bc.BINARY_POOL_CAP * HUNDRED,
        "override_pool_cap_percent": bc.OVERRIDE_POOL_CAP * HUNDRED,
        "global_cap_percent": bc.GLOBAL_CAP * HUNDRED,
        "binary_weekly_cap_default": bc.BINARY_WEEKLY_CAP_DEFAULT,
        "binary_hard_cap": bc.BINARY_HARD_CAP,
    })
    return rows
