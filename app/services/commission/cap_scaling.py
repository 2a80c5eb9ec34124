"""
Cap & scaling engine.

Runs after every calculator has finished. Factors are exact Fractions;
each final amount is

    floor_to_cent(base * pool_factor * global_factor)

Rounding down per entry keeps every pool total at or under its cap and
the grand total at or under the global cap.

Global policies:
- ALL_POOLS: global factor = global_cap / scaled_total, on every pool
- EXCLUDE_DIRECT: direct keeps its pool-scaled amounts; binary and
  override share what is left of the global cap. If nothing is left,
  global_cap / scaled_total is applied to all pools instead.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from fractions import Fraction
from typing import Any

from loguru import logger

from app.services.commission.config import CommissionConfig, GlobalScalePolicy
from app.utils.money import floor_money, format_factor

ZERO = Decimal("0")
ONE = Fraction(1)
POOLS = ("direct", "binary", "override")


@dataclass(frozen=True)
class ScaleFactors:
    """Pool and global factors of one week."""

    sales_volume: Decimal
    unscaled: Mapping[str, Decimal]
    pool_caps: Mapping[str, Decimal]
    pool: Mapping[str, Fraction]
    global_factor: Fraction
    global_cap: Decimal
    policy: GlobalScalePolicy
    global_pools: frozenset[str] = field(default_factory=lambda: frozenset(POOLS))
    emergency: bool = False

    def combined(self, pool: str) -> Fraction:
        """Total factor applied to entries of a pool."""
        factor = self.pool[pool]
        if pool in self.global_pools:
            factor *= self.global_factor
        return factor

    def scale(self, pool: str, base_amount: Decimal) -> Decimal:
        """Final amount for one entry."""
        return floor_money(Fraction(base_amount) * self.combined(pool))

    def pool_factors_json(self) -> dict[str, str]:
        return {pool: format_factor(self.pool[pool]) for pool in POOLS}

    def describe(self) -> dict[str, Any]:
        """Log-friendly summary."""
        return {
            "sales_volume": str(self.sales_volume),
            "unscaled": {k: str(v) for k, v in self.unscaled.items()},
            "pool_factors": self.pool_factors_json(),
            "global_factor": format_factor(self.global_factor),
            "policy": self.policy.value,
            "emergency": self.emergency,
        }


def pool_factor(cap: Decimal, total: Decimal) -> Fraction:
    """
    min(1, cap / total) as an exact fraction.

    An empty pool keeps factor 1; a positive pool with a zero cap
    (no sales volume) gets factor 0.
    """
    if total <= 0:
        return ONE
    if cap <= 0:
        return Fraction(0)
    return min(ONE, Fraction(cap) / Fraction(total))


def compute_scale_factors(
    sales_volume: Decimal,
    unscaled: Mapping[str, Decimal],
    config: CommissionConfig,
) -> ScaleFactors:
    """
    Compute pool and global scale factors for a week.

    Args:
        sales_volume: Week SV
        unscaled: Unscaled pool totals keyed by pool name
        config: Run configuration (caps and global policy)

    Returns:
        ScaleFactors
    """
    totals = {pool: unscaled.get(pool, ZERO) for pool in POOLS}
    caps = {pool: pct * sales_volume for pool, pct in config.pool_caps.items()}
    factors = {pool: pool_factor(caps[pool], totals[pool]) for pool in POOLS}
    global_cap = config.global_cap * sales_volume

    if sales_volume <= 0 and any(totals.values()):
        logger.warning(
            "Commissions computed for a week with no sales volume; nothing is payable",
            extra={"unscaled": {k: str(v) for k, v in totals.items()}},
        )

    scaled = {pool: Fraction(totals[pool]) * factors[pool] for pool in POOLS}
    scaled_total = sum(scaled.values(), Fraction(0))
    policy = config.global_scale_policy

    global_factor = ONE
    global_pools = frozenset(POOLS)
    emergency = False

    if scaled_total > Fraction(global_cap):
        if policy is GlobalScalePolicy.EXCLUDE_DIRECT:
            remaining = Fraction(global_cap) - scaled["direct"]
            rest = scaled_total - scaled["direct"]
            if remaining > 0 and rest > 0:
                global_factor = min(ONE, remaining / rest)
                global_pools = frozenset(("binary", "override"))
            else:
                emergency = True
                global_factor = Fraction(global_cap) / scaled_total
        else:
            global_factor = Fraction(global_cap) / scaled_total

    factors_obj = ScaleFactors(
        sales_volume=sales_volume,
        unscaled=totals,
        pool_caps=caps,
        pool=factors,
        global_factor=global_factor,
        global_cap=global_cap,
        policy=policy,
        global_pools=global_pools,
        emergency=emergency,
    )
    if emergency:
        logger.warning(
            "Direct pool alone exceeds the global cap; scaling all pools",
            extra=factors_obj.describe(),
        )
    return factors_obj
