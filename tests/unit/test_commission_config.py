"""
Tests for the commission configuration snapshot.

Tests cover:
- Loading percent-form settings into fractions
- Missing and malformed settings
- Binary caps and override gating per rank
"""

from decimal import Decimal

import pytest

from app.services.commission.config import (
    GhostExpiryPolicy,
    GlobalScalePolicy,
    RankPolicy,
    default_settings_rows,
    load_commission_config,
)
from app.utils.exceptions import ConfigurationError
from tests.factories import make_config, rank_row


class TestLoadConfig:
    """Test building a config from settings rows."""

    def test_defaults(self, config):
        """Test seeded defaults become fractions."""
        assert config.direct_rates == {
            1: Decimal("0.1"), 2: Decimal("0.05"), 3: Decimal("0.03"),
        }
        assert config.binary_rate == Decimal("0.1")
        assert config.pool_caps == {
            "direct": Decimal("0.2"),
            "binary": Decimal("0.17"),
            "override": Decimal("0.03"),
        }
        assert config.global_cap == Decimal("0.4")
        assert config.binary_hard_cap == Decimal("40000")

    def test_default_policies(self, config):
        """Test policy defaults."""
        assert config.global_scale_policy is GlobalScalePolicy.ALL_POOLS
        assert config.ghost_expiry_policy is GhostExpiryPolicy.PRORATED
        assert config.rank_policy is RankPolicy.STICKY

    def test_policy_strings(self):
        """Test policies can be given as their stored strings."""
        config = make_config(
            global_scale_policy="exclude_direct",
            ghost_expiry_policy="all_or_nothing",
            rank_policy="recalculated",
        )
        assert config.global_scale_policy is GlobalScalePolicy.EXCLUDE_DIRECT
        assert config.ghost_expiry_policy is GhostExpiryPolicy.ALL_OR_NOTHING
        assert config.rank_policy is RankPolicy.RECALCULATED

    def test_missing_setting(self):
        """Test a missing required rate fails before any computation."""
        rows = default_settings_rows()
        del rows["binary_rate"]
        with pytest.raises(ConfigurationError, match="binary_rate"):
            load_commission_config(rows, [])

    def test_malformed_setting(self):
        """Test a non-numeric value is a configuration error."""
        rows = default_settings_rows()
        rows["global_cap_percent"] = "forty"
        with pytest.raises(ConfigurationError):
            load_commission_config(rows, [])

    def test_rate_over_hundred_percent(self):
        """Test a rate above 100% is rejected."""
        with pytest.raises(ConfigurationError):
            make_config(settings_overrides={"direct_rate_tier_1": Decimal("150")})

    def test_duplicate_rank_levels(self):
        """Test rank levels must be unique."""
        with pytest.raises(ConfigurationError):
            make_config(ranks=[rank_row(1, "A"), rank_row(1, "B")])

    def test_fractional_integer_setting(self):
        """Test whole-number settings reject fractions."""
        with pytest.raises(ConfigurationError):
            make_config(settings_overrides={"carry_average_weeks": Decimal("2.5")})


class TestRankRules:
    """Test rank-dependent lookups."""

    def test_binary_cap_default(self, config):
        """Test unranked members get the default weekly cap."""
        assert config.binary_cap_for(0) == Decimal("250")

    def test_binary_cap_rank(self, ranked_config):
        """Test rank weekly cap replaces the default."""
        assert ranked_config.binary_cap_for(2) == Decimal("2000")

    def test_binary_cap_bounded_by_hard_cap(self):
        """Test the hard cap bounds a larger rank cap."""
        config = make_config(ranks=[rank_row(9, "Crown", weekly_cap=Decimal("100000"))])
        assert config.binary_cap_for(9) == Decimal("40000")

    def test_override_level_map(self, config):
        """Test default minimum rank per override level."""
        assert config.override_allowed(1, 1)
        assert not config.override_allowed(1, 2)
        assert config.override_allowed(3, 2)
        assert config.override_allowed(5, 3)
        assert not config.override_allowed(0, 1)

    def test_override_benefit_takes_precedence(self):
        """Test max_override_level in benefits overrides the level map."""
        config = make_config(
            ranks=[rank_row(1, "Bronze", benefits={"max_override_level": 3, "color": "x"})]
        )
        assert config.override_allowed(1, 3)

    def test_rank_names(self, ranked_config):
        """Test display names, including unranked."""
        assert ranked_config.rank_name(2) == "Silver"
        assert ranked_config.rank_name(0) == "Member"
        assert ranked_config.rank_name(7) == "Level 7"
