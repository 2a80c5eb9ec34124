"""Tests for sponsor and binary tree walks."""

import pytest

from app.models.enums import Leg
from app.services.commission.tree import binary_ancestors, find_broken_chains, sponsor_chain
from app.utils.exceptions import TreeIntegrityError


class TestSponsorChain:
    """Test upward sponsor walks."""

    def test_walks_to_depth(self):
        """Test levels are numbered from 1 and depth is respected."""
        sponsors = {5: 4, 4: 3, 3: 2, 2: 1}
        assert list(sponsor_chain(sponsors, 5, depth=3)) == [(1, 4), (2, 3), (3, 2)]

    def test_stops_at_root(self):
        """Test the walk ends at a member with no sponsor."""
        assert list(sponsor_chain({2: 1}, 2)) == [(1, 1)]

    def test_cycle_raises(self):
        """Test a cycle raises instead of looping."""
        with pytest.raises(TreeIntegrityError):
            list(sponsor_chain({1: 2, 2: 3, 3: 1}, 1))


class TestBinaryAncestors:
    """Test upward binary walks."""

    def test_legs_reported_per_ancestor(self):
        """Test each ancestor gets the leg the member descends through."""
        parents = {4: (2, Leg.LEFT), 2: (1, Leg.RIGHT)}
        assert list(binary_ancestors(parents, 4)) == [(2, Leg.LEFT), (1, Leg.RIGHT)]

    def test_cycle_raises(self):
        """Test a binary cycle raises."""
        parents = {1: (2, Leg.LEFT), 2: (1, Leg.LEFT)}
        with pytest.raises(TreeIntegrityError):
            list(binary_ancestors(parents, 1))


class TestFindBrokenChains:
    """Test corrupt chain detection."""

    def test_healthy_tree(self):
        """Test a proper tree reports nothing."""
        assert find_broken_chains({2: 1, 3: 1, 4: 2}, {1, 2, 3, 4}, "sponsor") == {}

    def test_cycle_and_descendants(self):
        """Test cycle members and everyone below them are broken."""
        broken = find_broken_chains({2: 3, 3: 2, 4: 2, 5: 1}, {1, 2, 3, 4, 5}, "sponsor")
        assert set(broken) == {2, 3, 4}
        assert "cycle" in broken[4]

    def test_missing_parent(self):
        """Test a parent that is not a member breaks the chain."""
        broken = find_broken_chains({2: 99}, {1, 2}, "binary")
        assert broken == {2: "binary parent 99 does not exist"}
