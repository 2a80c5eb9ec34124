"""Integration tests for rank administration and ghost credit services."""

from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.models.enums import GhostCreditStatus, Leg, RankChangeReason
from app.services.commission.ghost_issuer import (
    GhostVolumeService,
    ghost_amount,
    weak_leg_of,
)
from app.services.commission.rank_service import RankService
from tests.factories import WEEK, at, make_config, small_network


class TestGhostHelpers:
    """Test ghost amount and leg selection."""

    def test_package_amount_wins(self, config):
        """Test a package's own ghost amount is used."""
        purchase = SimpleNamespace(amount=Decimal("1000"))
        package = SimpleNamespace(ghost_volume_amount=Decimal("650"))
        assert ghost_amount(purchase, package, config) == Decimal("650.00")

    def test_percent_of_price(self, config):
        """Test the configured share of the price is the fallback."""
        purchase = SimpleNamespace(amount=Decimal("1000"))
        package = SimpleNamespace(ghost_volume_amount=None)
        assert ghost_amount(purchase, package, config) == Decimal("800.00")

    def test_weak_leg(self):
        """Test the leg with less cumulative volume is credited."""
        assert weak_leg_of((Decimal("500"), Decimal("100"))) is Leg.RIGHT
        assert weak_leg_of((Decimal("100"), Decimal("100"))) is Leg.LEFT
        assert weak_leg_of(None) is Leg.LEFT


class TestGhostVolumeService:
    """Test credit issuance."""

    @pytest.fixture
    def service(self, mock_session):
        service = GhostVolumeService(mock_session)
        service.loader = MagicMock()
        service.loader.load_config = AsyncMock(
            return_value=make_config(settings_overrides={"ghost_weekly_cap": Decimal("1000")})
        )
        service.packages = MagicMock()
        service.credits = MagicMock()
        service.credits.totals_starting_between = AsyncMock(return_value={1: Decimal("800")})
        service.nodes = MagicMock()
        service.nodes.get_leg_volumes = AsyncMock(
            return_value={1: (Decimal("500"), Decimal("100"))}
        )
        return service

    @pytest.mark.asyncio
    async def test_issue_trims_to_weekly_cap(self, service, mock_session):
        """Test a credit is trimmed to what is left of the weekly cap."""
        completed = at(WEEK, hours=12)
        purchase = SimpleNamespace(id=5, user_id=1, amount=Decimal("1000"), completed_at=completed)
        package = SimpleNamespace(ghost_volume_amount=None)
        service.packages.purchases_without_ghost_credit = AsyncMock(
            return_value=[(purchase, package)]
        )

        created = await service.issue_pending_credits(now=completed)

        assert created == 1
        credit = mock_session.add.call_args.args[0]
        assert credit.amount == Decimal("200")
        assert credit.leg == Leg.RIGHT.value
        assert credit.expires_at == completed + timedelta(days=10)
        assert credit.status == GhostCreditStatus.ACTIVE.value
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_nothing_pending(self, service, mock_session):
        """Test an empty batch creates nothing."""
        service.packages.purchases_without_ghost_credit = AsyncMock(return_value=[])
        assert await service.issue_pending_credits() == 0
        mock_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_expire_credits(self, service):
        """Test elapsed credits are marked expired."""
        service.credits.expire_elapsed = AsyncMock(return_value=3)
        assert await service.expire_credits(now=at(WEEK)) == 3


class TestRankService:
    """Test rank administration."""

    @pytest.fixture
    def service(self, mock_session, ranked_config):
        service = RankService(mock_session, rank_policy="sticky")
        service.loader = MagicMock()
        service.loader.load_config = AsyncMock(return_value=ranked_config)
        service.loader.load_week = AsyncMock(side_effect=lambda week, cfg: small_network(week))
        service.users = MagicMock()
        service.users.set_rank = AsyncMock()
        service.history = MagicMock()
        service.history.create = AsyncMock()
        return service

    @pytest.mark.asyncio
    async def test_evaluate_all(self, service):
        """Test promotions are stored with history rows."""
        result = await service.evaluate_all("2025-01-06")

        assert result["evaluated"] == 4
        assert result["changed"] == 2
        assert result["promoted"] == 2
        assert {c["userId"] for c in result["changes"]} == {2, 3}
        assert service.users.set_rank.await_count == 2
        kwargs = service.history.create.await_args.kwargs
        assert kwargs["reason"] == RankChangeReason.EVALUATION.value
        assert kwargs["criteria_met"]["personal_sales"] in {"1000.00", "600.00"}

    @pytest.mark.asyncio
    async def test_evaluate_unknown_user(self, service):
        """Test evaluating a non-member returns None."""
        assert await service.evaluate_user(999, "2025-01-06") is None

    @pytest.mark.asyncio
    async def test_set_rank(self, service, mock_session):
        """Test a manual assignment stores a MANUAL history row."""
        service.users.get_by_id = AsyncMock(return_value=SimpleNamespace(rank_level=0))

        result = await service.set_rank(4, 2, "Promotion campaign")

        assert result["rankName"] == "Silver"
        service.users.set_rank.assert_awaited_once_with(4, 2, "Silver")
        kwargs = service.history.create.await_args.kwargs
        assert kwargs["reason"] == RankChangeReason.MANUAL.value
        assert kwargs["note"] == "Promotion campaign"
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_set_undefined_rank(self, service, mock_session):
        """Test an undefined level is rejected and rolled back."""
        service.users.get_by_id = AsyncMock(return_value=SimpleNamespace(rank_level=0))

        with pytest.raises(ValueError, match="not defined"):
            await service.set_rank(4, 9)
        mock_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_set_rank_unknown_user(self, service):
        """Test an unknown user is rejected."""
        service.users.get_by_id = AsyncMock(return_value=None)
        with pytest.raises(ValueError, match="not found"):
            await service.set_rank(999, 1)

    @pytest.mark.asyncio
    async def test_stats(self, service):
        """Test distribution always lists unranked members."""
        service.users.rank_distribution = AsyncMock(return_value={"Bronze": 3})
        row = SimpleNamespace(
            user_id=2, old_rank_level=0, new_rank_level=1, new_rank_name="Bronze",
            reason="evaluation", achieved_at=at(WEEK),
        )
        service.history.find_recent = AsyncMock(return_value=[row])

        stats = await service.get_stats()
        assert stats["distribution"] == {"Bronze": 3, "Member": 0}
        assert stats["recentPromotions"][0]["rankName"] == "Bronze"
