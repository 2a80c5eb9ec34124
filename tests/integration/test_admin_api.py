"""Integration tests for the admin payout API."""

from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiohttp import test_utils

from app.api.server import create_app
from app.utils.exceptions import (
    FinalizationFailed,
    FinalizationOutOfOrder,
    InvalidWeekError,
    SettlementTimeout,
    WeekAlreadyProcessing,
)

WEEK = date(2025, 1, 6)


@pytest.fixture
def session_maker(mock_session):
    maker = MagicMock()
    maker.return_value.__aenter__ = AsyncMock(return_value=mock_session)
    maker.return_value.__aexit__ = AsyncMock(return_value=False)
    return maker


@pytest.fixture
def settlement_service():
    with patch("app.api.payouts.CommissionSettlementService") as cls:
        yield cls.return_value


@pytest.fixture
def rank_service():
    with patch("app.api.payouts.RankService") as cls:
        yield cls.return_value


async def make_client(session_maker) -> test_utils.TestClient:
    client = test_utils.TestClient(test_utils.TestServer(create_app(session_maker, None)))
    await client.start_server()
    return client


class TestPayoutRoutes:
    """Test calculate, finalize and proof routes."""

    @pytest.mark.asyncio
    async def test_calculate(self, session_maker, settlement_service):
        """Test a successful calculation is wrapped in a success envelope."""
        outcome = MagicMock()
        outcome.to_dict.return_value = {"weekStart": "2025-01-06", "persisted": True}
        settlement_service.calculate_week = AsyncMock(return_value=outcome)

        client = await make_client(session_maker)
        try:
            resp = await client.post(
                "/api/admin/payouts/calculate",
                json={"weekStart": "2025-01-06", "persist": True},
            )
            body = await resp.json()
        finally:
            await client.close()

        assert resp.status == 200
        assert body == {
            "success": True,
            "result": {"weekStart": "2025-01-06", "persisted": True},
        }
        settlement_service.calculate_week.assert_awaited_once_with(
            "2025-01-06", persist=True
        )

    @pytest.mark.asyncio
    async def test_missing_week(self, session_maker, settlement_service):
        """Test a body without weekStart is rejected."""
        client = await make_client(session_maker)
        try:
            resp = await client.post("/api/admin/payouts/calculate", json={})
            body = await resp.json()
        finally:
            await client.close()

        assert resp.status == 400
        assert body["success"] is False
        assert body["errorCode"] == "INVALID_REQUEST"

    @pytest.mark.asyncio
    async def test_malformed_json(self, session_maker, settlement_service):
        """Test a non-JSON body is rejected."""
        client = await make_client(session_maker)
        try:
            resp = await client.post("/api/admin/payouts/finalize", data=b"not json")
        finally:
            await client.close()

        assert resp.status == 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error,status,code",
        [
            (InvalidWeekError("2025-01-07 is not a Monday"), 400, "INVALID_WEEK"),
            (WeekAlreadyProcessing(WEEK), 409, "WEEK_ALREADY_PROCESSING"),
            (
                FinalizationOutOfOrder(WEEK, "week 2024-12-30 is not finalized"),
                409,
                "FINALIZATION_OUT_OF_ORDER",
            ),
            (SettlementTimeout(WEEK, 30), 504, "SETTLEMENT_TIMEOUT"),
            (FinalizationFailed(WEEK, "disk full"), 500, "FINALIZATION_FAILED"),
        ],
    )
    async def test_finalize_errors(
        self, session_maker, settlement_service, error, status, code
    ):
        """Test domain errors map to HTTP statuses."""
        settlement_service.finalize_week = AsyncMock(side_effect=error)

        client = await make_client(session_maker)
        try:
            resp = await client.post(
                "/api/admin/payouts/finalize", json={"weekStart": "2025-01-06"}
            )
            body = await resp.json()
        finally:
            await client.close()

        assert resp.status == status
        assert body["errorCode"] == code

    @pytest.mark.asyncio
    async def test_unexpected_error_hidden(self, session_maker, settlement_service):
        """Test unexpected errors return a generic message."""
        settlement_service.finalize_week = AsyncMock(side_effect=RuntimeError("boom"))

        client = await make_client(session_maker)
        try:
            resp = await client.post(
                "/api/admin/payouts/finalize", json={"weekStart": "2025-01-06"}
            )
            body = await resp.json()
        finally:
            await client.close()

        assert resp.status == 500
        assert body["error"] == "Internal error"

    @pytest.mark.asyncio
    async def test_proof_not_found(self, session_maker, settlement_service):
        """Test a member without a settlement gets 404."""
        settlement_service.get_proof = AsyncMock(return_value=None)

        client = await make_client(session_maker)
        try:
            resp = await client.get("/api/admin/payouts/2025-01-06/proof/7")
        finally:
            await client.close()

        assert resp.status == 404
        settlement_service.get_proof.assert_awaited_once_with("2025-01-06", 7)

    @pytest.mark.asyncio
    async def test_proof_bad_user_id(self, session_maker, settlement_service):
        """Test a non-numeric user id is rejected."""
        client = await make_client(session_maker)
        try:
            resp = await client.get("/api/admin/payouts/2025-01-06/proof/abc")
        finally:
            await client.close()

        assert resp.status == 400


class TestRankRoutes:
    """Test rank administration actions."""

    @pytest.mark.asyncio
    async def test_set_rank(self, session_maker, rank_service):
        """Test set_rank passes its arguments through."""
        rank_service.set_rank = AsyncMock(return_value={"userId": 4, "rankLevel": 2})

        client = await make_client(session_maker)
        try:
            resp = await client.post(
                "/api/admin/ranks",
                json={"action": "set_rank", "userId": 4, "newRank": 2, "reason": "x"},
            )
            body = await resp.json()
        finally:
            await client.close()

        assert resp.status == 200
        assert body["result"]["rankLevel"] == 2
        rank_service.set_rank.assert_awaited_once_with(4, 2, "x")

    @pytest.mark.asyncio
    async def test_set_rank_requires_level(self, session_maker, rank_service):
        """Test set_rank without newRank is rejected."""
        client = await make_client(session_maker)
        try:
            resp = await client.post(
                "/api/admin/ranks", json={"action": "set_rank", "userId": 4}
            )
        finally:
            await client.close()

        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_unknown_action(self, session_maker, rank_service):
        """Test an unknown action is rejected."""
        client = await make_client(session_maker)
        try:
            resp = await client.post("/api/admin/ranks", json={"action": "demote"})
        finally:
            await client.close()

        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_service_value_error(self, session_maker, rank_service):
        """Test a rejected assignment returns 400."""
        rank_service.set_rank = AsyncMock(side_effect=ValueError("Rank level 9 is not defined"))

        client = await make_client(session_maker)
        try:
            resp = await client.post(
                "/api/admin/ranks",
                json={"action": "set_rank", "userId": 4, "newRank": 9},
            )
            body = await resp.json()
        finally:
            await client.close()

        assert resp.status == 400
        assert "not defined" in body["error"]

    @pytest.mark.asyncio
    async def test_evaluate_single_missing_user(self, session_maker, rank_service):
        """Test evaluating an unknown member returns 404."""
        rank_service.evaluate_user = AsyncMock(return_value=None)

        client = await make_client(session_maker)
        try:
            resp = await client.post(
                "/api/admin/ranks", json={"action": "evaluate_single", "userId": 99}
            )
        finally:
            await client.close()

        assert resp.status == 404

    @pytest.mark.asyncio
    async def test_stats(self, session_maker, rank_service):
        """Test get_stats returns the service payload."""
        rank_service.get_stats = AsyncMock(
            return_value={"distribution": {"Member": 4}, "recentPromotions": []}
        )

        client = await make_client(session_maker)
        try:
            resp = await client.post("/api/admin/ranks", json={"action": "get_stats"})
            body = await resp.json()
        finally:
            await client.close()

        assert body["result"]["distribution"] == {"Member": 4}


class TestHealthRoutes:
    """Test health routes are mounted."""

    @pytest.mark.asyncio
    async def test_liveness(self, session_maker):
        """Test liveness always answers."""
        client = await make_client(session_maker)
        try:
            resp = await client.get("/liveness")
            body = await resp.json()
        finally:
            await client.close()

        assert body["alive"] is True
