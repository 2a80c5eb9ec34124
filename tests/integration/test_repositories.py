"""
Integration tests for settlement-chain repository queries.

The session is mocked; statements are compiled for PostgreSQL and
inspected.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from app.repositories.binary_volume_repository import BinaryVolumeRepository
from app.repositories.settlement_repository import SettlementMetaRepository
from tests.factories import WEEK


def executed_sql(session) -> str:
    stmt = session.execute.await_args.args[0]
    return str(stmt.compile(dialect=postgresql.dialect()))


@pytest.fixture
def session(mock_session):
    mock_session.execute = AsyncMock(return_value=MagicMock())
    return mock_session


class TestFinalizedVolumeReads:
    """Test volume reads that feed carry-in and weak-leg history."""

    @pytest.mark.asyncio
    async def test_carry_rows_need_finalized_week(self, session):
        """Test carry-in rows are read only from a finalized week."""
        await BinaryVolumeRepository(session).find_for_week(WEEK, finalized_only=True)

        sql = executed_sql(session)
        assert "FROM weekly_settlement_meta" in sql
        assert "weekly_settlement_meta.is_finalized IS true" in sql

    @pytest.mark.asyncio
    async def test_week_rows_unfiltered_by_default(self, session):
        """Test a plain week read also returns draft rows."""
        await BinaryVolumeRepository(session).find_for_week(WEEK)

        assert "weekly_settlement_meta" not in executed_sql(session)

    @pytest.mark.asyncio
    async def test_weak_leg_history_skips_drafts(self, session):
        """Test weak-leg history only counts finalized weeks."""
        history = await BinaryVolumeRepository(session).weak_leg_history(WEEK, 3)

        assert history == {}
        assert "weekly_settlement_meta.is_finalized IS true" in executed_sql(session)


class TestFinalizedWeekLookups:
    """Test meta lookups used to keep weeks in order."""

    @pytest.mark.asyncio
    async def test_latest_finalized_before(self, session):
        """Test the newest earlier finalized week is selected."""
        session.execute.return_value.scalar_one_or_none.return_value = None

        assert await SettlementMetaRepository(session).latest_finalized_before(WEEK) is None
        sql = executed_sql(session)
        assert "max(weekly_settlement_meta.week_start)" in sql
        assert "weekly_settlement_meta.week_start <" in sql

    @pytest.mark.asyncio
    async def test_earliest_finalized_after(self, session):
        """Test the oldest later finalized week is selected."""
        later = WEEK.replace(day=13)
        session.execute.return_value.scalar_one_or_none.return_value = later

        assert await SettlementMetaRepository(session).earliest_finalized_after(WEEK) == later
        sql = executed_sql(session)
        assert "min(weekly_settlement_meta.week_start)" in sql
        assert "weekly_settlement_meta.week_start >" in sql
