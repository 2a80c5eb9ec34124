"""
Integration tests for the weekly settlement and ghost volume jobs.

Sessions, Redis and services are patched; only the job orchestration
runs.
"""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.config.settings import settings
from app.utils.distributed_lock import DistributedLock
from app.utils.exceptions import LockNotAcquiredError, is_retryable
from jobs.tasks.ghost_volume import issue_all_pending_credits
from jobs.tasks.weekly_settlement import _finalize_week_async


@asynccontextmanager
async def fake_context():
    yield MagicMock()


class TestWeeklySettlementJob:
    """Test the weekly finalization job."""

    @pytest.mark.asyncio
    async def test_pending_credits_issued_before_finalize(self):
        """Test Sunday-night purchases are credited before the week closes."""
        calls = []

        async def issue(redis_client):
            calls.append("issue")
            return 3

        async def finalize(week):
            calls.append(f"finalize {week}")
            return MagicMock(already_finalized=False)

        service_cls = MagicMock()
        service_cls.return_value.finalize_week = AsyncMock(side_effect=finalize)

        with patch.multiple(
            "jobs.tasks.weekly_settlement",
            redis_client_context=fake_context,
            create_local_session=fake_context,
            issue_all_pending_credits=issue,
            CommissionSettlementService=service_cls,
        ):
            await _finalize_week_async("2025-01-06")

        assert calls == ["issue", "finalize 2025-01-06"]

    @pytest.mark.asyncio
    async def test_issuance_failure_stops_finalize(self):
        """Test a week is not finalized while credits could still be missing."""
        service_cls = MagicMock()
        service_cls.return_value.finalize_week = AsyncMock()

        with patch.multiple(
            "jobs.tasks.weekly_settlement",
            redis_client_context=fake_context,
            create_local_session=fake_context,
            issue_all_pending_credits=AsyncMock(
                side_effect=LockNotAcquiredError("ghost_credit_issuance")
            ),
            CommissionSettlementService=service_cls,
        ):
            with pytest.raises(LockNotAcquiredError) as exc_info:
                await _finalize_week_async("2025-01-06")

        service_cls.return_value.finalize_week.assert_not_awaited()
        assert is_retryable(exc_info.value)


class TestIssueAllPendingCredits:
    """Test draining ghost credit issuance."""

    @pytest.mark.asyncio
    async def test_drains_every_batch(self):
        """Test full batches are followed until a short one."""
        size = settings.ghost_issue_batch_size
        service_cls = MagicMock()
        service_cls.return_value.issue_pending_credits = AsyncMock(
            side_effect=[size, size, 12]
        )

        with patch.multiple(
            "jobs.tasks.ghost_volume",
            create_local_session=fake_context,
            GhostVolumeService=service_cls,
        ):
            issued = await issue_all_pending_credits(None)

        assert issued == 2 * size + 12
        assert service_cls.return_value.issue_pending_credits.await_count == 3

    @pytest.mark.asyncio
    async def test_busy_issuance_raises(self):
        """Test a long-running issuance makes the caller fail and retry."""
        service_cls = MagicMock()
        lock = DistributedLock()

        with patch.multiple(
            "jobs.tasks.ghost_volume",
            create_local_session=fake_context,
            GhostVolumeService=service_cls,
            BLOCKING_TIMEOUT_LONG=0.05,
        ):
            async with lock.lock("ghost_credit_issuance") as acquired:
                assert acquired
                with pytest.raises(LockNotAcquiredError):
                    await issue_all_pending_credits(None)

        service_cls.assert_not_called()
