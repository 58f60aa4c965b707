"""Integration tests for the calculate/airdrop jobs and the scheduler."""
from datetime import datetime

import pytest

from airdrop.config import get_settings
from airdrop.models.distribution import DistributionStatus
from airdrop.services.distribution_service import DistributionService
from airdrop.services.jobs import run_airdrop_job, run_calculate_job
from airdrop.services.periods import current_period_id, previous_period_id
from airdrop.services.scheduler import AirdropScheduler
from airdrop.services.snapshots import SnapshotService
from tests.helpers import CURRENT_BALANCES, CURRENT_PERIOD, PREVIOUS_BALANCES


@pytest.fixture
def reference_settings(monkeypatch):
    """Pool and threshold of the reference scenario"""
    settings = get_settings()
    monkeypatch.setattr(settings, "reward_pool", 900)
    monkeypatch.setattr(settings, "min_balance", 400)
    monkeypatch.setattr(settings, "batch_size", 1)
    return settings


class TestCalculateJob:
    @pytest.mark.asyncio
    async def test_calculates_period(self, db_session, reference_snapshots, reference_settings):
        result = await run_calculate_job(db_session, CURRENT_PERIOD)

        assert result is not None
        assert result.distribution.status == DistributionStatus.READY
        assert result.eligible_count == 2
        assert result.batch_count == 2

    @pytest.mark.asyncio
    async def test_already_calculated_period_is_skipped(self, db_session, reference_snapshots, reference_settings):
        await run_calculate_job(db_session, CURRENT_PERIOD)
        assert await run_calculate_job(db_session, CURRENT_PERIOD) is None

    @pytest.mark.asyncio
    async def test_missing_snapshot_propagates(self, db_session, reference_settings):
        from airdrop.exceptions import SnapshotNotFoundError
        with pytest.raises(SnapshotNotFoundError):
            await run_calculate_job(db_session, CURRENT_PERIOD)


class TestAirdropJob:
    @pytest.mark.asyncio
    async def test_processes_ready_distribution(self, db_session, reference_snapshots, reference_settings, runtime):
        await run_calculate_job(db_session, CURRENT_PERIOD)

        result = await run_airdrop_job(db_session, runtime.orchestrator, CURRENT_PERIOD)
        assert result.status == DistributionStatus.COMPLETED
        assert result.total_distributed == 900

        # Nothing left to do on the next run
        assert await run_airdrop_job(db_session, runtime.orchestrator, CURRENT_PERIOD) is None

    @pytest.mark.asyncio
    async def test_missing_distribution(self, db_session, runtime):
        assert await run_airdrop_job(db_session, runtime.orchestrator, CURRENT_PERIOD) is None

    @pytest.mark.asyncio
    async def test_failed_distribution_is_left_for_manual_retry(
        self, db_session, reference_snapshots, reference_settings, runtime
    ):
        result = await run_calculate_job(db_session, CURRENT_PERIOD)
        result.distribution.status = DistributionStatus.FAILED
        await db_session.commit()

        assert await run_airdrop_job(db_session, runtime.orchestrator, CURRENT_PERIOD) is None


class TestAirdropScheduler:
    @pytest.mark.asyncio
    async def test_tick_calculates_and_pays_current_period(
        self, db_session, session_factory, reference_settings, runtime
    ):
        period_id = current_period_id(reference_settings.cycle_mode, datetime.utcnow())
        snapshots = SnapshotService(db_session)
        await snapshots.store_snapshot(previous_period_id(period_id), PREVIOUS_BALANCES)
        await snapshots.store_snapshot(period_id, CURRENT_BALANCES)

        scheduler = AirdropScheduler(runtime, interval_seconds=60, session_factory=session_factory)
        await scheduler.tick()

        distribution = await DistributionService(db_session).get_by_period(period_id)
        await db_session.refresh(distribution)
        assert distribution.status == DistributionStatus.COMPLETED
        assert distribution.total_distributed == 900

    @pytest.mark.asyncio
    async def test_tick_survives_job_errors(self, session_factory, runtime):
        """No snapshots at all: both jobs log and the tick returns."""
        scheduler = AirdropScheduler(runtime, interval_seconds=60, session_factory=session_factory)
        await scheduler.tick()

    @pytest.mark.asyncio
    async def test_start_and_stop(self, session_factory, runtime):
        scheduler = AirdropScheduler(runtime, interval_seconds=3600, session_factory=session_factory)
        await scheduler.start()
        assert scheduler.running
        await scheduler.stop()
        assert not scheduler.running
