"""Unit tests for SyncScheduler."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.infrastructure.scheduler import SyncScheduler


class TestSyncScheduler:
    """Test suite for the periodic sync job."""

    @pytest.fixture
    def sync_service(self):
        service = MagicMock()
        service.run_incremental = AsyncMock(
            return_value=MagicMock(status="completed", queued=0, stored=0)
        )
        return service

    async def test_start_registers_interval_job(self, sync_service):
        scheduler = SyncScheduler(sync_service, interval_minutes=15, run_on_start=False)

        scheduler.start()
        try:
            status = scheduler.get_status()
        finally:
            scheduler.stop()

        assert status["running"] is True
        assert status["interval_minutes"] == 15
        assert status["job_count"] == 1
        assert status["jobs"][0]["id"] == SyncScheduler.JOB_ID
        assert "0:15:00" in status["jobs"][0]["trigger"]

    async def test_reschedule_and_remove(self, sync_service):
        scheduler = SyncScheduler(sync_service, interval_minutes=15, run_on_start=False)
        scheduler.start()
        try:
            scheduler.reschedule(30)
            rescheduled = scheduler.get_status()
            scheduler.reschedule(0)
            removed = scheduler.get_status()
        finally:
            scheduler.stop()

        assert rescheduled["interval_minutes"] == 30
        assert "0:30:00" in rescheduled["jobs"][0]["trigger"]
        assert removed["job_count"] == 0

    async def test_trigger_now_runs_incremental(self, sync_service):
        scheduler = SyncScheduler(sync_service, interval_minutes=15)

        await scheduler.trigger_now()

        sync_service.run_incremental.assert_awaited_once()

    async def test_job_swallows_errors(self, sync_service):
        sync_service.run_incremental.side_effect = RuntimeError("upstream down")
        scheduler = SyncScheduler(sync_service, interval_minutes=15)

        await scheduler.sync_job()

        sync_service.run_incremental.assert_awaited_once()

    def test_stop_when_not_running_is_noop(self, sync_service):
        scheduler = SyncScheduler(sync_service, interval_minutes=15)

        scheduler.stop()

        assert scheduler.running is False
