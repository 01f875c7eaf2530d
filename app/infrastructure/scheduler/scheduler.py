"""APScheduler integration for periodic call sync."""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.logging import get_logger

if TYPE_CHECKING:
    from app.domain.services.sync_service import CallSyncService, SyncResult

logger = get_logger(__name__)


def build_scheduler() -> AsyncIOScheduler:
    """Create a scheduler with one-at-a-time, coalescing job defaults."""
    return AsyncIOScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,  # Combine multiple missed runs into one
            "max_instances": 1,  # Only one instance per job at a time
            "misfire_grace_time": 60,  # Allow 60s grace for misfired jobs
        },
    )


class SyncScheduler:
    """Runs incremental call sync on a fixed interval."""

    JOB_ID = "sync_calls"

    def __init__(
        self,
        sync_service: "CallSyncService",
        interval_minutes: int,
        run_on_start: bool = True,
        scheduler: AsyncIOScheduler | None = None,
    ):
        self._sync = sync_service
        self._interval = interval_minutes
        self._run_on_start = run_on_start
        self._scheduler = scheduler or build_scheduler()

    @property
    def running(self) -> bool:
        return self._scheduler.running

    @property
    def interval_minutes(self) -> int:
        return self._interval

    async def sync_job(self) -> None:
        """Job function for incremental sync."""
        logger.info("Scheduled sync job triggered")
        try:
            result = await self._sync.run_incremental()
            logger.info(
                "Scheduled sync finished",
                status=result.status,
                queued=result.queued,
                stored=result.stored,
            )
        except Exception as e:
            logger.error("Scheduled sync job failed", error=str(e))

    def _add_job(self, first_run: datetime | None = None) -> None:
        kwargs: dict[str, Any] = {}
        if first_run is not None:
            kwargs["next_run_time"] = first_run
        self._scheduler.add_job(
            self.sync_job,
            trigger=IntervalTrigger(minutes=self._interval),
            id=self.JOB_ID,
            name="Sync calls",
            replace_existing=True,
            **kwargs,
        )

    def start(self) -> None:
        """Schedule the sync job and start the scheduler."""
        if self._scheduler.running:
            return
        first_run = datetime.now(timezone.utc) if self._run_on_start else None
        self._add_job(first_run)
        self._scheduler.start()
        logger.info(
            "Scheduler started",
            interval_minutes=self._interval,
            run_on_start=self._run_on_start,
        )

    def stop(self) -> None:
        """Stop the scheduler without waiting for a running job."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    def reschedule(self, interval_minutes: int) -> None:
        """Change the sync interval. A non-positive interval removes the job."""
        self._interval = interval_minutes
        if self._scheduler.get_job(self.JOB_ID):
            self._scheduler.remove_job(self.JOB_ID)
        if interval_minutes > 0:
            self._add_job()
            logger.info("Rescheduled sync job", interval_minutes=interval_minutes)
        else:
            logger.info("Removed sync job")

    async def trigger_now(self) -> "SyncResult":
        """Run an incremental sync immediately, outside the schedule."""
        logger.info("Manually triggering sync")
        return await self._sync.run_incremental()

    def get_status(self) -> dict[str, Any]:
        """Get current scheduler status."""
        jobs = []
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
            })

        return {
            "running": self._scheduler.running,
            "interval_minutes": self._interval,
            "jobs": jobs,
            "job_count": len(jobs),
        }
