"""Synchronization service for upstream call logs."""

import asyncio
import inspect
from datetime import datetime, timedelta
from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel, Field

from app.config import Settings
from app.core.exceptions import DiscoveryError
from app.core.logging import get_logger
from app.domain.entities.call import CallRecord, utcnow
from app.domain.services.field_mapper import FieldMapper
from app.infrastructure.queue.processing_queue import ProcessingQueue
from app.infrastructure.store.base import CallStore
from app.infrastructure.upstream.client import UpstreamClient

logger = get_logger(__name__)

SyncType = Literal["incremental", "manual"]


class SyncStatusUpdate(BaseModel):
    """Notification sent to sync listeners."""

    syncing: bool
    sync_type: Optional[str] = None
    count: Optional[int] = None
    total: Optional[int] = None
    error: Optional[str] = None


class SyncResult(BaseModel):
    """Outcome of one sync run."""

    status: Literal["completed", "failed", "already_syncing"]
    sync_type: str
    fetched: int = 0
    filtered: int = 0
    skipped: int = 0
    queued: int = 0
    stored: int = 0
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    endpoint: Optional[str] = None
    message: Optional[str] = None
    attempts: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == "completed"


SyncListener = Callable[[SyncStatusUpdate], Any]


class CallSyncService:
    """Pulls new calls from the upstream into the local store.

    Only one run may be in flight at a time; a run requested meanwhile
    returns ``already_syncing`` without waiting. New calls are pushed onto
    the processing queue when auto-processing is on, otherwise stored as
    pending without being queued.
    """

    def __init__(
        self,
        settings: Settings,
        client: UpstreamClient,
        store: CallStore,
        queue: ProcessingQueue | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._settings = settings
        self._client = client
        self._store = store
        self._queue = queue
        self._clock = clock
        self._source = settings.upstream_source

        self._syncing = False
        self._current_type: str | None = None
        self._last_result: SyncResult | None = None
        self._listeners: list[SyncListener] = []
        self._listener_tasks: set[asyncio.Task] = set()

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def last_result(self) -> SyncResult | None:
        return self._last_result

    def add_listener(self, listener: SyncListener) -> Callable[[], None]:
        """Register a status listener; returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self, update: SyncStatusUpdate) -> None:
        for listener in list(self._listeners):
            try:
                outcome = listener(update)
                if inspect.isawaitable(outcome):
                    task = asyncio.ensure_future(outcome)
                    self._listener_tasks.add(task)
                    task.add_done_callback(self._listener_done)
            except Exception as e:
                logger.warning("Sync listener failed", error=str(e))

    def _listener_done(self, task: asyncio.Task) -> None:
        self._listener_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Sync listener failed", error=str(task.exception()))

    async def run_incremental(self) -> SyncResult:
        """Sync calls since the stored watermark (or the default lookback)."""
        now = self._clock()
        lower = await self._store.get_last_sync(self._source)
        if lower is None:
            lower = now - timedelta(hours=self._settings.sync_default_lookback_hours)
        return await self._run(
            "incremental", lower, now, self._settings.sync_page_size
        )

    async def run_manual(self, days: int | None = None) -> SyncResult:
        """Sync calls from the last ``days`` days."""
        if days is None:
            days = self._settings.manual_sync_default_days
        now = self._clock()
        return await self._run(
            "manual",
            now - timedelta(days=days),
            now,
            self._settings.manual_sync_page_size,
        )

    async def _run(
        self,
        sync_type: SyncType,
        lower: datetime,
        upper: datetime,
        page_size: int,
    ) -> SyncResult:
        if self._syncing:
            logger.info("Sync already in progress", requested=sync_type)
            return SyncResult(
                status="already_syncing",
                sync_type=sync_type,
                message="Sync already in progress",
            )

        self._syncing = True
        self._current_type = sync_type
        result = SyncResult(
            status="completed",
            sync_type=sync_type,
            window_start=lower,
            window_end=upper,
            started_at=self._clock(),
        )
        logger.info(
            "Starting sync",
            sync_type=sync_type,
            since=lower.isoformat(),
            until=upper.isoformat(),
        )
        self._notify(SyncStatusUpdate(syncing=True, sync_type=sync_type))

        try:
            min_duration = self._settings.min_call_duration_seconds

            # Step 1: Fetch through endpoint discovery
            fetch = await self._client.fetch_calls(
                lower, upper, page_size, min_duration_seconds=min_duration
            )
            result.endpoint = fetch.endpoint
            result.attempts = [a.to_dict() for a in fetch.attempts]
            result.fetched = len(fetch.records)
            self._notify(
                SyncStatusUpdate(
                    syncing=True, sync_type=sync_type, count=0, total=result.fetched
                )
            )

            # Step 2: Normalize, filter, dedupe, route
            seen: set[str] = set()
            for raw in fetch.records:
                record = FieldMapper.normalize_call(raw, source=self._source)

                if record.duration_seconds < min_duration:
                    result.filtered += 1
                    continue

                if record.external_id in seen or await self._exists(record):
                    result.skipped += 1
                    continue
                seen.add(record.external_id)

                if await self._route(record) == "queued":
                    result.queued += 1
                else:
                    result.stored += 1

                self._notify(
                    SyncStatusUpdate(
                        syncing=True,
                        sync_type=sync_type,
                        count=result.queued + result.stored,
                        total=result.fetched,
                    )
                )

            # Step 3: Advance the watermark to the end of the fetched window
            await self._store.set_last_sync(self._source, upper)

            logger.info(
                "Sync completed",
                sync_type=sync_type,
                fetched=result.fetched,
                filtered=result.filtered,
                skipped=result.skipped,
                queued=result.queued,
                stored=result.stored,
            )

        except DiscoveryError as e:
            logger.error(
                "Sync failed: upstream discovery",
                sync_type=sync_type,
                attempts=len(e.attempts),
            )
            result.status = "failed"
            result.message = e.message
            result.attempts = [a.to_dict() for a in e.attempts]

        except Exception as e:
            logger.exception("Sync failed", sync_type=sync_type, error=str(e))
            result.status = "failed"
            result.message = f"{sync_type.capitalize()} sync failed: {e}"

        finally:
            self._syncing = False
            self._current_type = None

        result.completed_at = self._clock()
        self._last_result = result
        self._notify(
            SyncStatusUpdate(
                syncing=False,
                sync_type=sync_type,
                count=result.queued + result.stored,
                total=result.fetched,
                error=result.message if result.status == "failed" else None,
            )
        )
        return result

    async def _exists(self, record: CallRecord) -> bool:
        existing = await self._store.get_call_by_external_id(
            record.source, record.external_id
        )
        return existing is not None

    async def _route(self, record: CallRecord) -> str:
        if self._settings.auto_process_calls and self._queue is not None:
            await self._queue.enqueue(record)
            return "queued"
        await self._store.put_call(record)
        return "stored"

    async def ingest_call(self, raw: dict[str, Any]) -> dict[str, Any]:
        """Accept one call pushed by the upstream's own webhook.

        Normalized, deduplicated and routed like a synced record. Does not
        take the sync flag.
        """
        record = FieldMapper.normalize_call(raw, source=self._source)

        if await self._exists(record):
            logger.info(
                "Pushed call already known, skipping",
                external_id=record.external_id,
            )
            return {
                "status": "duplicate",
                "call_id": record.id,
                "external_id": record.external_id,
            }

        outcome = await self._route(record)
        logger.info(
            "Pushed call accepted", external_id=record.external_id, outcome=outcome
        )
        return {
            "status": outcome,
            "call_id": record.id,
            "external_id": record.external_id,
        }

    async def get_status(self) -> dict[str, Any]:
        """Current sync state, watermark and store totals."""
        last = self._last_result
        return {
            "syncing": self._syncing,
            "current_sync_type": self._current_type,
            "source": self._source,
            "upstream_configured": self._client.configured,
            "auto_process_calls": self._settings.auto_process_calls,
            "last_sync_at": await self._store.get_last_sync(self._source),
            "total_calls": await self._store.count_calls(),
            "last_result": last.model_dump(mode="json") if last else None,
        }
