"""Call pipeline service container."""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable

import httpx

from app.config import Settings
from app.core.logging import get_logger
from app.domain.entities.call import utcnow
from app.domain.services.sync_service import CallSyncService
from app.domain.services.webhook_service import WebhookService
from app.infrastructure.queue.processing_queue import ProcessingQueue
from app.infrastructure.scheduler.scheduler import SyncScheduler
from app.infrastructure.store.base import CallStore
from app.infrastructure.store.memory import InMemoryCallStore
from app.infrastructure.transcription.base import Analyzer, Transcriber
from app.infrastructure.transcription.http import HttpAnalyzer, HttpTranscriber
from app.infrastructure.upstream.client import UpstreamClient

logger = get_logger(__name__)


class CallPipeline:
    """Wires sync, processing and delivery around one store.

    Built explicitly and handed to the API through ``app.state``; ``stop``
    shuts down the scheduler, the queue and pending deliveries.
    """

    def __init__(
        self,
        settings: Settings,
        store: CallStore,
        http_client: httpx.AsyncClient,
        transcriber: Transcriber,
        analyzer: Analyzer | None = None,
        upstream: UpstreamClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
        owns_http_client: bool = False,
    ):
        self.settings = settings
        self.store = store
        self._http = http_client
        self._owns_http = owns_http_client

        self.upstream = upstream or UpstreamClient(settings, http_client)
        self.webhooks = WebhookService(
            settings, store, http_client, sleep=sleep, clock=clock
        )
        self.queue = ProcessingQueue(
            store,
            self.upstream,
            transcriber,
            analyzer=analyzer,
            notifier=self.webhooks,
            pacing_seconds=settings.processing_pacing_seconds,
            sleep=sleep,
        )
        self.sync = CallSyncService(
            settings, self.upstream, store, queue=self.queue, clock=clock
        )
        self.scheduler = SyncScheduler(
            self.sync,
            interval_minutes=settings.sync_interval_minutes,
            run_on_start=settings.sync_run_on_start,
        )
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Start the queue and, when sync is enabled and configured, the scheduler."""
        if self._started:
            return
        self.webhooks.start()
        await self.queue.start()

        if not self.settings.sync_enabled:
            logger.info("Scheduled sync disabled")
        elif not self.upstream.configured:
            logger.warning("Upstream credentials missing, scheduled sync not started")
        else:
            self.scheduler.start()

        self._started = True
        logger.info("Call pipeline started")

    async def stop(self) -> None:
        """Stop timers and background work; safe to call more than once."""
        self.scheduler.stop()
        await self.queue.stop()
        await self.webhooks.stop()
        if self._owns_http:
            await self._http.aclose()
            self._owns_http = False
        if self._started:
            logger.info("Call pipeline stopped")
        self._started = False

    async def get_status(self) -> dict[str, Any]:
        return {
            "started": self._started,
            "sync": await self.sync.get_status(),
            "queue": self.queue.get_status(),
            "scheduler": self.scheduler.get_status(),
            "pending_deliveries": self.webhooks.pending_tasks,
        }


def build_store(settings: Settings) -> CallStore:
    """Create the store selected by ``store_backend``."""
    if settings.store_backend == "memory":
        return InMemoryCallStore(log_max_entries=settings.webhook_log_max_entries)

    from app.infrastructure.database.connection import get_session_factory
    from app.infrastructure.store.sql import SqlCallStore

    return SqlCallStore(
        get_session_factory(), log_max_entries=settings.webhook_log_max_entries
    )


def build_pipeline(settings: Settings, store: CallStore | None = None) -> CallPipeline:
    """Build the production pipeline with HTTP collaborators."""
    http_client = httpx.AsyncClient(timeout=settings.upstream_timeout_seconds)
    transcriber = HttpTranscriber(
        http_client,
        settings.transcription_url,
        api_key=settings.transcription_api_key,
        timeout_seconds=settings.transcription_timeout_seconds,
    )
    analyzer = HttpAnalyzer(http_client, settings.analysis_url) if settings.analysis_url else None

    return CallPipeline(
        settings,
        store or build_store(settings),
        http_client,
        transcriber,
        analyzer=analyzer,
        owns_http_client=True,
    )
