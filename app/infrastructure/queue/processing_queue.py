"""Serialized processing queue: download, transcribe, analyze, persist."""

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Protocol

from app.core.exceptions import (
    AnalysisError,
    CallNotFoundError,
    InvalidStatusTransition,
    ProcessingError,
    RecordingUnavailableError,
    TranscriptionError,
    UpstreamAPIError,
)
from app.core.logging import get_logger
from app.domain.entities.call import CallRecord, CallStatus
from app.infrastructure.store.base import CallStore
from app.infrastructure.transcription.base import Analyzer, Transcriber
from app.infrastructure.upstream.client import UpstreamClient

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class CallCompletionNotifier(Protocol):
    async def on_call_completed(self, record: CallRecord) -> None:
        ...


class ProcessingQueue:
    """FIFO of calls awaiting enrichment, drained by one loop at a time.

    ``enqueue`` is safe from any caller; only one ``drain`` runs at a time
    and a concurrent call returns immediately. Each record ends up persisted
    as ``completed`` or ``failed``; a failure never stops the drain.
    """

    def __init__(
        self,
        store: CallStore,
        client: UpstreamClient,
        transcriber: Transcriber,
        analyzer: Analyzer | None = None,
        notifier: CallCompletionNotifier | None = None,
        pacing_seconds: float = 2.0,
        sleep: Sleep = asyncio.sleep,
    ):
        self._store = store
        self._client = client
        self._transcriber = transcriber
        self._analyzer = analyzer
        self._notifier = notifier
        self._pacing = pacing_seconds
        self._sleep = sleep

        self._items: deque[CallRecord] = deque()
        self._draining = False
        self._current: CallRecord | None = None
        self._running = False
        self._stop_requested = False
        self._drain_task: asyncio.Task | None = None

        self.processed_count = 0
        self.failed_count = 0

    def set_notifier(self, notifier: CallCompletionNotifier | None) -> None:
        self._notifier = notifier

    def __len__(self) -> int:
        return len(self._items)

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def start(self) -> None:
        """Start draining automatically whenever items are enqueued."""
        if self._running:
            return
        self._running = True
        self._stop_requested = False
        logger.info("ProcessingQueue started", pending=len(self._items))
        self._schedule_drain()

    async def stop(self) -> None:
        """Stop after the item in flight; remaining items stay queued."""
        if not self._running and self._drain_task is None:
            return
        self._running = False
        self._stop_requested = True

        if self._drain_task and not self._drain_task.done():
            await self._drain_task
        self._drain_task = None
        logger.info("ProcessingQueue stopped", pending=len(self._items))

    def _schedule_drain(self) -> None:
        if not self._running or self._draining or not self._items:
            return
        if self._drain_task and not self._drain_task.done():
            return
        self._drain_task = asyncio.create_task(
            self.drain(), name="processing_queue_drain"
        )

    def is_queued(self, call_id: str) -> bool:
        return any(item.id == call_id for item in self._items)

    async def enqueue(self, record: CallRecord) -> CallRecord:
        """Persist the record as ``pending`` and append it to the queue."""
        if record.status != CallStatus.PENDING:
            raise InvalidStatusTransition(
                f"Only pending calls can be queued, {record.id} is {record.status.value}",
                details={"call_id": record.id, "status": record.status.value},
            )

        stored = await self._store.put_call(record)
        self._items.append(stored)
        logger.info(
            "Call queued for processing",
            call_id=stored.id,
            external_id=stored.external_id,
            queue_size=len(self._items),
        )
        self._schedule_drain()
        return stored.model_copy(deep=True)

    async def requeue(self, call_id: str) -> CallRecord:
        """Send a failed (or stored but never queued) call back through the queue.

        Raises:
            CallNotFoundError: unknown call id
            InvalidStatusTransition: call is processing, completed or already queued
        """
        record = await self._store.get_call(call_id)
        if record is None:
            raise CallNotFoundError(f"Call {call_id} not found", details={"call_id": call_id})

        if self.is_queued(call_id) or (
            self._current is not None and self._current.id == call_id
        ):
            raise InvalidStatusTransition(
                f"Call {call_id} is already queued",
                details={"call_id": call_id, "status": record.status.value},
            )

        record.requeue()
        logger.info("Call re-queued", call_id=call_id)
        return await self.enqueue(record)

    async def drain(self) -> int:
        """Process queued calls one at a time.

        Returns:
            Number of calls processed by this drain; 0 if a drain was already
            running.
        """
        if self._draining:
            return 0

        self._draining = True
        processed = 0
        try:
            while self._items and not self._stop_requested:
                if processed:
                    await self._sleep(self._pacing)
                    if self._stop_requested:
                        break
                record = self._items.popleft()
                await self._process(record)
                processed += 1
        finally:
            self._draining = False
            self._current = None

        if processed:
            logger.info(
                "Processing queue drained",
                processed=processed,
                remaining=len(self._items),
            )
        return processed

    async def _process(self, record: CallRecord) -> None:
        self._current = record
        log = logger.bind(call_id=record.id, external_id=record.external_id)

        try:
            record.mark_processing()
        except InvalidStatusTransition as e:
            log.warning("Skipping call in unexpected state", error=e.message)
            return

        try:
            await self._store.put_call(record)
            transcript, analysis = await self._enrich(record, log)
            record.mark_completed(transcript, analysis)
        except ProcessingError as e:
            log.warning("Call processing failed", error=e.message)
            record.mark_failed(e.message)
        except Exception as e:
            log.error("Call processing failed unexpectedly", error=str(e))
            record.mark_failed(str(e) or type(e).__name__)

        try:
            await self._store.put_call(record)
        except Exception as e:
            log.error("Failed to persist processed call", error=str(e))

        if record.status == CallStatus.COMPLETED:
            self.processed_count += 1
            log.info("Call processed")
            await self._notify(record, log)
        else:
            self.failed_count += 1

    async def _enrich(
        self, record: CallRecord, log
    ) -> tuple[str | None, dict[str, Any] | None]:
        # Step 1: Recording URL
        if not record.recording_url:
            try:
                record.recording_url = await self._client.get_recording_url(
                    record.external_id
                )
            except UpstreamAPIError as e:
                raise RecordingUnavailableError(
                    f"Recording URL lookup failed: {e.message}"
                ) from e
        if not record.recording_url:
            raise RecordingUnavailableError("No recording URL available")

        # Step 2: Download
        log.info("Downloading recording")
        audio = await self._client.download_recording(record.recording_url)

        # Step 3: Transcribe
        filename = f"{record.source}_{record.external_id}.wav"
        result = await self._transcriber.transcribe(audio, filename)
        if not result.success:
            raise TranscriptionError(result.error or "Transcription failed")

        # Step 4: Analyze when the engine did not
        analysis = result.analysis
        if analysis is None and self._analyzer is not None and result.transcript:
            try:
                analysis = await self._analyzer.analyze(result.transcript, record)
            except AnalysisError:
                raise
            except Exception as e:
                raise AnalysisError(f"Analysis failed: {e}") from e

        return result.transcript, analysis

    async def _notify(self, record: CallRecord, log) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.on_call_completed(record)
        except Exception as e:
            log.error("Completion notification failed", error=str(e))

    def get_status(self) -> dict[str, Any]:
        """Get current queue status."""
        return {
            "running": self._running,
            "size": len(self._items),
            "draining": self._draining,
            "current_external_id": self._current.external_id if self._current else None,
            "processed_count": self.processed_count,
            "failed_count": self.failed_count,
            "pending_call_ids": [item.id for item in self._items],
        }
