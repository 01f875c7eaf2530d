"""SQLAlchemy-backed call store."""

from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

from sqlalchemy import Result, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import DatabaseError
from app.core.logging import get_logger
from app.domain.entities.call import CallRecord, CallStatus
from app.domain.entities.webhook import DeliveryLogEntry, WebhookConfig
from app.infrastructure.database.models import (
    Call,
    CampaignWebhook,
    SyncState,
    WebhookDeliveryLog,
)
from app.infrastructure.store.base import CallStore

logger = get_logger(__name__)


def _to_db(value: datetime | None) -> datetime | None:
    """Store timestamps as naive UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


T = TypeVar("T")


def _first(result: Result, convert: Callable[[Any], T]) -> T | None:
    row = result.scalar_one_or_none()
    return convert(row) if row is not None else None


_CALL_FIELDS = (
    "id",
    "external_id",
    "source",
    "caller_number",
    "called_number",
    "duration_seconds",
    "recording_url",
    "campaign_id",
    "campaign_name",
    "agent_id",
    "agent_name",
    "disposition",
    "upstream_status",
    "revenue",
    "cost",
    "transcript",
    "analysis",
    "error",
)
_CALL_TIMES = ("start_time", "end_time", "created_at", "updated_at", "processed_at")


def _call_values(record: CallRecord) -> dict[str, Any]:
    values: dict[str, Any] = {name: getattr(record, name) for name in _CALL_FIELDS}
    values.update({name: _to_db(getattr(record, name)) for name in _CALL_TIMES})
    values["direction"] = record.direction.value
    values["status"] = record.status.value
    values["raw_metadata"] = record.metadata
    return values


def _call_record(row: Call) -> CallRecord:
    data: dict[str, Any] = {name: getattr(row, name) for name in _CALL_FIELDS}
    data.update({name: _from_db(getattr(row, name)) for name in _CALL_TIMES})
    data["direction"] = row.direction
    data["status"] = row.status
    data["metadata"] = row.raw_metadata or {}
    return CallRecord.model_validate(data)


_WEBHOOK_FIELDS = (
    "campaign_id",
    "url",
    "method",
    "enabled",
    "events",
    "payload_config",
    "headers",
    "secret",
    "retry_attempts",
    "timeout_ms",
    "success_count",
    "failure_count",
)


def _webhook_config(row: CampaignWebhook) -> WebhookConfig:
    data: dict[str, Any] = {name: getattr(row, name) for name in _WEBHOOK_FIELDS}
    data["last_triggered_at"] = _from_db(row.last_triggered_at)
    data["created_at"] = _from_db(row.created_at)
    return WebhookConfig.model_validate(data)


def _log_entry(row: WebhookDeliveryLog) -> DeliveryLogEntry:
    return DeliveryLogEntry(
        id=row.id,
        campaign_id=row.campaign_id,
        url=row.url,
        event=row.event,
        attempt=row.attempt,
        timestamp=_from_db(row.timestamp),
        success=row.success,
        status_code=row.status_code,
        payload_size=row.payload_size,
        response_time_ms=row.response_time_ms,
        test=row.test,
        error=row.error,
    )


class SqlCallStore(CallStore):
    """Store backed by the ``calls``, ``sync_state``, ``campaign_webhooks``
    and ``webhook_delivery_logs`` tables."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        log_max_entries: int = 100,
    ):
        super().__init__(log_max_entries)
        self._session_factory = session_factory

    async def _read(self, statement, convert: Callable[[Result], Any]) -> Any:
        """Run a query and convert its result inside the session."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return convert(result)
        except SQLAlchemyError as e:
            logger.error("Database read failed", error=str(e))
            raise DatabaseError(f"Database read failed: {e}") from e

    async def get_call(self, call_id: str) -> CallRecord | None:
        return await self._read(
            select(Call).where(Call.id == call_id),
            lambda r: _first(r, _call_record),
        )

    async def get_call_by_external_id(
        self, source: str, external_id: str
    ) -> CallRecord | None:
        return await self._read(
            select(Call).where(
                Call.source == source, Call.external_id == external_id
            ),
            lambda r: _first(r, _call_record),
        )

    async def put_call(self, record: CallRecord) -> CallRecord:
        values = _call_values(record)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(Call, record.id)
                    if row is None:
                        session.add(Call(**values))
                    else:
                        for key, value in values.items():
                            setattr(row, key, value)
        except SQLAlchemyError as e:
            logger.error("Failed to save call", call_id=record.id, error=str(e))
            raise DatabaseError(f"Failed to save call {record.id}: {e}") from e
        return record.model_copy(deep=True)

    async def list_calls(
        self,
        status: CallStatus | None = None,
        campaign_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[CallRecord]:
        query = select(Call)
        if status is not None:
            query = query.where(Call.status == status.value)
        if campaign_id is not None:
            query = query.where(Call.campaign_id == campaign_id)
        query = query.order_by(Call.created_at.desc(), Call.id).offset(offset).limit(limit)

        return await self._read(
            query, lambda r: [_call_record(row) for row in r.scalars().all()]
        )

    async def count_calls(
        self,
        status: CallStatus | None = None,
        campaign_id: str | None = None,
    ) -> int:
        query = select(func.count()).select_from(Call)
        if status is not None:
            query = query.where(Call.status == status.value)
        if campaign_id is not None:
            query = query.where(Call.campaign_id == campaign_id)
        return await self._read(query, lambda r: int(r.scalar_one()))

    async def get_last_sync(self, source: str) -> datetime | None:
        value = await self._read(
            select(SyncState.last_sync_at).where(SyncState.source == source),
            lambda r: r.scalar_one_or_none(),
        )
        return _from_db(value)

    async def set_last_sync(self, source: str, value: datetime) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(SyncState, source)
                    if row is None:
                        session.add(SyncState(source=source, last_sync_at=_to_db(value)))
                    else:
                        row.last_sync_at = _to_db(value)
        except SQLAlchemyError as e:
            logger.error("Failed to save sync state", source=source, error=str(e))
            raise DatabaseError(f"Failed to save sync state: {e}") from e

    async def get_webhook_config(self, campaign_id: str) -> WebhookConfig | None:
        return await self._read(
            select(CampaignWebhook).where(CampaignWebhook.campaign_id == campaign_id),
            lambda r: _first(r, _webhook_config),
        )

    async def list_webhook_configs(self) -> list[WebhookConfig]:
        return await self._read(
            select(CampaignWebhook).order_by(CampaignWebhook.campaign_id),
            lambda r: [_webhook_config(row) for row in r.scalars().all()],
        )

    async def put_webhook_config(self, config: WebhookConfig) -> WebhookConfig:
        values: dict[str, Any] = {
            name: getattr(config, name) for name in _WEBHOOK_FIELDS
        }
        values["last_triggered_at"] = _to_db(config.last_triggered_at)
        values["created_at"] = _to_db(config.created_at)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(CampaignWebhook, config.campaign_id)
                    if row is None:
                        session.add(CampaignWebhook(**values))
                    else:
                        for key, value in values.items():
                            setattr(row, key, value)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to save webhook config",
                campaign_id=config.campaign_id,
                error=str(e),
            )
            raise DatabaseError(f"Failed to save webhook config: {e}") from e
        return config.model_copy(deep=True)

    async def record_delivery_outcome(
        self, campaign_id: str, success: bool, triggered_at: datetime
    ) -> None:
        counter = (
            CampaignWebhook.success_count if success else CampaignWebhook.failure_count
        )
        statement = (
            update(CampaignWebhook)
            .where(CampaignWebhook.campaign_id == campaign_id)
            .values(
                {
                    counter: counter + 1,
                    CampaignWebhook.last_triggered_at: _to_db(triggered_at),
                }
            )
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(statement)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to update webhook counters",
                campaign_id=campaign_id,
                error=str(e),
            )
            raise DatabaseError(f"Failed to update webhook counters: {e}") from e

    async def append_delivery_log(self, entry: DeliveryLogEntry) -> DeliveryLogEntry:
        row = WebhookDeliveryLog(
            campaign_id=entry.campaign_id,
            url=entry.url,
            event=entry.event,
            attempt=entry.attempt,
            timestamp=_to_db(entry.timestamp),
            success=entry.success,
            status_code=entry.status_code,
            payload_size=entry.payload_size,
            response_time_ms=entry.response_time_ms,
            test=entry.test,
            error=entry.error,
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(row)
                    await session.flush()
                    stored_id = row.id

                    # Evict everything older than the newest N entries
                    keep = (
                        select(WebhookDeliveryLog.id)
                        .order_by(WebhookDeliveryLog.id.desc())
                        .limit(self.log_max_entries)
                    )
                    kept_ids = (await session.execute(keep)).scalars().all()
                    if kept_ids:
                        await session.execute(
                            delete(WebhookDeliveryLog).where(
                                WebhookDeliveryLog.id < min(kept_ids)
                            )
                        )
        except SQLAlchemyError as e:
            logger.error("Failed to append delivery log", error=str(e))
            raise DatabaseError(f"Failed to append delivery log: {e}") from e
        return entry.model_copy(update={"id": stored_id})

    async def list_delivery_log(
        self, limit: int = 100, campaign_id: str | None = None
    ) -> list[DeliveryLogEntry]:
        query = select(WebhookDeliveryLog)
        if campaign_id is not None:
            query = query.where(WebhookDeliveryLog.campaign_id == campaign_id)
        query = query.order_by(WebhookDeliveryLog.id.desc()).limit(limit)

        return await self._read(
            query, lambda r: [_log_entry(row) for row in r.scalars().all()]
        )
