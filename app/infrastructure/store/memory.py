"""In-process call store."""

from collections import deque
from datetime import datetime

from app.domain.entities.call import CallRecord, CallStatus
from app.domain.entities.webhook import DeliveryLogEntry, WebhookConfig
from app.infrastructure.store.base import CallStore


class InMemoryCallStore(CallStore):
    """Dictionary-backed store. Returns copies so callers never share state."""

    def __init__(self, log_max_entries: int = 100):
        super().__init__(log_max_entries)
        self._calls: dict[str, CallRecord] = {}
        self._external_index: dict[tuple[str, str], str] = {}
        self._watermarks: dict[str, datetime] = {}
        self._webhooks: dict[str, WebhookConfig] = {}
        self._log: deque[DeliveryLogEntry] = deque(maxlen=log_max_entries)
        self._log_seq = 0

    async def get_call(self, call_id: str) -> CallRecord | None:
        record = self._calls.get(call_id)
        return record.model_copy(deep=True) if record else None

    async def get_call_by_external_id(
        self, source: str, external_id: str
    ) -> CallRecord | None:
        call_id = self._external_index.get((source, external_id))
        return await self.get_call(call_id) if call_id else None

    async def put_call(self, record: CallRecord) -> CallRecord:
        stored = record.model_copy(deep=True)
        self._calls[stored.id] = stored
        self._external_index[(stored.source, stored.external_id)] = stored.id
        return stored.model_copy(deep=True)

    async def list_calls(
        self,
        status: CallStatus | None = None,
        campaign_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[CallRecord]:
        records = [
            r
            for r in self._calls.values()
            if (status is None or r.status == status)
            and (campaign_id is None or r.campaign_id == campaign_id)
        ]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return [r.model_copy(deep=True) for r in records[offset : offset + limit]]

    async def count_calls(
        self,
        status: CallStatus | None = None,
        campaign_id: str | None = None,
    ) -> int:
        return sum(
            1
            for r in self._calls.values()
            if (status is None or r.status == status)
            and (campaign_id is None or r.campaign_id == campaign_id)
        )

    async def get_last_sync(self, source: str) -> datetime | None:
        return self._watermarks.get(source)

    async def set_last_sync(self, source: str, value: datetime) -> None:
        self._watermarks[source] = value

    async def get_webhook_config(self, campaign_id: str) -> WebhookConfig | None:
        config = self._webhooks.get(campaign_id)
        return config.model_copy(deep=True) if config else None

    async def list_webhook_configs(self) -> list[WebhookConfig]:
        return [c.model_copy(deep=True) for c in self._webhooks.values()]

    async def put_webhook_config(self, config: WebhookConfig) -> WebhookConfig:
        self._webhooks[config.campaign_id] = config.model_copy(deep=True)
        return config.model_copy(deep=True)

    async def record_delivery_outcome(
        self, campaign_id: str, success: bool, triggered_at: datetime
    ) -> None:
        config = self._webhooks.get(campaign_id)
        if config is None:
            return
        if success:
            config.success_count += 1
        else:
            config.failure_count += 1
        config.last_triggered_at = triggered_at

    async def append_delivery_log(self, entry: DeliveryLogEntry) -> DeliveryLogEntry:
        self._log_seq += 1
        stored = entry.model_copy(update={"id": self._log_seq})
        self._log.append(stored)
        return stored.model_copy()

    async def list_delivery_log(
        self, limit: int = 100, campaign_id: str | None = None
    ) -> list[DeliveryLogEntry]:
        entries = [
            e
            for e in reversed(self._log)
            if campaign_id is None or e.campaign_id == campaign_id
        ]
        return [e.model_copy() for e in entries[:limit]]
