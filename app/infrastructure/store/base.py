"""Local call store interface."""

from abc import ABC, abstractmethod
from datetime import datetime

from app.domain.entities.call import CallRecord, CallStatus
from app.domain.entities.webhook import DeliveryLogEntry, WebhookConfig


class CallStore(ABC):
    """Durable keyed storage for the pipeline.

    Holds call records (keyed by internal id, indexed by source + external
    id), the per-source sync watermark, webhook configurations keyed by
    campaign id, and the bounded delivery log. Writes are last-writer-wins.
    """

    def __init__(self, log_max_entries: int = 100):
        self.log_max_entries = log_max_entries

    # Calls

    @abstractmethod
    async def get_call(self, call_id: str) -> CallRecord | None:
        ...

    @abstractmethod
    async def get_call_by_external_id(
        self, source: str, external_id: str
    ) -> CallRecord | None:
        ...

    @abstractmethod
    async def put_call(self, record: CallRecord) -> CallRecord:
        """Insert or replace a record by its internal id."""

    @abstractmethod
    async def list_calls(
        self,
        status: CallStatus | None = None,
        campaign_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[CallRecord]:
        """Most recently created first."""

    @abstractmethod
    async def count_calls(
        self,
        status: CallStatus | None = None,
        campaign_id: str | None = None,
    ) -> int:
        ...

    # Sync watermark

    @abstractmethod
    async def get_last_sync(self, source: str) -> datetime | None:
        ...

    @abstractmethod
    async def set_last_sync(self, source: str, value: datetime) -> None:
        ...

    # Webhook configuration

    @abstractmethod
    async def get_webhook_config(self, campaign_id: str) -> WebhookConfig | None:
        ...

    @abstractmethod
    async def list_webhook_configs(self) -> list[WebhookConfig]:
        ...

    @abstractmethod
    async def put_webhook_config(self, config: WebhookConfig) -> WebhookConfig:
        ...

    @abstractmethod
    async def record_delivery_outcome(
        self, campaign_id: str, success: bool, triggered_at: datetime
    ) -> None:
        """Increment the success or failure counter of a config by one."""

    # Delivery log

    @abstractmethod
    async def append_delivery_log(self, entry: DeliveryLogEntry) -> DeliveryLogEntry:
        """Append an entry, evicting the oldest beyond ``log_max_entries``."""

    @abstractmethod
    async def list_delivery_log(
        self, limit: int = 100, campaign_id: str | None = None
    ) -> list[DeliveryLogEntry]:
        """Newest first."""
