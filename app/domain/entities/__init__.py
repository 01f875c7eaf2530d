"""Domain entities for the call pipeline."""

from app.domain.entities.call import CallDirection, CallRecord, CallStatus
from app.domain.entities.webhook import (
    DeliveryLogEntry,
    DeliveryResult,
    WebhookConfig,
)

__all__ = [
    "CallDirection",
    "CallRecord",
    "CallStatus",
    "DeliveryLogEntry",
    "DeliveryResult",
    "WebhookConfig",
]
