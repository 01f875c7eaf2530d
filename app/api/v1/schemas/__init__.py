"""API v1 Pydantic schemas."""

from app.api.v1.schemas.calls import CallListResponse, QueueStatusResponse
from app.api.v1.schemas.common import HealthResponse
from app.api.v1.schemas.sync import (
    DiagnosticsResponse,
    SyncRunResponse,
    SyncStatusResponse,
)
from app.api.v1.schemas.webhooks import (
    CampaignWebhookResponse,
    CampaignWebhookUpdate,
    SamplePayloadRequest,
    UpstreamWebhookEvent,
    UpstreamWebhookResponse,
    WebhookTestResponse,
)

__all__ = [
    # Common
    "HealthResponse",
    # Sync
    "DiagnosticsResponse",
    "SyncRunResponse",
    "SyncStatusResponse",
    # Calls
    "CallListResponse",
    "QueueStatusResponse",
    # Webhooks
    "CampaignWebhookResponse",
    "CampaignWebhookUpdate",
    "SamplePayloadRequest",
    "UpstreamWebhookEvent",
    "UpstreamWebhookResponse",
    "WebhookTestResponse",
]
