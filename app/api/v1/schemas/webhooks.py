"""Pydantic schemas for webhook endpoints."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from app.domain.entities.webhook import WebhookConfig


class UpstreamWebhookEvent(BaseModel):
    """Call notification pushed by the upstream platform."""

    event: str = Field(..., description="Event name, e.g. call.completed")
    call: dict[str, Any] = Field(default_factory=dict)


class UpstreamWebhookResponse(BaseModel):
    """Outcome of an inbound upstream event."""

    status: str = Field(..., description="queued, stored, duplicate or ignored")
    call_id: Optional[str] = None
    external_id: Optional[str] = None
    reason: Optional[str] = None


class CampaignWebhookUpdate(BaseModel):
    """Partial update of a campaign webhook; unset fields are kept."""

    url: Optional[str] = None
    method: Optional[Literal["POST", "PUT", "PATCH"]] = None
    enabled: Optional[bool] = None
    events: Optional[list[str]] = None
    payload_config: Optional[dict[str, bool]] = None
    headers: Optional[dict[str, str]] = None
    secret: Optional[str] = None
    retry_attempts: Optional[int] = Field(None, ge=1, le=10)
    timeout_ms: Optional[int] = Field(None, ge=1000, le=120000)


class SamplePayloadRequest(BaseModel):
    """Payload sections to preview; the saved config is used when omitted."""

    payload_config: Optional[dict[str, bool]] = None


class WebhookTestResponse(BaseModel):
    """Result of a test delivery."""

    success: bool
    message: str
    status_code: Optional[int] = None
    response_time_ms: Optional[int] = None


class CampaignWebhookResponse(BaseModel):
    """Campaign webhook as returned by the API; the signing secret is never echoed."""

    campaign_id: str
    url: str
    method: str
    enabled: bool
    events: list[str]
    payload_config: dict[str, bool]
    headers: dict[str, str]
    has_secret: bool = False
    retry_attempts: int
    timeout_ms: int
    success_count: int
    failure_count: int
    last_triggered_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_config(cls, config: WebhookConfig) -> "CampaignWebhookResponse":
        return cls(
            **config.model_dump(exclude={"secret"}),
            has_secret=bool(config.secret),
        )
