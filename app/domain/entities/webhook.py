"""Outbound webhook configuration and delivery audit models."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.domain.entities.call import utcnow

CALL_PROCESSED = "call.processed"
CALL_ANALYZED = "call.analyzed"
QUALITY_ALERT = "quality.alert"

PAYLOAD_SECTIONS: tuple[str, ...] = (
    "metadata",
    "callDetails",
    "disposition",
    "scorecard",
    "callSummary",
    "callFacts",
    "intent",
    "transcript",
    "markers",
    "questions",
    "vocalytics",
)

# Sections that are only emitted when the call has an analysis
ANALYSIS_SECTIONS: frozenset[str] = frozenset(
    {
        "scorecard",
        "callSummary",
        "callFacts",
        "intent",
        "markers",
        "questions",
        "vocalytics",
    }
)


class WebhookConfig(BaseModel):
    """Per-campaign outbound webhook configuration."""

    model_config = ConfigDict(validate_assignment=True)

    campaign_id: str
    url: str = ""
    method: Literal["POST", "PUT", "PATCH"] = "POST"
    enabled: bool = True
    events: list[str] = Field(default_factory=lambda: [CALL_PROCESSED])
    payload_config: dict[str, bool] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    secret: Optional[str] = None
    retry_attempts: int = Field(3, ge=1)
    timeout_ms: int = Field(30000, gt=0)

    success_count: int = Field(0, ge=0)
    failure_count: int = Field(0, ge=0)
    last_triggered_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("payload_config")
    @classmethod
    def check_sections(cls, value: dict[str, bool]) -> dict[str, bool]:
        unknown = sorted(set(value) - set(PAYLOAD_SECTIONS))
        if unknown:
            raise ValueError(f"Unknown payload sections: {', '.join(unknown)}")
        return value

    @field_validator("events")
    @classmethod
    def dedupe_events(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    def subscribed_to(self, event: str) -> bool:
        return event in self.events

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


class DeliveryResult(BaseModel):
    """Outcome of a single delivery attempt."""

    success: bool
    status_code: int = 0
    response_time_ms: int = 0
    response: Optional[str] = None
    error: Optional[str] = None


class DeliveryLogEntry(BaseModel):
    """Append-only audit record of one delivery attempt."""

    id: Optional[int] = None
    campaign_id: Optional[str] = None
    url: str
    event: str
    attempt: int = 1
    timestamp: datetime = Field(default_factory=utcnow)
    success: bool
    status_code: int = 0
    payload_size: int = 0
    response_time_ms: int = 0
    test: bool = False
    error: Optional[str] = None

    @classmethod
    def from_result(
        cls,
        config: WebhookConfig,
        event: str,
        attempt: int,
        result: DeliveryResult,
        payload_size: int,
        test: bool = False,
    ) -> "DeliveryLogEntry":
        return cls(
            campaign_id=config.campaign_id,
            url=config.url,
            event=event,
            attempt=attempt,
            success=result.success,
            status_code=result.status_code,
            payload_size=payload_size,
            response_time_ms=result.response_time_ms,
            test=test,
            error=result.error,
        )
