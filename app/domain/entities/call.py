"""Call record entity model."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.exceptions import InvalidStatusTransition


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CallStatus(str, Enum):
    """Processing lifecycle of a call record."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class CallDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


# Allowed lifecycle moves: pending -> processing -> {completed | failed},
# failed -> pending on manual re-queue.
_TRANSITIONS: dict[CallStatus, set[CallStatus]] = {
    CallStatus.PENDING: {CallStatus.PROCESSING},
    CallStatus.PROCESSING: {CallStatus.COMPLETED, CallStatus.FAILED},
    CallStatus.COMPLETED: set(),
    CallStatus.FAILED: {CallStatus.PENDING},
}


class CallRecord(BaseModel):
    """Canonical representation of one upstream call.

    ``external_id`` is the upstream identity and the only deduplication key.
    ``id`` is the internal key, ``<source>_<external_id>``.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        validate_assignment=True,
    )

    # Identity
    id: str
    external_id: str
    source: str = "ringba"

    # Call details
    direction: CallDirection = CallDirection.INBOUND
    caller_number: str = "Unknown"
    called_number: str = "Unknown"
    duration_seconds: int = Field(0, ge=0)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    recording_url: Optional[str] = None

    # Campaign / agent
    campaign_id: Optional[str] = None
    campaign_name: Optional[str] = None
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None

    # Upstream outcome
    disposition: Optional[str] = None
    upstream_status: str = "unknown"
    revenue: float = 0.0
    cost: float = 0.0

    # Processing
    status: CallStatus = CallStatus.PENDING
    transcript: Optional[str] = None
    analysis: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    processed_at: Optional[datetime] = None

    @staticmethod
    def make_id(source: str, external_id: str) -> str:
        return f"{source}_{external_id}"

    def _transition(self, target: CallStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise InvalidStatusTransition(
                f"Cannot move call {self.id} from {self.status.value} "
                f"to {target.value}",
                details={
                    "call_id": self.id,
                    "from": self.status.value,
                    "to": target.value,
                },
            )
        self.status = target
        self.updated_at = utcnow()

    def mark_processing(self) -> None:
        self._transition(CallStatus.PROCESSING)
        self.error = None

    def mark_completed(
        self, transcript: str | None, analysis: dict[str, Any] | None
    ) -> None:
        self._transition(CallStatus.COMPLETED)
        self.transcript = transcript
        self.analysis = analysis
        self.processed_at = self.updated_at

    def mark_failed(self, error: str) -> None:
        self._transition(CallStatus.FAILED)
        self.error = error
        self.processed_at = self.updated_at

    def requeue(self) -> None:
        """Return a failed record to ``pending``.

        A pending record that was stored without being queued is accepted
        as is.
        """
        if self.status == CallStatus.PENDING:
            return
        self._transition(CallStatus.PENDING)
        self.error = None

    @property
    def overall_score(self) -> float | None:
        """Overall quality score from the analysis, if any."""
        if not self.analysis:
            return None
        score = self.analysis.get("overallScore")
        if score is None:
            score = (self.analysis.get("scorecard") or {}).get("overall")
        try:
            return float(score) if score is not None else None
        except (TypeError, ValueError):
            return None
