"""Field mapper service for normalizing upstream call records."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from dateutil import parser as date_parser

from app.domain.entities.call import CallDirection, CallRecord

# Canonical field -> upstream keys, in priority order.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id", "call_id", "callId", "inboundCallId", "uuid", "callUuid"),
    "campaign_id": ("campaign_id", "campaignId", "campaign"),
    "campaign_name": ("campaign_name", "campaignName", "campaignTitle"),
    "caller_number": (
        "caller_id",
        "callerId",
        "from",
        "ani",
        "callerNumber",
        "caller_number",
        "inboundPhoneNumber",
    ),
    "called_number": (
        "called_number",
        "calledNumber",
        "to",
        "dnis",
        "target",
        "targetNumber",
    ),
    "start_time": (
        "start_time",
        "startTime",
        "timestamp",
        "call_start",
        "callStart",
        "dateTime",
        "callDt",
    ),
    "end_time": ("end_time", "endTime", "call_end", "callEnd", "callCompletedDt"),
    "duration": (
        "duration",
        "call_duration",
        "talk_time",
        "talkTime",
        "callDuration",
        "length",
        "callLengthInSeconds",
    ),
    "status": ("status", "call_status", "callStatus", "state"),
    "disposition": (
        "disposition",
        "call_disposition",
        "outcome",
        "result",
        "callDisposition",
    ),
    "direction": ("direction", "call_direction", "callDirection", "callType"),
    "recording_url": (
        "recording_url",
        "recordingUrl",
        "recording",
        "audio_url",
        "audioUrl",
        "recordingLink",
    ),
    "agent_id": ("agent_id", "agentId", "targetId", "rep_id"),
    "agent_name": (
        "agent_name",
        "agentName",
        "agent",
        "rep_name",
        "repName",
        "representative",
        "targetName",
    ),
    "revenue": (
        "revenue",
        "payout",
        "commission",
        "value",
        "callRevenue",
        "conversionAmount",
    ),
    "cost": ("cost", "media_cost", "mediaCost", "callCost", "price", "totalCost"),
}

OUTBOUND_VALUES = frozenset({"out", "outbound", "outgoing"})

# Epoch values above this are milliseconds
EPOCH_MS_THRESHOLD = 10**11

# Numeric strings with fewer integer digits are compact dates (YYYYMMDD)
MIN_EPOCH_DIGITS = 9


class FieldMapper:
    """Service for mapping heterogeneous upstream records to ``CallRecord``."""

    @staticmethod
    def find_value(raw: dict[str, Any], field: str, default: Any = None) -> Any:
        """Return the first present, non-null alias value for ``field``."""
        for key in FIELD_ALIASES.get(field, ()):
            value = raw.get(key)
            if value is not None:
                return value
        return default

    @staticmethod
    def to_decimal(value: Any) -> Decimal | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            return Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None

    @classmethod
    def to_duration(cls, value: Any) -> int:
        number = cls.to_decimal(value)
        if number is None or not number.is_finite() or number < 0:
            return 0
        return int(number)

    @classmethod
    def to_money(cls, value: Any) -> float:
        number = cls.to_decimal(value)
        if number is None or not number.is_finite():
            return 0.0
        return float(number)

    @classmethod
    def to_datetime(cls, value: Any) -> datetime | None:
        """Parse ISO strings, compact ``YYYYMMDD`` dates or epoch seconds/milliseconds.

        Returns ``None`` if unparseable.
        """
        if value is None or isinstance(value, bool):
            return None

        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, (int, float, Decimal)):
            parsed = cls._from_epoch(value)
        else:
            text = str(value).strip()
            if not text:
                return None
            number = cls.to_decimal(text)
            digits = text.lstrip("+-").split(".")[0]
            if number is not None and number.is_finite() and len(digits) >= MIN_EPOCH_DIGITS:
                parsed = cls._from_epoch(number)
            elif number is not None:
                try:
                    parsed = date_parser.isoparse(text)
                except (ValueError, OverflowError):
                    return None
            else:
                try:
                    parsed = date_parser.isoparse(text)
                except (ValueError, OverflowError):
                    try:
                        parsed = date_parser.parse(text)
                    except (ValueError, OverflowError):
                        return None

        if parsed is None:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    @staticmethod
    def _from_epoch(value: Any) -> datetime | None:
        seconds = float(value)
        if abs(seconds) > EPOCH_MS_THRESHOLD:
            seconds /= 1000
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    @staticmethod
    def to_direction(value: Any) -> CallDirection:
        if value is not None and str(value).strip().lower() in OUTBOUND_VALUES:
            return CallDirection.OUTBOUND
        return CallDirection.INBOUND

    @staticmethod
    def to_optional_str(value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @classmethod
    def normalize_call(cls, raw: dict[str, Any], source: str = "ringba") -> CallRecord:
        """Transform one upstream record into a canonical ``CallRecord``.

        Never raises on malformed values; each field falls back to its default.
        The full original record is kept under ``metadata``.

        Args:
            raw: Upstream call record of any known shape
            source: Upstream label used to build the internal id

        Returns:
            CallRecord in ``pending`` state
        """
        external_id = cls.to_optional_str(cls.find_value(raw, "id"))
        if external_id is None:
            external_id = f"call_{uuid.uuid4().hex[:12]}"

        caller = cls.to_optional_str(cls.find_value(raw, "caller_number"))
        called = cls.to_optional_str(cls.find_value(raw, "called_number"))
        status = cls.to_optional_str(cls.find_value(raw, "status"))

        return CallRecord(
            id=CallRecord.make_id(source, external_id),
            external_id=external_id,
            source=source,
            direction=cls.to_direction(cls.find_value(raw, "direction")),
            caller_number=caller or "Unknown",
            called_number=called or "Unknown",
            duration_seconds=cls.to_duration(cls.find_value(raw, "duration")),
            start_time=cls.to_datetime(cls.find_value(raw, "start_time")),
            end_time=cls.to_datetime(cls.find_value(raw, "end_time")),
            recording_url=cls.to_optional_str(cls.find_value(raw, "recording_url")),
            campaign_id=cls.to_optional_str(cls.find_value(raw, "campaign_id")),
            campaign_name=cls.to_optional_str(cls.find_value(raw, "campaign_name")),
            agent_id=cls.to_optional_str(cls.find_value(raw, "agent_id")),
            agent_name=cls.to_optional_str(cls.find_value(raw, "agent_name")),
            disposition=cls.to_optional_str(cls.find_value(raw, "disposition")),
            upstream_status=status or "unknown",
            revenue=cls.to_money(cls.find_value(raw, "revenue")),
            cost=cls.to_money(cls.find_value(raw, "cost")),
            metadata=dict(raw),
        )
