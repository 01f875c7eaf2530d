"""Webhook payload assembly.

A payload always carries ``event``, ``timestamp``, ``campaignId`` and
``callId``. Every other section is added only when its flag in the
campaign's ``payload_config`` is true; analysis-derived sections also
require the call to have an analysis. Sections that are not emitted are
absent keys, never ``null`` or empty objects.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from app.domain.entities.call import CallRecord, CallStatus, utcnow
from app.domain.entities.webhook import ANALYSIS_SECTIONS, CALL_PROCESSED


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _metadata(record: CallRecord, analysis: dict[str, Any], now: datetime) -> dict[str, Any]:
    return {
        "sessionId": record.id,
        "externalId": record.external_id,
        "source": record.source,
        "version": "1.0",
        "processingTime": _iso(record.processed_at or now),
    }


def _call_details(record: CallRecord, analysis: dict[str, Any], now: datetime) -> dict[str, Any]:
    return {
        "duration": record.duration_seconds,
        "startTime": _iso(record.start_time),
        "endTime": _iso(record.end_time),
        "direction": record.direction.value,
        "participants": {
            "agent": record.agent_name or "Unknown Agent",
            "customer": record.caller_number,
        },
        "phoneNumber": record.caller_number,
        "calledNumber": record.called_number,
        "campaignName": record.campaign_name,
        "status": record.status.value,
    }


def _disposition(record: CallRecord, analysis: dict[str, Any], now: datetime) -> dict[str, Any]:
    insights = _as_list(analysis.get("keyInsights"))
    return {
        "outcome": record.disposition or "unknown",
        "classification": analysis.get("businessConversion") or "not_classified",
        "notes": insights[0] if insights else "",
    }


def _scorecard(record: CallRecord, analysis: dict[str, Any], now: datetime) -> dict[str, Any]:
    return {
        "overallScore": analysis.get("overallScore") or 0,
        "rating": analysis.get("overallRating") or "Unknown",
        "breakdown": {
            "toneQuality": analysis.get("toneQuality") or 0,
            "businessConversion": analysis.get("businessConversion") or "unknown",
            "agentPerformance": analysis.get("agentPerformance") or 0,
        },
    }


def _call_summary(record: CallRecord, analysis: dict[str, Any], now: datetime) -> dict[str, Any]:
    return {
        "summary": analysis.get("summary") or "",
        "keyPoints": _as_list(analysis.get("keyInsights")),
        "outcome": analysis.get("businessConversion") or "unknown",
    }


def _call_facts(record: CallRecord, analysis: dict[str, Any], now: datetime) -> dict[str, Any]:
    return {
        "extractedFacts": _as_dict(analysis.get("extractedFacts")),
        "customerInfo": {
            "name": analysis.get("customerName") or "Unknown",
            "phoneNumber": record.caller_number,
            "demographics": _as_dict(analysis.get("demographics")),
        },
    }


def _intent(record: CallRecord, analysis: dict[str, Any], now: datetime) -> dict[str, Any]:
    return {
        "primary": analysis.get("intent") or "unknown",
        "confidence": analysis.get("intentConfidence") or 0,
        "classification": analysis.get("businessConversion") or "not_classified",
    }


def _transcript(record: CallRecord, analysis: dict[str, Any], now: datetime) -> dict[str, Any]:
    return {
        "fullText": record.transcript or "",
        "segments": _as_list(analysis.get("transcriptSegments")),
        "language": analysis.get("language") or "en-US",
        "confidence": analysis.get("transcriptConfidence") or 0.95,
    }


def _markers(record: CallRecord, analysis: dict[str, Any], now: datetime) -> dict[str, Any]:
    return {
        "keyMoments": _as_list(analysis.get("keyMoments")),
        "highlights": _as_list(analysis.get("highlights")),
        "concerns": _as_list(analysis.get("concerns")),
    }


def _questions(record: CallRecord, analysis: dict[str, Any], now: datetime) -> dict[str, Any]:
    return {
        "agentQuestions": _as_list(analysis.get("agentQuestions")),
        "customerQuestions": _as_list(analysis.get("customerQuestions")),
        "unansweredQuestions": _as_list(analysis.get("unansweredQuestions")),
    }


def _vocalytics(record: CallRecord, analysis: dict[str, Any], now: datetime) -> dict[str, Any]:
    return {
        "sentiment": analysis.get("sentiment") or "neutral",
        "toneAnalysis": analysis.get("toneQuality") or 0,
        "speechMetrics": {
            "speakingRate": analysis.get("speakingRate") or 0,
            "silenceGaps": analysis.get("silenceGaps") or 0,
            "interruptions": analysis.get("interruptions") or 0,
        },
    }


SectionBuilder = Callable[[CallRecord, dict[str, Any], datetime], dict[str, Any]]

SECTION_BUILDERS: dict[str, SectionBuilder] = {
    "metadata": _metadata,
    "callDetails": _call_details,
    "disposition": _disposition,
    "scorecard": _scorecard,
    "callSummary": _call_summary,
    "callFacts": _call_facts,
    "intent": _intent,
    "transcript": _transcript,
    "markers": _markers,
    "questions": _questions,
    "vocalytics": _vocalytics,
}


def build_payload(
    record: CallRecord,
    payload_config: dict[str, bool],
    campaign_id: str | None,
    event: str = CALL_PROCESSED,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Assemble the webhook body for one call."""
    now = now or utcnow()
    analysis = record.analysis or {}

    payload: dict[str, Any] = {
        "event": event,
        "timestamp": _iso(now),
        "campaignId": campaign_id,
        "callId": record.id,
    }

    for section, builder in SECTION_BUILDERS.items():
        if not payload_config.get(section):
            continue
        if section in ANALYSIS_SECTIONS and not record.analysis:
            continue
        payload[section] = builder(record, analysis, now)

    return payload


def sample_call_record(campaign_id: str | None = None, now: datetime | None = None) -> CallRecord:
    """Synthetic completed call used for dry-run deliveries."""
    now = now or utcnow()
    return CallRecord(
        id="sample-call-123",
        external_id="sample-call-123",
        source="sample",
        caller_number="+1-555-0123",
        called_number="+1-555-0100",
        duration_seconds=432,
        start_time=now - timedelta(seconds=432),
        end_time=now,
        campaign_id=campaign_id,
        campaign_name="Sample Campaign",
        agent_name="John Smith",
        disposition="interested",
        upstream_status="completed",
        status=CallStatus.COMPLETED,
        transcript=(
            "Agent: Hello, this is John from ABC Insurance. How are you today?\n"
            "Customer: I'm doing well, thank you. I received your call about "
            "Medicare plans.\n"
            "Agent: Great! I'd love to help you understand your options..."
        ),
        analysis={
            "overallScore": 8.5,
            "overallRating": "Excellent",
            "toneQuality": 9.0,
            "businessConversion": "interested",
            "agentPerformance": 8.8,
            "summary": (
                "Customer showed strong interest in Medicare Advantage plans. "
                "Agent provided clear information and scheduled follow-up."
            ),
            "keyInsights": [
                "Customer is turning 65 next month",
                "Currently has employer insurance ending soon",
                "Interested in prescription drug coverage",
            ],
            "intent": "purchase_intent",
            "sentiment": "positive",
            "customerName": "Jane Doe",
            "extractedFacts": {
                "age": "64",
                "zipCode": "90210",
                "currentInsurance": "employer_plan",
            },
        },
        processed_at=now,
    )
