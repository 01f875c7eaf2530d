"""Unit tests for webhook payload assembly."""

from app.domain.entities.webhook import PAYLOAD_SECTIONS
from app.domain.services.webhook_payload import build_payload, sample_call_record
from app.tests.conftest import FIXED_NOW

ALL_SECTIONS = {section: True for section in PAYLOAD_SECTIONS}


class TestBuildPayload:
    """Test suite for build_payload."""

    def test_base_keys_always_present(self, make_call):
        payload = build_payload(make_call("A"), {}, "CA-42", now=FIXED_NOW)

        assert payload == {
            "event": "call.processed",
            "timestamp": "2024-03-01T12:00:00Z",
            "campaignId": "CA-42",
            "callId": "ringba_A",
        }

    def test_disabled_sections_are_absent(self, make_call):
        payload = build_payload(
            make_call("A"), {"callDetails": True, "metadata": False}, "CA-42", now=FIXED_NOW
        )

        assert "callDetails" in payload
        assert "metadata" not in payload
        assert "scorecard" not in payload

    def test_analysis_sections_absent_without_analysis(self, make_call):
        payload = build_payload(make_call("A"), ALL_SECTIONS, "CA-42", now=FIXED_NOW)

        for section in ("scorecard", "callSummary", "intent", "vocalytics", "markers"):
            assert section not in payload
        assert "metadata" in payload
        assert "transcript" in payload
        assert "disposition" in payload

    def test_analysis_sections_present_with_analysis(self, make_call):
        record = make_call(
            "A",
            analysis={"overallScore": 6.5, "overallRating": "Fair", "keyInsights": ["x"]},
        )

        payload = build_payload(record, ALL_SECTIONS, "CA-42", now=FIXED_NOW)

        assert payload["scorecard"]["overallScore"] == 6.5
        assert payload["scorecard"]["rating"] == "Fair"
        assert payload["callSummary"]["keyPoints"] == ["x"]
        assert payload["disposition"]["notes"] == "x"

    def test_malformed_analysis_fields_fall_back(self, make_call):
        record = make_call(
            "A",
            analysis={
                "overallScore": 2,
                "keyInsights": {"tone": "flat"},
                "extractedFacts": ["age"],
                "keyMoments": "none",
            },
        )
        config = {"disposition": True, "callSummary": True, "callFacts": True, "markers": True}

        payload = build_payload(record, config, "CA-42", now=FIXED_NOW)

        assert payload["disposition"]["notes"] == ""
        assert payload["callSummary"]["keyPoints"] == []
        assert payload["callFacts"]["extractedFacts"] == {}
        assert payload["markers"]["keyMoments"] == []

    def test_call_details_section(self, make_call):
        record = make_call("A", agent_name="Bob", duration_seconds=95)

        payload = build_payload(record, {"callDetails": True}, "CA-42", now=FIXED_NOW)

        details = payload["callDetails"]
        assert details["duration"] == 95
        assert details["participants"] == {"agent": "Bob", "customer": "+15551230001"}
        assert details["direction"] == "inbound"

    def test_sample_record_fills_every_section(self):
        record = sample_call_record("CA-9", now=FIXED_NOW)

        payload = build_payload(record, ALL_SECTIONS, "CA-9", now=FIXED_NOW)

        assert set(PAYLOAD_SECTIONS) <= set(payload)
        assert payload["callId"] == "sample-call-123"
        assert payload["callFacts"]["customerInfo"]["name"] == "Jane Doe"
