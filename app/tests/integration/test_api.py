"""Integration tests for API endpoints."""

from unittest.mock import patch

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.domain.entities.webhook import WebhookConfig
from app.domain.services.pipeline import CallPipeline

UPSTREAM_CALLS = [
    {"inboundCallId": "RGB-1", "callLengthInSeconds": 60, "campaignId": "CA-42"},
    {"inboundCallId": "RGB-2", "callLengthInSeconds": 20, "campaignId": "CA-42"},
]


def _upstream_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if request.url.host == "upstream.test":
        if path.endswith("/RA123/calls") and request.method == "POST":
            return httpx.Response(200, json={"calls": UPSTREAM_CALLS})
        if path == "/v2/account/RA123":
            return httpx.Response(200, json={"id": "RA123"})
        return httpx.Response(404, text="not found")
    if request.url.host == "recordings.test":
        return httpx.Response(200, content=b"RIFF....WAVE")
    return httpx.Response(200, json={"received": True})


@pytest.fixture
def pipeline(settings, memory_store, fake_transcriber, no_sleep, clock) -> CallPipeline:
    http = httpx.AsyncClient(transport=httpx.MockTransport(_upstream_handler))
    return CallPipeline(
        settings,
        memory_store,
        http,
        fake_transcriber,
        sleep=no_sleep,
        clock=clock,
        owns_http_client=True,
    )


@pytest.fixture
def app(pipeline) -> FastAPI:
    """Create test application around the test pipeline."""
    with patch("app.main.build_pipeline", return_value=pipeline):
        from app.main import create_app

        yield create_app()


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create synchronous test client with the lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


class TestHealthEndpoint:
    """Test suite for health check endpoint."""

    def test_health_returns_status(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["queue"]["running"] is True
        assert data["scheduler"]["running"] is False


class TestSyncEndpoints:
    """Test suite for sync endpoints."""

    def test_manual_sync(self, client):
        response = client.post("/api/v1/sync/run", params={"days": 3})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["sync_type"] == "manual"
        assert data["fetched"] == 2
        assert data["filtered"] == 1
        assert data["queued"] == 1
        assert data["endpoint"] == "https://upstream.test/v2/RA123/calls"

    def test_manual_sync_rejects_bad_days(self, client):
        response = client.post("/api/v1/sync/run", params={"days": 0})

        assert response.status_code == 422

    def test_incremental_sync_then_status(self, client):
        client.post("/api/v1/sync/incremental")

        response = client.get("/api/v1/sync/status")

        assert response.status_code == 200
        data = response.json()
        assert data["syncing"] is False
        assert data["total_calls"] == 1
        assert data["last_sync_at"] is not None
        assert data["last_result"]["sync_type"] == "incremental"

    def test_diagnostics(self, client):
        client.post("/api/v1/sync/run")

        response = client.get("/api/v1/sync/diagnostics")

        assert response.status_code == 200
        data = response.json()
        assert data["configured"] is True
        assert data["connection"]["success"] is True
        assert data["endpoint"] == "https://upstream.test/v2/RA123/calls"
        assert len(data["attempts"]) == 3


class TestCallEndpoints:
    """Test suite for call endpoints."""

    def test_list_calls(self, client):
        client.post("/api/v1/sync/run")

        response = client.get("/api/v1/calls", params={"campaign_id": "CA-42"})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["calls"][0]["external_id"] == "RGB-1"

    async def test_list_total_follows_campaign_filter(self, client, memory_store, make_call):
        await memory_store.put_call(make_call("A"))
        await memory_store.put_call(make_call("B"))
        await memory_store.put_call(make_call("C", campaign_id="CA-7"))

        data = client.get("/api/v1/calls", params={"campaign_id": "CA-7"}).json()

        assert data["total"] == 1
        assert [c["external_id"] for c in data["calls"]] == ["C"]

    def test_get_unknown_call(self, client):
        response = client.get("/api/v1/calls/ringba_missing")

        assert response.status_code == 404

    def test_queue_status(self, client):
        response = client.get("/api/v1/calls/queue")

        assert response.status_code == 200
        assert response.json()["running"] is True

    async def test_requeue_failed_call(self, client, memory_store, make_call):
        record = make_call("F-1")
        record.mark_processing()
        record.mark_failed("download failed")
        await memory_store.put_call(record)

        response = client.post("/api/v1/calls/ringba_F-1/requeue")

        assert response.status_code == 200
        assert response.json()["status"] == "pending"

    async def test_requeue_completed_call_conflicts(self, client, memory_store, make_call):
        record = make_call("C-1")
        record.mark_processing()
        record.mark_completed("hi", None)
        await memory_store.put_call(record)

        response = client.post("/api/v1/calls/ringba_C-1/requeue")

        assert response.status_code == 409

    def test_requeue_unknown_call(self, client):
        response = client.post("/api/v1/calls/ringba_missing/requeue")

        assert response.status_code == 404


class TestWebhookEndpoints:
    """Test suite for webhook endpoints."""

    def test_upstream_call_completed(self, client):
        event = {"event": "call.completed", "call": {"id": "PUSH-1", "duration": 90}}

        first = client.post("/api/v1/webhooks/upstream", json=event)
        second = client.post("/api/v1/webhooks/upstream", json=event)

        assert first.status_code == 200
        assert first.json()["status"] == "queued"
        assert first.json()["call_id"] == "ringba_PUSH-1"
        assert second.json()["status"] == "duplicate"

    def test_upstream_unsupported_event_ignored(self, client):
        response = client.post(
            "/api/v1/webhooks/upstream", json={"event": "call.started", "call": {"id": "1"}}
        )

        assert response.status_code == 200
        assert response.json() == {
            "status": "ignored",
            "call_id": None,
            "external_id": None,
            "reason": "unsupported_event",
        }

    def test_save_and_read_campaign_webhook(self, client):
        response = client.put(
            "/api/v1/webhooks/campaigns/CA-42",
            json={"url": "https://hooks.test/in", "payload_config": {"scorecard": True}},
        )

        assert response.status_code == 200
        saved = client.get("/api/v1/webhooks/campaigns/CA-42").json()
        assert saved["url"] == "https://hooks.test/in"
        assert saved["payload_config"] == {"scorecard": True}
        assert saved["events"] == ["call.processed"]

    def test_signing_secret_is_not_returned(self, client):
        saved = client.put(
            "/api/v1/webhooks/campaigns/CA-42",
            json={"url": "https://hooks.test/in", "secret": "s3cret"},
        ).json()
        single = client.get("/api/v1/webhooks/campaigns/CA-42").json()
        listed = client.get("/api/v1/webhooks/campaigns").json()

        for body in (saved, single, listed[0]):
            assert "secret" not in body
            assert body["has_secret"] is True
        assert "s3cret" not in client.get("/api/v1/webhooks/campaigns").text

    def test_invalid_payload_section(self, client):
        response = client.put(
            "/api/v1/webhooks/campaigns/CA-42",
            json={"url": "https://hooks.test/in", "payload_config": {"bogus": True}},
        )

        assert response.status_code == 400

    def test_unknown_campaign_webhook(self, client):
        response = client.get("/api/v1/webhooks/campaigns/CA-404")

        assert response.status_code == 404

    def test_sample_payload(self, client):
        response = client.post(
            "/api/v1/webhooks/campaigns/CA-42/sample",
            json={"payload_config": {"callDetails": True}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["campaignId"] == "CA-42"
        assert data["callId"] == "sample-call-123"
        assert "callDetails" in data
        assert "scorecard" not in data

    async def test_test_delivery_and_logs(self, client, memory_store):
        await memory_store.put_webhook_config(
            WebhookConfig(campaign_id="CA-42", url="https://hooks.test/in")
        )

        response = client.post("/api/v1/webhooks/campaigns/CA-42/test")

        assert response.status_code == 200
        assert response.json()["success"] is True
        logs = client.get("/api/v1/webhooks/logs", params={"campaign_id": "CA-42"}).json()
        assert len(logs) == 1
        assert logs[0]["test"] is True

    def test_test_delivery_without_config(self, client):
        response = client.post("/api/v1/webhooks/campaigns/CA-404/test")

        assert response.status_code == 200
        assert response.json() == {
            "success": False,
            "message": "No webhook URL configured",
            "status_code": None,
            "response_time_ms": None,
        }
