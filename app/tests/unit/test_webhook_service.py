"""Unit tests for WebhookService."""

import json

import httpx
import pytest

from app.core.exceptions import WebhookConfigError
from app.domain.entities.webhook import (
    CALL_ANALYZED,
    CALL_PROCESSED,
    QUALITY_ALERT,
    WebhookConfig,
)
from app.domain.services.webhook_service import WebhookService, sign_payload
from app.infrastructure.store.memory import InMemoryCallStore

URL = "https://hooks.test/calls"


def _responder(statuses: list[int], seen: list[httpx.Request] | None = None):
    """Handler answering with the given statuses in order, then 200."""
    remaining = list(statuses)

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        status = remaining.pop(0) if remaining else 200
        return httpx.Response(status, json={"ok": status < 400})

    return handler


class TestDeliverWithRetry:
    """Test suite for retrying delivery and its audit trail."""

    @pytest.fixture
    async def config(self, memory_store):
        return await memory_store.put_webhook_config(
            WebhookConfig(campaign_id="CA-42", url=URL, retry_attempts=3)
        )

    def _service(self, settings, store, http, sleep, clock):
        return WebhookService(settings, store, http, sleep=sleep, clock=clock)

    async def test_success_on_second_attempt(
        self, settings, memory_store, mock_http, no_sleep, clock, config
    ):
        service = self._service(
            settings, memory_store, mock_http(_responder([500])), no_sleep, clock
        )

        result = await service.deliver_with_retry(config, {"callId": "x"})

        assert result.success is True
        log = await memory_store.list_delivery_log()
        assert [(e.attempt, e.success) for e in log] == [(2, True), (1, False)]
        saved = await memory_store.get_webhook_config("CA-42")
        assert saved.success_count == 1
        assert saved.failure_count == 0
        assert saved.last_triggered_at is not None
        no_sleep.assert_awaited_once_with(2)

    async def test_exhaustion_logs_every_attempt(
        self, settings, memory_store, mock_http, no_sleep, clock, config
    ):
        service = self._service(
            settings, memory_store, mock_http(_responder([500, 502, 503])), no_sleep, clock
        )

        result = await service.deliver_with_retry(config, {"callId": "x"})

        assert result.success is False
        assert result.status_code == 503
        log = await memory_store.list_delivery_log()
        assert len(log) == 3
        assert all(not e.success for e in log)
        assert [e.status_code for e in log] == [503, 502, 500]
        saved = await memory_store.get_webhook_config("CA-42")
        assert saved.failure_count == 1
        assert saved.success_count == 0
        assert [c.args[0] for c in no_sleep.await_args_list] == [2, 4]

    async def test_backoff_doubles_between_attempts(
        self, settings, memory_store, mock_http, no_sleep, clock, config
    ):
        config.retry_attempts = 4
        service = self._service(
            settings, memory_store, mock_http(_responder([500, 500, 500, 500])), no_sleep, clock
        )

        result = await service.deliver_with_retry(config, {"callId": "x"})

        assert result.success is False
        log = await memory_store.list_delivery_log()
        assert [e.attempt for e in log] == [4, 3, 2, 1]
        assert [c.args[0] for c in no_sleep.await_args_list] == [2, 4, 8]
        saved = await memory_store.get_webhook_config("CA-42")
        assert saved.failure_count == 1

    async def test_network_error_has_status_zero(
        self, settings, memory_store, mock_http, no_sleep, clock, config
    ):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        service = self._service(settings, memory_store, mock_http(handler), no_sleep, clock)
        config.retry_attempts = 1

        result = await service.deliver_with_retry(config, {"callId": "x"})

        assert result.success is False
        assert result.status_code == 0
        log = await memory_store.list_delivery_log()
        assert log[0].status_code == 0
        assert "timed out" in log[0].error

    async def test_headers_and_signature(
        self, settings, memory_store, mock_http, no_sleep, clock
    ):
        seen: list[httpx.Request] = []
        config = WebhookConfig(
            campaign_id="CA-42",
            url=URL,
            secret="s3cret",
            headers={"X-Tenant": "acme"},
        )
        service = self._service(
            settings, memory_store, mock_http(_responder([], seen)), no_sleep, clock
        )

        await service.deliver(config, {"callId": "x"}, CALL_PROCESSED)

        request = seen[0]
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["User-Agent"] == settings.webhook_user_agent
        assert request.headers["X-Webhook-Event"] == CALL_PROCESSED
        assert request.headers["X-Webhook-Timestamp"] == "2024-03-01T12:00:00Z"
        assert request.headers["X-Tenant"] == "acme"
        assert request.headers["X-Webhook-Signature"] == sign_payload(
            request.content, "s3cret"
        )
        assert json.loads(request.content) == {"callId": "x"}

    async def test_log_is_bounded(self, settings, mock_http, no_sleep, clock):
        store = InMemoryCallStore(log_max_entries=3)
        config = await store.put_webhook_config(
            WebhookConfig(campaign_id="CA-42", url=URL, retry_attempts=1)
        )
        service = self._service(settings, store, mock_http(_responder([])), no_sleep, clock)

        for _ in range(5):
            await service.deliver_with_retry(config, {"callId": "x"})

        log = await store.list_delivery_log()
        assert len(log) == 3
        assert [e.id for e in log] == [5, 4, 3]


class TestTriggers:
    """Test suite for background triggers."""

    @pytest.fixture
    def seen(self) -> list[httpx.Request]:
        return []

    @pytest.fixture
    def service(self, settings, memory_store, mock_http, no_sleep, clock, seen):
        return WebhookService(
            settings, memory_store, mock_http(_responder([], seen)), sleep=no_sleep, clock=clock
        )

    async def test_campaign_webhook_delivered_in_background(
        self, service, memory_store, make_call, seen
    ):
        await memory_store.put_webhook_config(
            WebhookConfig(
                campaign_id="CA-42", url=URL, payload_config={"callDetails": True}
            )
        )

        scheduled = await service.trigger_campaign_webhook(make_call("A"))
        await service.wait_idle()

        assert scheduled is True
        body = json.loads(seen[0].content)
        assert body["callId"] == "ringba_A"
        assert "callDetails" in body
        assert "scorecard" not in body

    async def test_disabled_or_missing_config_is_skipped(
        self, service, memory_store, make_call, seen
    ):
        assert await service.trigger_campaign_webhook(make_call("A")) is False

        await memory_store.put_webhook_config(
            WebhookConfig(campaign_id="CA-42", url=URL, enabled=False)
        )
        assert await service.trigger_campaign_webhook(make_call("A")) is False
        assert await service.trigger_campaign_webhook(make_call("B", campaign_id=None)) is False
        assert seen == []

    async def test_quality_alert_for_low_scores(self, service, memory_store, make_call, seen):
        await memory_store.put_webhook_config(
            WebhookConfig(campaign_id="ops", url=URL, events=[QUALITY_ALERT])
        )

        low = make_call("A", analysis={"overallScore": 2.5})
        high = make_call("B", analysis={"overallScore": 8})

        assert await service.trigger_quality_alert(low) == 1
        assert await service.trigger_quality_alert(high) == 0
        await service.wait_idle()

        body = json.loads(seen[0].content)
        assert body["event"] == QUALITY_ALERT
        assert body["data"]["severity"] == "high"

    async def test_call_analyzed_fan_out(self, service, memory_store, make_call, seen):
        await memory_store.put_webhook_config(
            WebhookConfig(campaign_id="crm", url=URL, events=[CALL_ANALYZED])
        )
        await memory_store.put_webhook_config(
            WebhookConfig(campaign_id="other", url=URL, events=[CALL_PROCESSED])
        )

        count = await service.trigger_call_analyzed(
            make_call("A", analysis={"overallScore": 9}, transcript="hi")
        )
        await service.wait_idle()

        assert count == 1
        assert seen[0].headers["X-Webhook-Event"] == CALL_ANALYZED

    async def test_malformed_analysis_still_notifies(
        self, service, memory_store, make_call, seen
    ):
        await memory_store.put_webhook_config(
            WebhookConfig(
                campaign_id="CA-42", url=URL, payload_config={"disposition": True}
            )
        )
        await memory_store.put_webhook_config(
            WebhookConfig(campaign_id="ops", url=URL, events=[QUALITY_ALERT])
        )
        record = make_call(
            "A", analysis={"overallScore": 2, "keyInsights": {"tone": "flat"}}
        )

        await service.on_call_completed(record)
        await service.wait_idle()

        events = sorted(r.headers["X-Webhook-Event"] for r in seen)
        assert events == [CALL_PROCESSED, QUALITY_ALERT]
        processed = next(
            json.loads(r.content) for r in seen if r.headers["X-Webhook-Event"] == CALL_PROCESSED
        )
        assert processed["disposition"]["notes"] == ""

    async def test_failing_trigger_does_not_stop_the_others(
        self, service, memory_store, make_call, seen
    ):
        async def broken(record):
            raise KeyError(0)

        await memory_store.put_webhook_config(
            WebhookConfig(campaign_id="ops", url=URL, events=[QUALITY_ALERT])
        )
        service.trigger_campaign_webhook = broken

        await service.on_call_completed(make_call("A", analysis={"overallScore": 2}))
        await service.wait_idle()

        assert [r.headers["X-Webhook-Event"] for r in seen] == [QUALITY_ALERT]

    async def test_stopped_service_drops_deliveries(
        self, service, memory_store, make_call, seen
    ):
        await memory_store.put_webhook_config(WebhookConfig(campaign_id="CA-42", url=URL))
        await service.stop()

        assert await service.trigger_campaign_webhook(make_call("A")) is False
        assert service.pending_tasks == 0


class TestCampaignConfig:
    """Test suite for webhook configuration management and dry runs."""

    @pytest.fixture
    def seen(self) -> list[httpx.Request]:
        return []

    @pytest.fixture
    def service(self, settings, memory_store, mock_http, no_sleep, clock, seen):
        return WebhookService(
            settings, memory_store, mock_http(_responder([], seen)), sleep=no_sleep, clock=clock
        )

    async def test_save_creates_with_defaults(self, service, settings):
        saved = await service.save_campaign_webhook("CA-1", {"url": URL})

        assert saved.campaign_id == "CA-1"
        assert saved.retry_attempts == settings.webhook_default_retry_attempts
        assert saved.timeout_ms == settings.webhook_default_timeout_ms

    async def test_save_keeps_counters(self, service, memory_store):
        await memory_store.put_webhook_config(
            WebhookConfig(campaign_id="CA-1", url=URL, success_count=4)
        )

        saved = await service.save_campaign_webhook(
            "CA-1", {"enabled": False, "success_count": 0}
        )

        assert saved.enabled is False
        assert saved.success_count == 4
        assert saved.url == URL

    async def test_unknown_section_rejected(self, service):
        with pytest.raises(WebhookConfigError):
            await service.save_campaign_webhook(
                "CA-1", {"url": URL, "payload_config": {"bogus": True}}
            )

    async def test_test_delivery_is_logged_without_counters(
        self, service, memory_store, settings, seen
    ):
        await memory_store.put_webhook_config(WebhookConfig(campaign_id="CA-1", url=URL))

        result = await service.test_campaign_webhook("CA-1")

        assert result["success"] is True
        assert result["message"] == "Test webhook delivered successfully"
        assert seen[0].headers["X-Webhook-Test"] == "true"
        assert seen[0].headers["X-Webhook-Campaign-ID"] == "CA-1"
        assert seen[0].headers["User-Agent"] == settings.webhook_test_user_agent
        log = await memory_store.list_delivery_log()
        assert len(log) == 1
        assert log[0].test is True
        saved = await memory_store.get_webhook_config("CA-1")
        assert saved.success_count == 0
        assert saved.failure_count == 0

    async def test_test_delivery_without_url(self, service, seen):
        result = await service.test_campaign_webhook("CA-404")

        assert result == {"success": False, "message": "No webhook URL configured"}
        assert seen == []

    async def test_sample_payload_uses_saved_sections(self, service, memory_store):
        await memory_store.put_webhook_config(
            WebhookConfig(
                campaign_id="CA-1", url=URL, payload_config={"scorecard": True}
            )
        )

        payload = await service.generate_sample_payload("CA-1")

        assert payload["campaignId"] == "CA-1"
        assert payload["scorecard"]["overallScore"] == 8.5
        assert "transcript" not in payload
