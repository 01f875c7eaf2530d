"""Outbound webhook delivery with retry, backoff and a bounded delivery log."""

import asyncio
import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Coroutine

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from app.config import Settings
from app.core.exceptions import WebhookConfigError
from app.core.logging import get_logger
from app.domain.entities.call import CallRecord, utcnow
from app.domain.entities.webhook import (
    CALL_ANALYZED,
    CALL_PROCESSED,
    QUALITY_ALERT,
    DeliveryLogEntry,
    DeliveryResult,
    WebhookConfig,
)
from app.domain.services.webhook_payload import build_payload, sample_call_record
from app.infrastructure.store.base import CallStore

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

QUALITY_ALERT_THRESHOLD = 5.0
HIGH_SEVERITY_THRESHOLD = 3.0


def encode_payload(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, default=str, separators=(",", ":")).encode("utf-8")


def sign_payload(body: bytes, secret: str) -> str:
    """HMAC-SHA256 signature in ``sha256=<hex>`` form."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class WebhookService:
    """Delivers call results to per-campaign webhook endpoints.

    Campaign deliveries and global event fan-out run as background tasks so
    the caller is never blocked or raised at. Every attempt lands in the
    delivery log.
    """

    def __init__(
        self,
        settings: Settings,
        store: CallStore,
        http_client: httpx.AsyncClient,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._settings = settings
        self._store = store
        self._http = http_client
        self._sleep = sleep
        self._clock = clock
        self._tasks: set[asyncio.Task] = set()
        self._stopped = False

    # Configuration

    async def get_campaign_webhook(self, campaign_id: str) -> WebhookConfig | None:
        return await self._store.get_webhook_config(campaign_id)

    async def list_campaign_webhooks(self) -> list[WebhookConfig]:
        return await self._store.list_webhook_configs()

    async def save_campaign_webhook(
        self, campaign_id: str, changes: dict[str, Any]
    ) -> WebhookConfig:
        """Create or update a campaign's webhook configuration.

        Counters and creation time are kept from the existing config.

        Raises:
            WebhookConfigError: invalid values or unknown payload sections
        """
        existing = await self._store.get_webhook_config(campaign_id)
        if existing is not None:
            data = existing.model_dump()
        else:
            data = {
                "campaign_id": campaign_id,
                "retry_attempts": self._settings.webhook_default_retry_attempts,
                "timeout_ms": self._settings.webhook_default_timeout_ms,
            }

        protected = {"campaign_id", "success_count", "failure_count", "created_at", "last_triggered_at"}
        data.update({k: v for k, v in changes.items() if k not in protected})

        try:
            config = WebhookConfig.model_validate(data)
        except ValidationError as e:
            raise WebhookConfigError(
                "Invalid webhook configuration",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

        saved = await self._store.put_webhook_config(config)
        logger.info(
            "Webhook configuration saved",
            campaign_id=campaign_id,
            enabled=saved.enabled,
            events=saved.events,
        )
        return saved

    async def list_delivery_logs(
        self, limit: int = 100, campaign_id: str | None = None
    ) -> list[DeliveryLogEntry]:
        return await self._store.list_delivery_log(limit=limit, campaign_id=campaign_id)

    # Delivery

    def _headers(
        self,
        config: WebhookConfig,
        event: str,
        body: bytes,
        test: bool,
    ) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._settings.webhook_user_agent,
            "X-Webhook-Event": event,
            "X-Webhook-Timestamp": _iso(self._clock()),
            **config.headers,
        }
        if test:
            headers["User-Agent"] = self._settings.webhook_test_user_agent
            headers["X-Webhook-Test"] = "true"
            headers["X-Webhook-Campaign-ID"] = config.campaign_id
        if config.secret:
            headers["X-Webhook-Signature"] = sign_payload(body, config.secret)
        return headers

    async def deliver(
        self,
        config: WebhookConfig,
        payload: dict[str, Any],
        event: str = CALL_PROCESSED,
        test: bool = False,
    ) -> DeliveryResult:
        """Send one request. Never raises; transport errors give status code 0."""
        body = encode_payload(payload)
        headers = self._headers(config, event, body, test)
        started = time.monotonic()

        try:
            response = await self._http.request(
                config.method,
                config.url,
                content=body,
                headers=headers,
                timeout=config.timeout_seconds,
            )
        except httpx.HTTPError as e:
            return DeliveryResult(
                success=False,
                status_code=0,
                response_time_ms=int((time.monotonic() - started) * 1000),
                error=str(e) or type(e).__name__,
            )

        elapsed = int((time.monotonic() - started) * 1000)
        if response.is_success:
            return DeliveryResult(
                success=True,
                status_code=response.status_code,
                response_time_ms=elapsed,
                response=response.text[:1000],
            )
        return DeliveryResult(
            success=False,
            status_code=response.status_code,
            response_time_ms=elapsed,
            response=response.text[:1000],
            error=f"HTTP {response.status_code}: {response.reason_phrase}",
        )

    async def _log_attempt(
        self,
        config: WebhookConfig,
        event: str,
        attempt: int,
        result: DeliveryResult,
        payload_size: int,
        test: bool = False,
    ) -> None:
        entry = DeliveryLogEntry.from_result(
            config, event, attempt, result, payload_size, test=test
        )
        entry.timestamp = self._clock()
        try:
            await self._store.append_delivery_log(entry)
        except Exception as e:
            logger.error(
                "Failed to write delivery log",
                campaign_id=config.campaign_id,
                error=str(e),
            )

    async def _record_outcome(self, config: WebhookConfig, success: bool) -> None:
        try:
            await self._store.record_delivery_outcome(
                config.campaign_id, success, self._clock()
            )
        except Exception as e:
            logger.error(
                "Failed to update webhook counters",
                campaign_id=config.campaign_id,
                error=str(e),
            )

    async def deliver_with_retry(
        self,
        config: WebhookConfig,
        payload: dict[str, Any],
        event: str = CALL_PROCESSED,
    ) -> DeliveryResult:
        """Deliver with up to ``retry_attempts`` attempts.

        Waits ``2 ** attempt`` seconds between attempts. Each attempt is
        logged; the config's success or failure counter moves by exactly one.
        """
        payload_size = len(encode_payload(payload))
        attempts = max(1, config.retry_attempts)
        result = DeliveryResult(success=False, error="No delivery attempted")

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=2),
            retry=retry_if_result(lambda r: not r.success),
            sleep=self._sleep,
            retry_error_callback=lambda state: state.outcome.result(),
        ):
            number = attempt.retry_state.attempt_number
            with attempt:
                try:
                    result = await self.deliver(config, payload, event)
                except Exception as e:
                    result = DeliveryResult(success=False, error=str(e) or type(e).__name__)
            if not attempt.retry_state.outcome.failed:
                attempt.retry_state.set_result(result)

            await self._log_attempt(config, event, number, result, payload_size)

            if result.success:
                logger.info(
                    "Webhook delivered",
                    campaign_id=config.campaign_id,
                    event=event,
                    attempt=number,
                    status_code=result.status_code,
                )
            else:
                logger.warning(
                    "Webhook delivery failed",
                    campaign_id=config.campaign_id,
                    event=event,
                    attempt=number,
                    max_attempts=attempts,
                    status_code=result.status_code,
                    error=result.error,
                )

        if result.success:
            await self._record_outcome(config, True)
            return result

        logger.error(
            "Webhook delivery abandoned",
            campaign_id=config.campaign_id,
            event=event,
            attempts=attempts,
        )
        await self._record_outcome(config, False)
        return result

    # Background scheduling

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task | None:
        if self._stopped:
            coro.close()
            logger.warning("Webhook service stopped, delivery dropped", task=name)
            return None
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Webhook task failed", task=task.get_name(), error=str(task.exception()))

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every scheduled delivery has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self) -> None:
        """Cancel in-flight deliveries and refuse new ones."""
        self._stopped = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def start(self) -> None:
        self._stopped = False

    # Triggers

    async def trigger_campaign_webhook(self, record: CallRecord) -> bool:
        """Schedule delivery of a processed call to its campaign webhook.

        Returns:
            True when a delivery was scheduled
        """
        if not record.campaign_id:
            return False

        try:
            config = await self._store.get_webhook_config(record.campaign_id)
        except Exception as e:
            logger.error(
                "Failed to load campaign webhook",
                campaign_id=record.campaign_id,
                error=str(e),
            )
            return False

        if config is None or not config.enabled or not config.url:
            logger.debug("No active webhook for campaign", campaign_id=record.campaign_id)
            return False
        if not config.subscribed_to(CALL_PROCESSED):
            return False

        payload = build_payload(
            record, config.payload_config, record.campaign_id, now=self._clock()
        )
        task = self._spawn(
            self.deliver_with_retry(config, payload, CALL_PROCESSED),
            name=f"webhook:{config.campaign_id}:{record.id}",
        )
        return task is not None

    async def trigger_event(self, event: str, payload: dict[str, Any]) -> int:
        """Fan an event out to every enabled config subscribed to it.

        Returns:
            Number of deliveries scheduled
        """
        try:
            configs = await self._store.list_webhook_configs()
        except Exception as e:
            logger.error("Failed to load webhook configs", event=event, error=str(e))
            return 0

        active = [c for c in configs if c.enabled and c.url and c.subscribed_to(event)]
        if not active:
            logger.debug("No active webhooks for event", event=event)
            return 0

        logger.info("Triggering webhooks", event=event, count=len(active))
        scheduled = 0
        for config in active:
            task = self._spawn(
                self.deliver_with_retry(config, payload, event),
                name=f"webhook:{config.campaign_id}:{event}",
            )
            if task is not None:
                scheduled += 1
        return scheduled

    async def trigger_call_analyzed(self, record: CallRecord) -> int:
        if not record.analysis:
            return 0
        analysis = record.analysis
        payload = {
            "event": CALL_ANALYZED,
            "timestamp": _iso(self._clock()),
            "data": {
                "callId": record.id,
                "externalId": record.external_id,
                "campaignId": record.campaign_id,
                "duration": record.duration_seconds,
                "agentName": record.agent_name,
                "callerNumber": record.caller_number,
                "analysis": {
                    "overallScore": analysis.get("overallScore"),
                    "rating": analysis.get("overallRating"),
                    "toneQuality": analysis.get("toneQuality"),
                    "businessConversion": analysis.get("businessConversion"),
                    "agentPerformance": analysis.get("agentPerformance"),
                    "keyInsights": analysis.get("keyInsights"),
                    "improvementSuggestions": analysis.get("improvementSuggestions"),
                },
                "transcript": record.transcript,
            },
        }
        return await self.trigger_event(CALL_ANALYZED, payload)

    async def trigger_quality_alert(self, record: CallRecord) -> int:
        score = record.overall_score
        if score is None or score >= QUALITY_ALERT_THRESHOLD:
            return 0
        analysis = record.analysis or {}
        payload = {
            "event": QUALITY_ALERT,
            "timestamp": _iso(self._clock()),
            "data": {
                "callId": record.id,
                "campaignId": record.campaign_id,
                "alertType": "low_quality_score",
                "severity": "high" if score < HIGH_SEVERITY_THRESHOLD else "medium",
                "score": score,
                "rating": analysis.get("overallRating"),
                "agentName": record.agent_name,
                "issues": analysis.get("improvementSuggestions"),
            },
        }
        return await self.trigger_event(QUALITY_ALERT, payload)

    async def on_call_completed(self, record: CallRecord) -> None:
        """Notify every downstream subscriber about a processed call.

        Each trigger runs on its own; one failing does not stop the others.
        """
        for trigger in (
            self.trigger_campaign_webhook,
            self.trigger_call_analyzed,
            self.trigger_quality_alert,
        ):
            try:
                await trigger(record)
            except Exception as e:
                logger.error(
                    "Webhook trigger failed",
                    trigger=trigger.__name__,
                    call_id=record.id,
                    error=str(e),
                )

    # Dry run

    async def generate_sample_payload(
        self, campaign_id: str, payload_config: dict[str, bool] | None = None
    ) -> dict[str, Any]:
        """Payload a campaign would receive, built from a synthetic call."""
        if payload_config is None:
            config = await self._store.get_webhook_config(campaign_id)
            payload_config = config.payload_config if config else {}
        now = self._clock()
        return build_payload(
            sample_call_record(campaign_id, now=now),
            payload_config,
            campaign_id,
            now=now,
        )

    async def test_campaign_webhook(self, campaign_id: str) -> dict[str, Any]:
        """Send one sample delivery; logged as a test, counters untouched."""
        config = await self._store.get_webhook_config(campaign_id)
        if config is None or not config.url:
            return {"success": False, "message": "No webhook URL configured"}

        payload = await self.generate_sample_payload(campaign_id, config.payload_config)
        result = await self.deliver(config, payload, CALL_PROCESSED, test=True)
        await self._log_attempt(
            config,
            CALL_PROCESSED,
            1,
            result,
            len(encode_payload(payload)),
            test=True,
        )

        if result.success:
            message = "Test webhook delivered successfully"
        elif result.status_code:
            message = result.error or f"HTTP {result.status_code}"
        else:
            message = f"Network error: {result.error}"

        logger.info(
            "Test webhook sent",
            campaign_id=campaign_id,
            success=result.success,
            status_code=result.status_code,
        )
        return {
            "success": result.success,
            "message": message,
            "status_code": result.status_code or None,
            "response_time_ms": result.response_time_ms,
        }
