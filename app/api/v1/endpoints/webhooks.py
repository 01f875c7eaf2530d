"""Webhook endpoints: inbound upstream events and outbound campaign config."""

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from app.api.deps import get_pipeline
from app.api.v1.schemas.webhooks import (
    CampaignWebhookResponse,
    CampaignWebhookUpdate,
    SamplePayloadRequest,
    UpstreamWebhookEvent,
    UpstreamWebhookResponse,
    WebhookTestResponse,
)
from app.core.exceptions import WebhookConfigError
from app.core.logging import get_logger
from app.domain.entities.webhook import DeliveryLogEntry
from app.domain.services.pipeline import CallPipeline

router = APIRouter()
logger = get_logger(__name__)

# Upstream events that carry a finished call
SUPPORTED_EVENTS = {"call.completed"}


@router.post("/upstream", response_model=UpstreamWebhookResponse)
async def handle_upstream_webhook(
    event: UpstreamWebhookEvent,
    pipeline: CallPipeline = Depends(get_pipeline),
) -> UpstreamWebhookResponse:
    """Receive a call pushed by the upstream platform.

    Only ``call.completed`` is handled; other events are acknowledged and
    ignored so the upstream does not retry them.
    """
    if event.event not in SUPPORTED_EVENTS:
        logger.info("Ignoring upstream webhook event", event=event.event)
        return UpstreamWebhookResponse(status="ignored", reason="unsupported_event")

    if not event.call:
        logger.warning("Upstream webhook without call data")
        return UpstreamWebhookResponse(status="ignored", reason="no_call_data")

    outcome = await pipeline.sync.ingest_call(event.call)
    return UpstreamWebhookResponse(**outcome)


@router.get("/campaigns", response_model=list[CampaignWebhookResponse])
async def list_campaign_webhooks(
    pipeline: CallPipeline = Depends(get_pipeline),
) -> list[CampaignWebhookResponse]:
    configs = await pipeline.webhooks.list_campaign_webhooks()
    return [CampaignWebhookResponse.from_config(c) for c in configs]


@router.get("/campaigns/{campaign_id}", response_model=CampaignWebhookResponse)
async def get_campaign_webhook(
    campaign_id: str,
    pipeline: CallPipeline = Depends(get_pipeline),
) -> CampaignWebhookResponse:
    config = await pipeline.webhooks.get_campaign_webhook(campaign_id)
    if config is None:
        raise HTTPException(
            status_code=404, detail=f"No webhook configured for campaign {campaign_id}"
        )
    return CampaignWebhookResponse.from_config(config)


@router.put("/campaigns/{campaign_id}", response_model=CampaignWebhookResponse)
async def save_campaign_webhook(
    campaign_id: str,
    update: CampaignWebhookUpdate,
    pipeline: CallPipeline = Depends(get_pipeline),
) -> CampaignWebhookResponse:
    """Create or update the webhook for a campaign."""
    try:
        config = await pipeline.webhooks.save_campaign_webhook(
            campaign_id, update.model_dump(exclude_unset=True)
        )
    except WebhookConfigError as e:
        raise HTTPException(
            status_code=400, detail={"message": e.message, **e.details}
        )
    return CampaignWebhookResponse.from_config(config)


@router.post("/campaigns/{campaign_id}/test", response_model=WebhookTestResponse)
async def test_campaign_webhook(
    campaign_id: str,
    pipeline: CallPipeline = Depends(get_pipeline),
) -> WebhookTestResponse:
    """Send a sample payload to the configured URL once."""
    result = await pipeline.webhooks.test_campaign_webhook(campaign_id)
    return WebhookTestResponse(**result)


@router.post("/campaigns/{campaign_id}/sample")
async def generate_sample_payload(
    campaign_id: str,
    request: SamplePayloadRequest | None = Body(None),
    pipeline: CallPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """Preview the payload a campaign would receive."""
    payload_config = request.payload_config if request else None
    return await pipeline.webhooks.generate_sample_payload(campaign_id, payload_config)


@router.get("/logs", response_model=list[DeliveryLogEntry])
async def get_delivery_logs(
    limit: int = Query(100, ge=1, le=1000),
    campaign_id: str | None = Query(None),
    pipeline: CallPipeline = Depends(get_pipeline),
) -> list[DeliveryLogEntry]:
    """Recent delivery attempts, newest first."""
    return await pipeline.webhooks.list_delivery_logs(
        limit=limit, campaign_id=campaign_id
    )
