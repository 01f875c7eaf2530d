"""Call browsing and re-processing endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.deps import get_pipeline
from app.api.v1.schemas.calls import CallListResponse, QueueStatusResponse
from app.core.exceptions import CallNotFoundError, InvalidStatusTransition
from app.domain.entities.call import CallRecord, CallStatus
from app.domain.services.pipeline import CallPipeline

router = APIRouter()


@router.get("", response_model=CallListResponse)
async def list_calls(
    status: CallStatus | None = Query(None, description="Filter by processing status"),
    campaign_id: str | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    pipeline: CallPipeline = Depends(get_pipeline),
) -> CallListResponse:
    calls = await pipeline.store.list_calls(
        status=status, campaign_id=campaign_id, limit=limit, offset=offset
    )
    total = await pipeline.store.count_calls(status=status, campaign_id=campaign_id)
    return CallListResponse(calls=calls, total=total, limit=limit, offset=offset)


@router.get("/queue", response_model=QueueStatusResponse)
async def get_queue_status(
    pipeline: CallPipeline = Depends(get_pipeline),
) -> QueueStatusResponse:
    return QueueStatusResponse(**pipeline.queue.get_status())


@router.get("/{call_id}", response_model=CallRecord)
async def get_call(
    call_id: str,
    pipeline: CallPipeline = Depends(get_pipeline),
) -> CallRecord:
    record = await pipeline.store.get_call(call_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Call {call_id} not found")
    return record


@router.post("/{call_id}/requeue", response_model=CallRecord)
async def requeue_call(
    call_id: str,
    pipeline: CallPipeline = Depends(get_pipeline),
) -> CallRecord:
    """Send a failed call back through transcription and analysis."""
    try:
        return await pipeline.queue.requeue(call_id)
    except CallNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InvalidStatusTransition as e:
        raise HTTPException(status_code=409, detail=e.message)
