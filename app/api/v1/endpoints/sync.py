"""Sync management endpoints."""

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_pipeline
from app.api.v1.schemas.sync import (
    DiagnosticsResponse,
    SyncRunResponse,
    SyncStatusResponse,
)
from app.core.logging import get_logger
from app.domain.services.pipeline import CallPipeline

logger = get_logger(__name__)

router = APIRouter()


@router.post("/run", response_model=SyncRunResponse)
async def run_manual_sync(
    days: int | None = Query(None, ge=1, le=365, description="Days to look back"),
    pipeline: CallPipeline = Depends(get_pipeline),
) -> SyncRunResponse:
    """Sync calls from the last ``days`` days.

    Returns ``already_syncing`` immediately when another run is in flight.
    """
    logger.info("Manual sync requested", days=days)
    result = await pipeline.sync.run_manual(days=days)
    return SyncRunResponse(**result.model_dump())


@router.post("/incremental", response_model=SyncRunResponse)
async def run_incremental_sync(
    pipeline: CallPipeline = Depends(get_pipeline),
) -> SyncRunResponse:
    """Sync calls since the last successful run."""
    result = await pipeline.scheduler.trigger_now()
    return SyncRunResponse(**result.model_dump())


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(
    pipeline: CallPipeline = Depends(get_pipeline),
) -> SyncStatusResponse:
    status = await pipeline.sync.get_status()
    return SyncStatusResponse(**status, scheduler=pipeline.scheduler.get_status())


@router.get("/diagnostics", response_model=DiagnosticsResponse)
async def get_diagnostics(
    pipeline: CallPipeline = Depends(get_pipeline),
) -> DiagnosticsResponse:
    """Check upstream credentials and report the last endpoint discovery."""
    connection = await pipeline.upstream.test_connection()
    return DiagnosticsResponse(
        connection=connection, **pipeline.upstream.get_diagnostics()
    )
