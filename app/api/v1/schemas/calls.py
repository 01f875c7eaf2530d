"""Pydantic schemas for call endpoints."""

from typing import Optional

from pydantic import BaseModel, Field

from app.domain.entities.call import CallRecord


class CallListResponse(BaseModel):
    """Page of stored calls, newest first."""

    calls: list[CallRecord]
    total: int
    limit: int
    offset: int


class QueueStatusResponse(BaseModel):
    """Processing queue state."""

    running: bool
    size: int
    draining: bool
    current_external_id: Optional[str] = None
    processed_count: int = 0
    failed_count: int = 0
    pending_call_ids: list[str] = Field(default_factory=list)
