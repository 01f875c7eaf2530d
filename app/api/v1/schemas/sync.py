"""Pydantic schemas for sync endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class SyncRunResponse(BaseModel):
    """Result of a sync run."""

    status: str = Field(..., description="completed, failed or already_syncing")
    sync_type: str
    fetched: int = 0
    filtered: int = Field(0, description="Calls below the minimum duration")
    skipped: int = Field(0, description="Calls already known")
    queued: int = 0
    stored: int = 0
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    endpoint: Optional[str] = None
    message: Optional[str] = None
    attempts: list[dict[str, Any]] = Field(default_factory=list)


class SyncStatusResponse(BaseModel):
    """Current sync state."""

    syncing: bool
    current_sync_type: Optional[str] = None
    source: str
    upstream_configured: bool
    auto_process_calls: bool
    last_sync_at: Optional[datetime] = None
    total_calls: int = 0
    last_result: Optional[dict[str, Any]] = None
    scheduler: dict[str, Any] = Field(default_factory=dict)


class DiagnosticsResponse(BaseModel):
    """Upstream connectivity and endpoint discovery details."""

    configured: bool
    connection: dict[str, Any] = Field(default_factory=dict)
    candidate_endpoints: list[str] = Field(default_factory=list)
    auth_schemes: list[str] = Field(default_factory=list)
    last_probe_at: Optional[datetime] = None
    last_probe_success: Optional[bool] = None
    endpoint: Optional[str] = None
    auth_name: Optional[str] = None
    attempts: list[dict[str, Any]] = Field(default_factory=list)
