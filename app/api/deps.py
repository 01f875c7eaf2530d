"""Shared API dependencies."""

from fastapi import HTTPException, Request

from app.domain.services.pipeline import CallPipeline


def get_pipeline(request: Request) -> CallPipeline:
    """Pipeline built during application startup."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline is not running")
    return pipeline
