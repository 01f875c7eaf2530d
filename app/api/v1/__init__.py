"""API v1 router."""

from fastapi import APIRouter

from app.api.v1.endpoints import calls, sync, webhooks

router = APIRouter()

router.include_router(sync.router, prefix="/sync", tags=["sync"])
router.include_router(calls.router, prefix="/calls", tags=["calls"])
router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
