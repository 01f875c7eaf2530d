"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1 import router as api_v1_router
from app.api.v1.schemas.common import HealthResponse
from app.config import get_settings
from app.core.logging import configure_logging, get_logger
from app.domain.services.pipeline import build_pipeline
from app.infrastructure.database.connection import close_db, init_db

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)

    # Startup
    logger.info(
        "Starting application",
        version=settings.app_version,
        store_backend=settings.store_backend,
    )
    if settings.store_backend == "sql":
        await init_db()

    pipeline = build_pipeline(settings)
    await pipeline.start()
    app.state.pipeline = pipeline

    yield

    # Shutdown
    logger.info("Shutting down application")
    await pipeline.stop()
    app.state.pipeline = None
    if settings.store_backend == "sql":
        await close_db()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure properly in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routers
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        pipeline = getattr(app.state, "pipeline", None)
        if pipeline is None:
            return HealthResponse(status="unhealthy", version=settings.app_version)

        scheduler_status = pipeline.scheduler.get_status()
        queue_status = pipeline.queue.get_status()
        return HealthResponse(
            status="healthy",
            version=settings.app_version,
            scheduler={
                "running": scheduler_status["running"],
                "jobs_count": scheduler_status["job_count"],
                "interval_minutes": scheduler_status["interval_minutes"],
            },
            queue={
                "running": queue_status["running"],
                "size": queue_status["size"],
                "draining": queue_status["draining"],
            },
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
