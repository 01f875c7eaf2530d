"""Scheduler module for periodic sync jobs."""

from app.infrastructure.scheduler.scheduler import SyncScheduler, build_scheduler

__all__ = [
    "SyncScheduler",
    "build_scheduler",
]
