"""Processing queue for serialized call enrichment."""

from app.infrastructure.queue.processing_queue import (
    CallCompletionNotifier,
    ProcessingQueue,
)

__all__ = [
    "CallCompletionNotifier",
    "ProcessingQueue",
]
