"""Local call store implementations."""

from app.infrastructure.store.base import CallStore
from app.infrastructure.store.memory import InMemoryCallStore
from app.infrastructure.store.sql import SqlCallStore

__all__ = ["CallStore", "InMemoryCallStore", "SqlCallStore"]
