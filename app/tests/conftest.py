"""Pytest configuration and fixtures."""

import os
from datetime import datetime, timezone
from typing import Any, Callable
from unittest.mock import AsyncMock

import httpx
import pytest

# Set test environment variables before importing app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("SYNC_ENABLED", "false")

from app.config import Settings  # noqa: E402
from app.domain.entities.call import CallRecord  # noqa: E402
from app.infrastructure.store.memory import InMemoryCallStore  # noqa: E402
from app.infrastructure.transcription.base import (  # noqa: E402
    Transcriber,
    TranscriptionResult,
)

FIXED_NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeTranscriber(Transcriber):
    """Transcriber returning canned results, one per call."""

    def __init__(self, results: list[TranscriptionResult] | None = None):
        self.results = list(results or [])
        self.calls: list[tuple[bytes, str]] = []

    @property
    def name(self) -> str:
        return "fake"

    async def transcribe(self, audio: bytes, filename: str) -> TranscriptionResult:
        self.calls.append((audio, filename))
        if self.results:
            return self.results.pop(0)
        return TranscriptionResult(
            success=True,
            transcript="Agent: Hello\nCustomer: Hi",
            analysis={"overallScore": 7.5, "overallRating": "Good"},
        )


@pytest.fixture
def settings() -> Settings:
    """Settings with upstream credentials and no pacing."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        store_backend="memory",
        upstream_api_key="test-key",
        upstream_account_id="RA123",
        upstream_base_url="https://upstream.test/v2",
        sync_enabled=False,
        processing_pacing_seconds=0,
        transcription_url="https://stt.test/transcribe",
    )


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def memory_store() -> InMemoryCallStore:
    return InMemoryCallStore(log_max_entries=100)


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Injected sleep that returns immediately and records its delays."""
    return AsyncMock(return_value=None)


@pytest.fixture
def fake_transcriber() -> FakeTranscriber:
    return FakeTranscriber()


@pytest.fixture
async def mock_http():
    """Factory for an AsyncClient answering through a handler function."""
    clients: list[httpx.AsyncClient] = []

    def _create(handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _create

    for client in clients:
        await client.aclose()


@pytest.fixture
def sample_call_data() -> dict[str, Any]:
    """Upstream call record in the report envelope's field names."""
    return {
        "inboundCallId": "RGB-1001",
        "campaignId": "CA-42",
        "campaignName": "Medicare Q1",
        "inboundPhoneNumber": "+15551230001",
        "targetNumber": "+15559870002",
        "callDt": 1709294400000,
        "callLengthInSeconds": 185,
        "callStatus": "completed",
        "targetName": "Alice Agent",
        "conversionAmount": "42.50",
        "recordingUrl": "https://recordings.test/RGB-1001.wav",
    }


@pytest.fixture
def make_call() -> Callable[..., CallRecord]:
    """Factory for pending call records."""

    def _create(external_id: str = "EXT-1", **overrides: Any) -> CallRecord:
        data: dict[str, Any] = {
            "id": CallRecord.make_id("ringba", external_id),
            "external_id": external_id,
            "source": "ringba",
            "caller_number": "+15551230001",
            "called_number": "+15559870002",
            "duration_seconds": 120,
            "campaign_id": "CA-42",
            "recording_url": f"https://recordings.test/{external_id}.wav",
        }
        data.update(overrides)
        return CallRecord(**data)

    return _create
