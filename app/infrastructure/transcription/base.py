"""Transcription and analysis collaborator interfaces."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel

from app.domain.entities.call import CallRecord


class TranscriptionResult(BaseModel):
    """What the speech-to-text engine returns for one recording."""

    success: bool
    transcript: Optional[str] = None
    analysis: Optional[dict[str, Any]] = None
    error: Optional[str] = None


class Transcriber(ABC):
    """Speech-to-text engine."""

    @abstractmethod
    async def transcribe(self, audio: bytes, filename: str) -> TranscriptionResult:
        """Transcribe one recording.

        Engine-side failures are reported through ``success=False``;
        transport failures raise ``TranscriptionError``.
        """

    @property
    @abstractmethod
    def name(self) -> str:
        ...


class Analyzer(ABC):
    """Transcript analyzer (sentiment, intent, disposition, scoring)."""

    @abstractmethod
    async def analyze(self, transcript: str, record: CallRecord) -> dict[str, Any]:
        """Return the structured analysis for a transcript.

        Raises:
            AnalysisError: when the analyzer cannot produce a result
        """
