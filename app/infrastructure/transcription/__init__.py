"""Transcription and analysis collaborators."""

from app.infrastructure.transcription.base import (
    Analyzer,
    Transcriber,
    TranscriptionResult,
)
from app.infrastructure.transcription.http import HttpAnalyzer, HttpTranscriber

__all__ = [
    "Analyzer",
    "HttpAnalyzer",
    "HttpTranscriber",
    "Transcriber",
    "TranscriptionResult",
]
