"""HTTP-backed transcription and analysis collaborators."""

from typing import Any

import httpx

from app.core.exceptions import AnalysisError, TranscriptionError
from app.core.logging import get_logger
from app.domain.entities.call import CallRecord
from app.infrastructure.transcription.base import (
    Analyzer,
    Transcriber,
    TranscriptionResult,
)

logger = get_logger(__name__)


class HttpTranscriber(Transcriber):
    """Posts the audio as multipart form data to a transcription service.

    The service answers ``{success, transcript, analysis?, error?}``, either
    flat or nested under ``data``.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        url: str,
        api_key: str = "",
        timeout_seconds: float = 120.0,
    ):
        self._http = http_client
        self._url = url
        self._api_key = api_key
        self._timeout = timeout_seconds

    @property
    def name(self) -> str:
        return "http"

    async def transcribe(self, audio: bytes, filename: str) -> TranscriptionResult:
        if not self._url:
            raise TranscriptionError("Transcription service URL not configured")

        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        try:
            logger.info("Submitting audio for transcription", filename=filename, size=len(audio))
            response = await self._http.post(
                self._url,
                files={"audio": (filename, audio, "audio/wav")},
                headers=headers,
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise TranscriptionError(f"Transcription request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success:
            error = body.get("error") if isinstance(body, dict) else None
            return TranscriptionResult(
                success=False,
                error=error or f"Transcription service returned HTTP {response.status_code}",
            )

        if not isinstance(body, dict):
            return TranscriptionResult(
                success=False, error="Transcription response is not a JSON object"
            )

        data = body.get("data") if isinstance(body.get("data"), dict) else body
        transcript = data.get("transcript")
        success = bool(body.get("success", transcript is not None)) and transcript is not None
        return TranscriptionResult(
            success=success,
            transcript=transcript,
            analysis=data.get("analysis") if isinstance(data.get("analysis"), dict) else None,
            error=None if success else (body.get("error") or "Transcription failed"),
        )


class HttpAnalyzer(Analyzer):
    """Posts the transcript and call context as JSON to an analysis service."""

    def __init__(self, http_client: httpx.AsyncClient, url: str, timeout_seconds: float = 60.0):
        self._http = http_client
        self._url = url
        self._timeout = timeout_seconds

    async def analyze(self, transcript: str, record: CallRecord) -> dict[str, Any]:
        payload = {
            "transcript": transcript,
            "call": {
                "id": record.id,
                "externalId": record.external_id,
                "campaignId": record.campaign_id,
                "agentName": record.agent_name,
                "duration": record.duration_seconds,
                "disposition": record.disposition,
            },
        }
        try:
            response = await self._http.post(self._url, json=payload, timeout=self._timeout)
        except httpx.HTTPError as e:
            raise AnalysisError(f"Analysis request failed: {e}") from e

        if not response.is_success:
            raise AnalysisError(
                f"Analysis service returned HTTP {response.status_code}",
                details={"body": response.text[:500]},
            )

        try:
            body = response.json()
        except ValueError as e:
            raise AnalysisError("Analysis response is not JSON") from e

        if isinstance(body, dict) and isinstance(body.get("analysis"), dict):
            return body["analysis"]
        if isinstance(body, dict):
            return body
        raise AnalysisError("Analysis response is not a JSON object")
