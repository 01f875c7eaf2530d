"""Call-tracking provider API client with discovery and retry support."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.config import Settings
from app.core.exceptions import (
    DiscoveryError,
    RecordingDownloadError,
    UpstreamAPIError,
    UpstreamRateLimitError,
)
from app.core.logging import get_logger
from app.infrastructure.upstream.prober import (
    DEFAULT_AUTH_SCHEMES,
    AuthScheme,
    EndpointProber,
    ProbeAttempt,
    ProbeResult,
)
from app.infrastructure.upstream.responses import CallPage, resolve_call_page

logger = get_logger(__name__)


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class FetchResult:
    """Calls returned by one fetch plus how they were obtained."""

    page: CallPage
    endpoint: str
    auth_name: str
    attempts: list[ProbeAttempt] = field(default_factory=list)

    @property
    def records(self) -> list[dict[str, Any]]:
        return self.page.records


class UpstreamClient:
    """Async client for the call-tracking provider.

    - Discovers a working endpoint/auth pair on every fetch
    - Resolves recording URLs with rate-limit retry
    - Downloads recordings
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        auth_schemes: tuple[AuthScheme, ...] = DEFAULT_AUTH_SCHEMES,
    ):
        self._settings = settings
        self._http = http_client
        self._prober = EndpointProber(http_client)
        self._auth_schemes = auth_schemes
        self._last_probe: ProbeResult | None = None
        self._last_probe_at: datetime | None = None

    @property
    def configured(self) -> bool:
        return self._settings.upstream_configured

    def _account_url(self, path: str) -> str:
        base = self._settings.upstream_base_url
        account = self._settings.upstream_account_id
        return f"{base}/{account}/{path.lstrip('/')}"

    def _auth_headers(self) -> dict[str, str]:
        """Headers for the scheme that last worked, or the first default."""
        scheme = self._auth_schemes[0]
        if self._last_probe and self._last_probe.success:
            for candidate in self._auth_schemes:
                if candidate.name == self._last_probe.auth_name:
                    scheme = candidate
                    break
        return {
            "Content-Type": "application/json",
            **scheme.headers(self._settings.upstream_api_key),
        }

    def build_query(
        self,
        start: datetime,
        end: datetime,
        page_size: int,
        min_duration_seconds: int = 0,
        campaign_id: str | None = None,
    ) -> dict[str, Any]:
        """Build the call-log query body."""
        filters: dict[str, Any] = {"hasRecording": True}
        if min_duration_seconds > 0:
            filters["minDuration"] = min_duration_seconds
        if campaign_id:
            filters["campaignId"] = campaign_id

        return {
            "startDate": _iso(start),
            "endDate": _iso(end),
            "filter": filters,
            "paging": {"pageSize": page_size, "pageIndex": 0},
            "sort": {"columnName": "callStartTime", "sortDirection": "Descending"},
        }

    async def fetch_calls(
        self,
        start: datetime,
        end: datetime,
        page_size: int,
        min_duration_seconds: int = 0,
        campaign_id: str | None = None,
    ) -> FetchResult:
        """Fetch calls in ``[start, end]`` through endpoint discovery.

        Raises:
            UpstreamAPIError: credentials are not configured
            DiscoveryError: no endpoint/auth combination worked
            UpstreamResponseError: the body matches no known envelope
        """
        if not self.configured:
            raise UpstreamAPIError(
                "Upstream credentials not configured",
                details={"missing": ["upstream_api_key", "upstream_account_id"]},
            )

        body = self.build_query(start, end, page_size, min_duration_seconds, campaign_id)
        logger.info(
            "Fetching upstream calls",
            start=body["startDate"],
            end=body["endDate"],
            page_size=page_size,
        )

        probe = await self._prober.probe(
            self._settings.call_log_endpoints,
            self._auth_schemes,
            api_key=self._settings.upstream_api_key,
            method="POST",
            json_body=body,
        )
        self._last_probe = probe
        self._last_probe_at = datetime.now(timezone.utc)

        if not probe.success:
            raise DiscoveryError(
                f"No working upstream configuration after {len(probe.attempts)} attempts",
                attempts=probe.attempts,
            )

        page = resolve_call_page(probe.body)
        records = page.records[:page_size] if page_size > 0 else page.records
        if len(records) != len(page.records):
            page = CallPage(page.shape, records, page.total_count)

        logger.info(
            "Fetched upstream calls",
            endpoint=probe.endpoint,
            auth=probe.auth_name,
            shape=page.shape.value,
            count=len(page.records),
        )
        return FetchResult(
            page=page,
            endpoint=probe.endpoint or "",
            auth_name=probe.auth_name or "",
            attempts=probe.attempts,
        )

    @retry(
        retry=retry_if_exception_type((UpstreamRateLimitError,)),
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=1, min=4, max=60),
        reraise=True,
    )
    async def get_recording_url(self, external_id: str) -> str | None:
        """Look up the recording URL of one call.

        Returns ``None`` when the upstream has no recording for it.

        Raises:
            UpstreamRateLimitError: on HTTP 429 after retries are exhausted
            UpstreamAPIError: on transport errors or unexpected statuses
        """
        if not self.configured:
            return None

        url = self._account_url(f"calls/{external_id}/recording")
        try:
            logger.debug("Resolving recording URL", external_id=external_id)
            response = await self._http.get(url, headers=self._auth_headers())
        except httpx.HTTPError as e:
            logger.error(
                "Recording URL lookup failed", external_id=external_id, error=str(e)
            )
            raise UpstreamAPIError(f"Recording URL lookup failed: {e}") from e

        if response.status_code == 429:
            logger.warning("Rate limit hit, will retry", external_id=external_id)
            raise UpstreamRateLimitError(
                "Rate limit exceeded on recording lookup",
                details={"external_id": external_id},
            )
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise UpstreamAPIError(
                f"Recording URL lookup returned HTTP {response.status_code}",
                details={"external_id": external_id, "body": response.text[:500]},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamAPIError("Recording URL response is not JSON") from e

        if not isinstance(data, dict):
            return None
        return data.get("recording_url") or data.get("recordingUrl") or None

    async def download_recording(self, url: str) -> bytes:
        """Download a recording.

        Raises:
            RecordingDownloadError: on transport errors or non-2xx responses
        """
        try:
            response = await self._http.get(url, follow_redirects=True)
        except httpx.HTTPError as e:
            raise RecordingDownloadError(
                f"Failed to download recording: {e}", details={"url": url}
            ) from e

        if not response.is_success:
            raise RecordingDownloadError(
                f"Failed to download recording: HTTP {response.status_code}",
                details={"url": url, "status_code": response.status_code},
            )
        return response.content

    async def test_connection(self) -> dict[str, Any]:
        """Check credentials against the account endpoint."""
        if not self.configured:
            return {"success": False, "error": "Missing API key or account ID"}

        url = f"{self._settings.upstream_base_url}/account/{self._settings.upstream_account_id}"
        try:
            response = await self._http.get(url, headers=self._auth_headers())
        except httpx.HTTPError as e:
            return {"success": False, "error": str(e) or type(e).__name__}

        if not response.is_success:
            return {
                "success": False,
                "status_code": response.status_code,
                "error": f"Upstream API error: {response.status_code}",
            }
        return {"success": True, "status_code": response.status_code}

    def get_diagnostics(self) -> dict[str, Any]:
        """Outcome of the most recent endpoint discovery."""
        probe = self._last_probe
        return {
            "configured": self.configured,
            "candidate_endpoints": self._settings.call_log_endpoints
            if self.configured
            else [],
            "auth_schemes": [scheme.name for scheme in self._auth_schemes],
            "last_probe_at": self._last_probe_at,
            "last_probe_success": probe.success if probe else None,
            "endpoint": probe.endpoint if probe else None,
            "auth_name": probe.auth_name if probe else None,
            "attempts": [a.to_dict() for a in probe.attempts] if probe else [],
        }
