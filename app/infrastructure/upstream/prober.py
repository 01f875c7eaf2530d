"""Endpoint/authentication discovery for the upstream call-log API."""

import json
from dataclasses import dataclass, field
from typing import Any, Sequence

import httpx

from app.core.logging import get_logger

logger = get_logger(__name__)

ERROR_BODY_LIMIT = 500


@dataclass(frozen=True)
class AuthScheme:
    """One way of presenting the API key to the upstream."""

    name: str
    header: str
    prefix: str = ""

    def headers(self, api_key: str) -> dict[str, str]:
        return {self.header: f"{self.prefix}{api_key}"}


DEFAULT_AUTH_SCHEMES: tuple[AuthScheme, ...] = (
    AuthScheme("Bearer Token", "Authorization", "Bearer "),
    AuthScheme("X-API-Key", "X-API-Key"),
    AuthScheme("API-Key Header", "api-key"),
)


@dataclass(frozen=True)
class ProbeAttempt:
    """Diagnostic record of one failed endpoint/auth combination."""

    endpoint: str
    auth_name: str
    status_code: int | None
    error_body: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "authName": self.auth_name,
            "statusCode": self.status_code,
            "errorBody": self.error_body,
        }


@dataclass
class ProbeResult:
    """Outcome of a probe: the winning combination and the failure trail."""

    success: bool
    endpoint: str | None = None
    auth_name: str | None = None
    status_code: int | None = None
    body: Any = None
    attempts: list[ProbeAttempt] = field(default_factory=list)


def _truncate(text: str) -> str:
    return text[:ERROR_BODY_LIMIT]


class EndpointProber:
    """Tries candidate endpoints against candidate auth schemes.

    Order is nested: outer loop over endpoints, inner loop over schemes.
    The first 2xx response with a JSON body wins. Every combination is tried
    at most once.
    """

    def __init__(self, http_client: httpx.AsyncClient):
        self._http = http_client

    async def probe(
        self,
        endpoints: Sequence[str],
        auth_schemes: Sequence[AuthScheme] = DEFAULT_AUTH_SCHEMES,
        api_key: str = "",
        method: str = "POST",
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> ProbeResult:
        attempts: list[ProbeAttempt] = []

        for endpoint in endpoints:
            for scheme in auth_schemes:
                headers = {
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                    **scheme.headers(api_key),
                }
                logger.debug(
                    "Probing upstream endpoint",
                    endpoint=endpoint,
                    auth=scheme.name,
                )
                try:
                    response = await self._http.request(
                        method,
                        endpoint,
                        headers=headers,
                        json=json_body,
                        params=params,
                    )
                except httpx.HTTPError as e:
                    attempts.append(
                        ProbeAttempt(
                            endpoint=endpoint,
                            auth_name=scheme.name,
                            status_code=None,
                            error_body=_truncate(str(e) or type(e).__name__),
                        )
                    )
                    continue

                if not response.is_success:
                    attempts.append(
                        ProbeAttempt(
                            endpoint=endpoint,
                            auth_name=scheme.name,
                            status_code=response.status_code,
                            error_body=_truncate(response.text),
                        )
                    )
                    continue

                try:
                    body = response.json()
                except (json.JSONDecodeError, UnicodeDecodeError):
                    attempts.append(
                        ProbeAttempt(
                            endpoint=endpoint,
                            auth_name=scheme.name,
                            status_code=response.status_code,
                            error_body=_truncate(
                                f"Response body is not valid JSON: {response.text}"
                            ),
                        )
                    )
                    continue

                logger.info(
                    "Upstream endpoint discovered",
                    endpoint=endpoint,
                    auth=scheme.name,
                    failed_attempts=len(attempts),
                )
                return ProbeResult(
                    success=True,
                    endpoint=endpoint,
                    auth_name=scheme.name,
                    status_code=response.status_code,
                    body=body,
                    attempts=attempts,
                )

        logger.warning(
            "No working upstream endpoint/auth combination",
            attempts=len(attempts),
        )
        return ProbeResult(success=False, attempts=attempts)
