"""Unit tests for EndpointProber."""

import httpx

from app.infrastructure.upstream.prober import (
    ERROR_BODY_LIMIT,
    AuthScheme,
    EndpointProber,
    ProbeAttempt,
)

ENDPOINT_A = "https://upstream.test/a"
ENDPOINT_B = "https://upstream.test/b"
SCHEME_X = AuthScheme("X", "X-Auth-X")
SCHEME_Y = AuthScheme("Y", "X-Auth-Y")


def _scheme_of(request: httpx.Request) -> str:
    return "X" if "X-Auth-X" in request.headers else "Y"


class TestEndpointProber:
    """Test suite for EndpointProber.probe."""

    async def test_nested_order_stops_at_first_success(self, mock_http):
        """Endpoints outer, schemes inner; only (B, Y) works."""
        seen: list[tuple[str, str]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            endpoint = str(request.url)
            scheme = _scheme_of(request)
            seen.append((endpoint, scheme))
            if (endpoint, scheme) == (ENDPOINT_B, "Y"):
                return httpx.Response(200, json={"calls": []})
            return httpx.Response(401, text="unauthorized")

        prober = EndpointProber(mock_http(handler))
        result = await prober.probe(
            [ENDPOINT_A, ENDPOINT_B], [SCHEME_X, SCHEME_Y], api_key="k"
        )

        assert result.success is True
        assert result.endpoint == ENDPOINT_B
        assert result.auth_name == "Y"
        assert result.body == {"calls": []}
        assert seen == [
            (ENDPOINT_A, "X"),
            (ENDPOINT_A, "Y"),
            (ENDPOINT_B, "X"),
            (ENDPOINT_B, "Y"),
        ]
        assert [(a.endpoint, a.auth_name) for a in result.attempts] == [
            (ENDPOINT_A, "X"),
            (ENDPOINT_A, "Y"),
            (ENDPOINT_B, "X"),
        ]
        assert all(a.status_code == 401 for a in result.attempts)

    async def test_all_combinations_fail(self, mock_http):
        prober = EndpointProber(mock_http(lambda r: httpx.Response(403, text="nope")))

        result = await prober.probe(
            [ENDPOINT_A, ENDPOINT_B], [SCHEME_X, SCHEME_Y], api_key="k"
        )

        assert result.success is False
        assert len(result.attempts) == 4
        assert result.endpoint is None

    async def test_network_error_recorded_without_status(self, mock_http):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        prober = EndpointProber(mock_http(handler))
        result = await prober.probe([ENDPOINT_A], [SCHEME_X], api_key="k")

        assert result.success is False
        assert result.attempts[0].status_code is None
        assert "connection refused" in result.attempts[0].error_body

    async def test_success_status_with_invalid_json_is_a_failure(self, mock_http):
        prober = EndpointProber(
            mock_http(lambda r: httpx.Response(200, text="<html>login</html>"))
        )

        result = await prober.probe([ENDPOINT_A], [SCHEME_X], api_key="k")

        assert result.success is False
        assert result.attempts[0].status_code == 200
        assert "not valid JSON" in result.attempts[0].error_body

    async def test_error_body_is_truncated(self, mock_http):
        prober = EndpointProber(
            mock_http(lambda r: httpx.Response(500, text="x" * 2000))
        )

        result = await prober.probe([ENDPOINT_A], [SCHEME_X], api_key="k")

        assert len(result.attempts[0].error_body) == ERROR_BODY_LIMIT

    async def test_scheme_headers_carry_key(self, mock_http):
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, json=[])

        prober = EndpointProber(mock_http(handler))
        await prober.probe(
            [ENDPOINT_A],
            [AuthScheme("Bearer Token", "Authorization", "Bearer ")],
            api_key="secret",
            json_body={"q": 1},
        )

        assert captured[0].headers["Authorization"] == "Bearer secret"
        assert captured[0].method == "POST"

    def test_attempt_to_dict_uses_wire_names(self):
        attempt = ProbeAttempt(ENDPOINT_A, "X", 401, "denied")

        assert attempt.to_dict() == {
            "endpoint": ENDPOINT_A,
            "authName": "X",
            "statusCode": 401,
            "errorBody": "denied",
        }
