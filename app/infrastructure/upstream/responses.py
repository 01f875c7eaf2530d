"""Known envelopes of the upstream call-log response."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from app.core.exceptions import UpstreamResponseError


class ResponseShape(str, Enum):
    """Tag identifying which envelope a response body arrived in."""

    BARE_ARRAY = "bare_array"
    CALL_LOGS = "callLogs"
    CALLS = "calls"
    DATA_LIST = "data"
    DATA_OBJECT = "data_object"
    RESULTS = "results"
    REPORT_RECORDS = "report.records"


@dataclass(frozen=True)
class CallPage:
    """Resolved upstream response: the envelope tag plus its call records."""

    shape: ResponseShape
    records: list[dict[str, Any]] = field(default_factory=list)
    total_count: int | None = None


def _records(items: Any) -> list[dict[str, Any]]:
    if not isinstance(items, list):
        raise UpstreamResponseError(
            "Expected a list of call records",
            details={"type": type(items).__name__},
        )
    return [item for item in items if isinstance(item, dict)]


def resolve_call_page(body: Any) -> CallPage:
    """Resolve a decoded JSON body into a ``CallPage``.

    Envelopes are checked in a fixed order: bare array, ``callLogs``,
    ``calls``, ``data`` (list or single object), ``results``,
    ``report.records``.

    Raises:
        UpstreamResponseError: body matches no known envelope, or the
            provider flagged the report as unsuccessful
    """
    if isinstance(body, list):
        return CallPage(ResponseShape.BARE_ARRAY, _records(body))

    if not isinstance(body, dict):
        raise UpstreamResponseError(
            "Unsupported upstream response body",
            details={"type": type(body).__name__},
        )

    if body.get("callLogs") is not None:
        return CallPage(ResponseShape.CALL_LOGS, _records(body["callLogs"]))

    if body.get("calls") is not None:
        return CallPage(ResponseShape.CALLS, _records(body["calls"]))

    if body.get("data") is not None:
        data = body["data"]
        if isinstance(data, dict):
            return CallPage(ResponseShape.DATA_OBJECT, [data])
        return CallPage(ResponseShape.DATA_LIST, _records(data))

    if body.get("results") is not None:
        return CallPage(ResponseShape.RESULTS, _records(body["results"]))

    report = body.get("report")
    if isinstance(report, dict) and report.get("records") is not None:
        if body.get("isSuccessful") is False:
            raise UpstreamResponseError(
                "Upstream report was not successful",
                details={"transaction_id": body.get("transactionId")},
            )
        total = report.get("totalCount")
        return CallPage(
            ResponseShape.REPORT_RECORDS,
            _records(report["records"]),
            total_count=total if isinstance(total, int) else None,
        )

    raise UpstreamResponseError(
        "Unrecognized upstream response envelope",
        details={"keys": sorted(str(k) for k in body)[:20]},
    )
