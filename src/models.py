"""Shared Pydantic data models for fm-webhook-relay."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


# --- Audit Models ---


class WebhookRecord(BaseModel):
    """One row of the webhook audit table."""

    id: int | None = None
    request_id: str
    endpoint: str
    source_host: str = ""
    user_agent: str = ""
    client_ip: str = ""
    request_payload: str
    response_payload: str | None = None
    http_status: int | None = None
    duration_ms: int | None = Field(default=None, ge=0)
    created_at: str = Field(default_factory=_now_iso)


# --- Remote Models ---


class RequestEnvelope(BaseModel):
    """Serialized form of an inbound request, sent as the script parameter."""

    model_config = ConfigDict(populate_by_name=True)

    channel_id: str = Field(alias="channelId")
    source: str
    request_id: str = Field(alias="requestId")
    path: str
    query_string: str = Field(default="", alias="queryString")
    # Status of the pending reply when the script is called, kept for older scripts
    http_code: int = Field(default=200, alias="httpCode")
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None

    def serialize(self) -> str:
        return self.model_dump_json(by_alias=True)


class RemoteResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status_code: int
    body: Any = None


class NormalizedResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: int = Field(ge=100, le=599)
    body: Any = None


# --- Metrics Models ---


class MetricsSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    request_count: int = 0
    remote_call_count: int = 0
    remote_error_count: int = 0
    status_counts: dict[int, int] = Field(default_factory=dict)
    latency_thresholds: tuple[float, ...] = ()
    # Cumulative, one entry per threshold plus the +Inf overflow bucket.
    latency_buckets: tuple[int, ...] = ()
    latency_count: int = 0
