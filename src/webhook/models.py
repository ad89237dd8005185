"""Data models for the webhook relay pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class InboundRequest:
    """Transport-neutral view of an inbound webhook call."""

    endpoint: str
    path: str
    query_string: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    client_host: str = ""

    @property
    def source_host(self) -> str:
        return self.headers.get("x-forwarded-host") or self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def client_ip(self) -> str:
        forwarded = self.headers.get("x-forwarded-for", "")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return self.client_host


@dataclass
class WebhookResponse:
    """Pipeline response to relay to the caller."""

    body: Any
    status_code: int
    request_id: str
