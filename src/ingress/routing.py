"""Inbound path routing: endpoint derivation and channel dispatch."""

from __future__ import annotations

import json
from collections.abc import Collection
from typing import TYPE_CHECKING, Any

from src.webhook.models import InboundRequest, WebhookResponse

if TYPE_CHECKING:
    from src.webhook.relay import WebhookPipeline

DEFAULT_ACK_CHANNELS = frozenset({"other-hooks"})


def derive_endpoint(path: str, route_param: str | None = None) -> str:
    """Return the endpoint id for a path, e.g. 'contact-verify' for '/contact-verify/x'."""
    if route_param is not None:
        return route_param.lstrip("/")
    return path.lstrip("/").split("/", 1)[0]


def is_ack_channel(endpoint: str, ack_channels: Collection[str] = DEFAULT_ACK_CHANNELS) -> bool:
    return endpoint in ack_channels


def decode_body(raw: bytes) -> Any:
    """JSON when the body parses, decoded text otherwise, None when empty."""
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (ValueError, RecursionError):
        return raw.decode(errors="replace")


async def dispatch(
    pipeline: WebhookPipeline,
    request: InboundRequest,
    ack_channels: Collection[str] = DEFAULT_ACK_CHANNELS,
) -> WebhookResponse:
    if is_ack_channel(request.endpoint, ack_channels):
        return await pipeline.acknowledge(request)
    return await pipeline.relay(request)
