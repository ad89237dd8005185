"""Webhook relay pipeline.

Each admitted call moves through ADMITTED -> INVOKED -> COMPLETED | FAILED:

1. Assign a request id and pre-write the audit record (best effort)
2. Invoke the remote script with the serialized request
3. Normalize the remote response
4. Post-write the outcome (best effort)
5. Observe latency and status, relay the result

Audit writes never affect what the caller sees. The remote call is made
exactly once; there is no retry.
"""

from __future__ import annotations

import json
import logging
import secrets
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from src.models import RequestEnvelope, WebhookRecord
from src.remote.invoker import RemoteCallError
from src.remote.normalizer import normalize_response
from src.webhook.models import InboundRequest, WebhookResponse

if TYPE_CHECKING:
    from src.audit.store import AuditStore
    from src.metrics.collector import MetricsCollector
    from src.remote.invoker import ScriptInvoker

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"

_GENERIC_FAILURE = "Remote script call failed"
_UNUSABLE_RESPONSE = "Remote script returned an unusable response"


def new_request_id() -> str:
    """128-bit random correlation id."""
    return secrets.token_hex(16)


def build_envelope(request: InboundRequest, request_id: str) -> RequestEnvelope:
    return RequestEnvelope(
        channel_id=request.endpoint,
        source=request.endpoint,
        request_id=request_id,
        path=request.path,
        query_string=request.query_string,
        headers=request.headers,
        body=request.body,
    )


def merge_request_id(body: Any, request_id: str) -> Any:
    """Attach the correlation id to the body relayed to the caller."""
    if isinstance(body, dict):
        return {**body, "requestId": request_id}
    if body is None or body == "":
        return {"status": "ok", "requestId": request_id}
    return body


class WebhookPipeline:
    """Orchestrates audit, remote invocation and metrics for one call."""

    def __init__(
        self,
        invoker: ScriptInvoker,
        metrics: MetricsCollector,
        audit_store: AuditStore | None = None,
    ) -> None:
        self._invoker = invoker
        self._metrics = metrics
        self._audit = audit_store

    async def relay(self, request: InboundRequest) -> WebhookResponse:
        """Run the full relay pipeline for an inbound call."""

        # ADMITTED
        request_id = new_request_id()
        record = self._build_record(request, request_id)
        await self._best_effort("insert", request_id, lambda store: store.insert(record))
        self._metrics.record_request()
        logger.debug("Admitted request %s for endpoint %r", request_id, request.endpoint)

        # INVOKED
        self._metrics.record_remote_call()
        started = time.perf_counter()
        try:
            remote = await self._invoker.invoke(record.request_payload)
        except RemoteCallError as exc:
            return await self._fail(request_id, started, str(exc))
        except Exception:
            logger.exception("Unexpected error invoking remote script for %s", request_id)
            return await self._fail(request_id, started, _GENERIC_FAILURE)
        elapsed = time.perf_counter() - started

        try:
            result = normalize_response(remote)
            response_payload = json.dumps(result.body, allow_nan=False)
        except Exception:
            logger.exception("Could not normalize remote response for %s", request_id)
            return await self._fail(request_id, started, _UNUSABLE_RESPONSE, elapsed)

        # COMPLETED
        status = result.status
        if status < 200:
            # 1xx cannot be sent as a final response
            status = remote.status_code
        duration_ms = _to_ms(elapsed)
        await self._best_effort(
            "update",
            request_id,
            lambda store: store.update(request_id, response_payload, status, duration_ms),
        )
        self._metrics.observe(elapsed, status)
        return WebhookResponse(
            body=merge_request_id(result.body, request_id),
            status_code=status,
            request_id=request_id,
        )

    async def acknowledge(self, request: InboundRequest) -> WebhookResponse:
        """Fixed acknowledgement for reserved channels; no remote call."""
        request_id = new_request_id()
        record = self._build_record(request, request_id)
        body = {
            "status": "ok",
            "channel": request.endpoint,
            "note": f"Handled by {request.endpoint} branch",
        }
        await self._best_effort("insert", request_id, lambda store: store.insert(record))
        await self._best_effort(
            "update",
            request_id,
            lambda store: store.update(request_id, json.dumps(body), 200, None),
        )
        return WebhookResponse(
            body=merge_request_id(body, request_id),
            status_code=200,
            request_id=request_id,
        )

    async def _fail(
        self,
        request_id: str,
        started: float,
        message: str,
        elapsed: float | None = None,
    ) -> WebhookResponse:
        # FAILED
        if elapsed is None:
            elapsed = time.perf_counter() - started
        self._metrics.record_remote_error()
        error_body = {"error": message}
        duration_ms = _to_ms(elapsed)
        await self._best_effort(
            "update",
            request_id,
            lambda store: store.update(request_id, json.dumps(error_body), 500, duration_ms),
        )
        self._metrics.observe(elapsed, 500)
        return WebhookResponse(body=error_body, status_code=500, request_id=request_id)

    def _build_record(self, request: InboundRequest, request_id: str) -> WebhookRecord:
        return WebhookRecord(
            request_id=request_id,
            endpoint=request.endpoint,
            source_host=request.source_host,
            user_agent=request.user_agent,
            client_ip=request.client_ip,
            request_payload=build_envelope(request, request_id).serialize(),
        )

    async def _best_effort(
        self,
        action: str,
        request_id: str,
        operation: Callable[[AuditStore], Awaitable[Any]],
    ) -> Any:
        """Run an audit operation; failures are logged and discarded."""
        if self._audit is None:
            return None
        try:
            return await operation(self._audit)
        except Exception as exc:
            logger.warning("Audit %s failed for request %s: %s", action, request_id, exc)
            return None


def _to_ms(seconds: float) -> int:
    return max(int(round(seconds * 1000)), 0)
