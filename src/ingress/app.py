"""FastAPI application for the webhook relay."""

from __future__ import annotations

import logging
import os
import platform
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse

from src.audit.store import AuditStore, SQLiteAuditStore
from src.config import Settings
from src.ingress.auth_middleware import LogsAuthMiddleware
from src.ingress.routing import decode_body, derive_endpoint, dispatch
from src.metrics.collector import MetricsCollector
from src.remote.invoker import ScriptInvoker
from src.webhook.models import InboundRequest
from src.webhook.relay import REQUEST_ID_HEADER, WebhookPipeline

logger = logging.getLogger(__name__)

SERVICE_NAME = "fm-webhooks"

# Statuses that must not carry a response body
BODILESS_STATUSES = frozenset({204, 304})


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level)
    return create_app(settings, audit_store=build_audit_store(settings))


def build_audit_store(settings: Settings) -> AuditStore | None:
    """Open the audit store when it is configured and enabled by flag."""
    if settings.audit_enabled:
        try:
            store = SQLiteAuditStore(settings.audit_db_path)
        except Exception as exc:
            logger.error("Failed to open audit store at %s: %s", settings.audit_db_path, exc)
            return None
        logger.info("Audit logging enabled (AUDIT_LOGGING=true).")
        return store
    if settings.audit_configured:
        logger.warning("Audit logging disabled by flag: set AUDIT_LOGGING=true to enable.")
    else:
        logger.warning("Audit logging disabled: set AUDIT_DB_PATH to enable.")
    return None


def create_app(
    settings: Settings,
    audit_store: AuditStore | None = None,
    metrics: MetricsCollector | None = None,
    invoker: ScriptInvoker | None = None,
) -> FastAPI:
    """Create the relay app with its pipeline, health, metrics and log routes."""
    app = FastAPI(docs_url=None, redoc_url=None)
    metrics = metrics or MetricsCollector()
    invoker = invoker or ScriptInvoker(settings.backend)
    pipeline = WebhookPipeline(invoker=invoker, metrics=metrics, audit_store=audit_store)
    started_at = datetime.now(UTC)

    app.state.settings = settings
    app.state.metrics = metrics
    app.state.pipeline = pipeline
    app.state.audit_store = audit_store

    async def health() -> dict[str, Any]:
        now = datetime.now(UTC)
        report: dict[str, Any] = {
            "service": SERVICE_NAME,
            "status": "ok",
            "time": now.isoformat(),
            "uptimeSeconds": round((now - started_at).total_seconds()),
            "startedAt": started_at.isoformat(),
            "pythonVersion": platform.python_version(),
            "pid": os.getpid(),
            "env": {
                "port": settings.port,
                "auditConfigured": settings.audit_configured,
                "auditLoggingFlag": settings.audit_logging_flag,
                "backendConfigured": settings.backend.configured,
            },
            "audit": {
                "enabled": audit_store is not None,
                "intendedByFlag": settings.audit_logging_flag,
                "reachable": None,
                "error": None,
            },
            "backend": {"configured": settings.backend.configured},
        }
        if audit_store is not None:
            try:
                await audit_store.ping()
                report["audit"]["reachable"] = True
            except Exception as exc:
                report["audit"]["reachable"] = False
                report["audit"]["error"] = str(exc)
                report["status"] = "degraded"
        if settings.audit_enabled and audit_store is None:
            report["status"] = "degraded"
        return report

    app.add_api_route("/", health, methods=["GET"])
    app.add_api_route("/health", health, methods=["GET"])

    @app.get("/metrics")
    async def metrics_report() -> Response:
        return Response(content=metrics.render(), media_type=metrics.content_type)

    @app.get("/logs")
    async def list_logs(
        limit: int = Query(50, ge=1, le=500),
        endpoint: str | None = None,
    ) -> Response:
        if audit_store is None:
            return JSONResponse({"error": "Audit logging is not enabled"}, status_code=503)
        records = await audit_store.recent(limit=limit, endpoint=endpoint)
        return JSONResponse({"count": len(records), "records": [r.model_dump() for r in records]})

    @app.get("/logs/{request_id}")
    async def get_log(request_id: str) -> Response:
        if audit_store is None:
            return JSONResponse({"error": "Audit logging is not enabled"}, status_code=503)
        record = await audit_store.get(request_id)
        if record is None:
            return JSONResponse({"error": "Record not found"}, status_code=404)
        return JSONResponse(record.model_dump())

    async def _relay(request: Request, endpoint: str) -> Response:
        inbound = InboundRequest(
            endpoint=endpoint,
            path=request.url.path,
            query_string=request.url.query,
            headers=dict(request.headers),
            body=decode_body(await request.body()),
            client_host=request.client.host if request.client else "",
        )
        result = await dispatch(pipeline, inbound, settings.ack_channels)
        if result.status_code in BODILESS_STATUSES:
            return Response(
                status_code=result.status_code,
                headers={REQUEST_ID_HEADER: result.request_id},
            )
        return JSONResponse(
            result.body,
            status_code=result.status_code,
            headers={REQUEST_ID_HEADER: result.request_id},
        )

    @app.api_route("/hooks/{endpoint}", methods=[settings.inbound_method])
    async def hook(request: Request, endpoint: str) -> Response:
        return await _relay(request, derive_endpoint(request.url.path, endpoint))

    @app.api_route("/{path:path}", methods=[settings.inbound_method])
    async def catch_all(request: Request, path: str) -> Response:
        return await _relay(request, derive_endpoint(request.url.path))

    app.add_middleware(LogsAuthMiddleware, token=settings.logs_token)

    return app
