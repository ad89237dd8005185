"""Shared test fixtures for fm-webhook-relay."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.audit.store import AuditStore
from src.config import BackendConfig
from src.models import RemoteResponse, WebhookRecord
from src.remote.invoker import ScriptInvoker
from src.webhook.models import InboundRequest


@pytest.fixture
def audit_db_path(tmp_path: Path) -> str:
    """Create a temporary database path for audit store tests."""
    return str(tmp_path / "data" / "webhooks.db")


@pytest.fixture
def mock_audit_store() -> MagicMock:
    store = MagicMock(spec=AuditStore)
    store.insert = AsyncMock(return_value=1)
    store.update = AsyncMock(return_value=True)
    store.get = AsyncMock(return_value=None)
    store.recent = AsyncMock(return_value=[])
    store.ping = AsyncMock(return_value=None)
    return store


@pytest.fixture
def mock_invoker() -> MagicMock:
    invoker = MagicMock(spec=ScriptInvoker)
    invoker.invoke = AsyncMock(return_value=RemoteResponse(status_code=200, body={"ok": True}))
    return invoker


# --- Factory functions for test data ---


def make_backend_config(**kwargs: Any) -> BackendConfig:
    """Factory for BackendConfig with every coordinate set."""
    defaults: dict[str, Any] = {
        "server": "https://fm.example.com/",
        "database": "Contacts",
        "script": "HandleWebhook",
        "username": "api",
        "password": "s3cret",
    }
    defaults.update(kwargs)
    return BackendConfig(**defaults)


def make_inbound_request(**kwargs: Any) -> InboundRequest:
    """Factory for InboundRequest with sensible defaults."""
    defaults: dict[str, Any] = {
        "endpoint": "contact-verify",
        "path": "/contact-verify",
        "query_string": "a=1",
        "headers": {"host": "hooks.example.com", "user-agent": "pytest"},
        "body": {"email": "a@example.com"},
        "client_host": "10.0.0.5",
    }
    defaults.update(kwargs)
    return InboundRequest(**defaults)


def make_record(**kwargs: Any) -> WebhookRecord:
    """Factory for WebhookRecord with sensible defaults."""
    defaults: dict[str, Any] = {
        "request_id": "req-1",
        "endpoint": "contact-verify",
        "source_host": "hooks.example.com",
        "user_agent": "pytest",
        "client_ip": "10.0.0.5",
        "request_payload": '{"channelId":"contact-verify"}',
    }
    defaults.update(kwargs)
    return WebhookRecord(**defaults)
