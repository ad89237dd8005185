"""Tests for the webhook relay pipeline."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.metrics.collector import MetricsCollector
from src.models import RemoteResponse
from src.remote.invoker import RemoteCallError
from src.webhook.relay import WebhookPipeline, merge_request_id
from tests.conftest import make_inbound_request


def _make_pipeline(**kwargs: Any) -> WebhookPipeline:
    invoker = MagicMock()
    invoker.invoke = AsyncMock(return_value=RemoteResponse(status_code=200, body={"ok": True}))
    defaults: dict[str, Any] = {
        "invoker": invoker,
        "metrics": MetricsCollector(),
        "audit_store": None,
    }
    defaults.update(kwargs)
    return WebhookPipeline(**defaults)


class TestRelayCompleted:
    @pytest.mark.asyncio
    async def test_invokes_once_with_serialized_payload(self, mock_invoker: MagicMock) -> None:
        pipeline = _make_pipeline(invoker=mock_invoker)
        result = await pipeline.relay(make_inbound_request())

        mock_invoker.invoke.assert_awaited_once()
        param = json.loads(mock_invoker.invoke.await_args.args[0])
        assert param["channelId"] == "contact-verify"
        assert param["source"] == "contact-verify"
        assert param["path"] == "/contact-verify"
        assert param["queryString"] == "a=1"
        assert param["httpCode"] == 200
        assert param["headers"]["user-agent"] == "pytest"
        assert param["body"] == {"email": "a@example.com"}
        assert param["requestId"] == result.request_id

    @pytest.mark.asyncio
    async def test_request_id_is_128_bit_and_unique(self) -> None:
        pipeline = _make_pipeline()
        ids = {(await pipeline.relay(make_inbound_request())).request_id for _ in range(20)}
        assert len(ids) == 20
        assert all(len(i) == 32 for i in ids)

    @pytest.mark.asyncio
    async def test_normalized_status_and_body_relayed(self, mock_invoker: MagicMock) -> None:
        mock_invoker.invoke.return_value = RemoteResponse(
            status_code=200,
            body={"scriptResult": {"resultParameter": '{"body":{"ok":true},"httpCode":201}'}},
        )
        pipeline = _make_pipeline(invoker=mock_invoker)
        result = await pipeline.relay(make_inbound_request())

        assert result.status_code == 201
        assert result.body == {"ok": True, "requestId": result.request_id}

    @pytest.mark.asyncio
    async def test_non_object_body_relayed_unchanged(self, mock_invoker: MagicMock) -> None:
        mock_invoker.invoke.return_value = RemoteResponse(
            status_code=200, body={"scriptResult": "plain text"},
        )
        result = await _make_pipeline(invoker=mock_invoker).relay(make_inbound_request())
        assert result.status_code == 200
        assert result.body == "plain text"

    @pytest.mark.asyncio
    async def test_informational_status_uses_transport_status(
        self, mock_invoker: MagicMock, mock_audit_store: MagicMock,
    ) -> None:
        mock_invoker.invoke.return_value = RemoteResponse(
            status_code=200,
            body={"scriptResult": {"resultParameter": '{"body":{"ok":true},"httpCode":100}'}},
        )
        metrics = MetricsCollector()
        pipeline = _make_pipeline(
            invoker=mock_invoker, metrics=metrics, audit_store=mock_audit_store,
        )
        result = await pipeline.relay(make_inbound_request())

        assert result.status_code == 200
        assert mock_audit_store.update.await_args.args[2] == 200
        assert metrics.snapshot().status_counts == {200: 1}

    @pytest.mark.asyncio
    async def test_no_content_status_relayed(self, mock_invoker: MagicMock) -> None:
        mock_invoker.invoke.return_value = RemoteResponse(
            status_code=200,
            body={"scriptResult": {"resultParameter": '{"body":null,"httpCode":204}'}},
        )
        result = await _make_pipeline(invoker=mock_invoker).relay(make_inbound_request())
        assert result.status_code == 204

    @pytest.mark.asyncio
    async def test_audit_pre_and_post_write(
        self, mock_invoker: MagicMock, mock_audit_store: MagicMock,
    ) -> None:
        pipeline = _make_pipeline(invoker=mock_invoker, audit_store=mock_audit_store)
        result = await pipeline.relay(make_inbound_request())

        record = mock_audit_store.insert.await_args.args[0]
        assert record.request_id == result.request_id
        assert record.source_host == "hooks.example.com"
        assert record.client_ip == "10.0.0.5"
        assert json.loads(record.request_payload)["requestId"] == result.request_id

        request_id, payload, status, duration_ms = mock_audit_store.update.await_args.args
        assert request_id == result.request_id
        assert json.loads(payload) == {"ok": True}
        assert status == 200
        assert duration_ms >= 0

    @pytest.mark.asyncio
    async def test_side_effects_are_ordered(self, mock_audit_store: MagicMock) -> None:
        calls: list[str] = []
        invoker = MagicMock()

        async def invoke(param: str) -> RemoteResponse:
            calls.append("invoke")
            return RemoteResponse(status_code=200, body=None)

        async def insert(record: Any) -> int:
            calls.append("insert")
            return 1

        async def update(*args: Any) -> bool:
            calls.append("update")
            return True

        invoker.invoke = invoke
        mock_audit_store.insert = insert
        mock_audit_store.update = update
        await _make_pipeline(invoker=invoker, audit_store=mock_audit_store).relay(
            make_inbound_request(),
        )
        assert calls == ["insert", "invoke", "update"]

    @pytest.mark.asyncio
    async def test_audit_failures_do_not_affect_caller(
        self, mock_invoker: MagicMock, mock_audit_store: MagicMock,
    ) -> None:
        mock_audit_store.insert.side_effect = RuntimeError("database is locked")
        mock_audit_store.update.side_effect = RuntimeError("database is locked")
        pipeline = _make_pipeline(invoker=mock_invoker, audit_store=mock_audit_store)

        result = await pipeline.relay(make_inbound_request())

        assert result.status_code == 200
        mock_invoker.invoke.assert_awaited_once()
        mock_audit_store.update.assert_awaited_once()


class TestRelayFailed:
    @pytest.mark.asyncio
    async def test_connection_error_yields_500(
        self, mock_invoker: MagicMock, mock_audit_store: MagicMock,
    ) -> None:
        mock_invoker.invoke.side_effect = RemoteCallError("Remote script backend unavailable")
        metrics = MetricsCollector()
        pipeline = _make_pipeline(
            invoker=mock_invoker, audit_store=mock_audit_store, metrics=metrics,
        )

        result = await pipeline.relay(make_inbound_request())

        assert result.status_code == 500
        assert result.body == {"error": "Remote script backend unavailable"}
        mock_invoker.invoke.assert_awaited_once()
        _, payload, status, _ = mock_audit_store.update.await_args.args
        assert status == 500
        assert json.loads(payload) == {"error": "Remote script backend unavailable"}
        assert metrics.snapshot().remote_error_count == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_message_not_leaked(self, mock_invoker: MagicMock) -> None:
        mock_invoker.invoke.side_effect = KeyError("internal detail")
        result = await _make_pipeline(invoker=mock_invoker).relay(make_inbound_request())
        assert result.status_code == 500
        assert "internal detail" not in result.body["error"]

    @pytest.mark.asyncio
    async def test_unserializable_result_treated_as_failure(self, mock_invoker: MagicMock) -> None:
        mock_invoker.invoke.return_value = RemoteResponse(
            status_code=200, body={"scriptResult": "NaN"},
        )
        result = await _make_pipeline(invoker=mock_invoker).relay(make_inbound_request())
        assert result.status_code == 500
        assert "error" in result.body

    @pytest.mark.asyncio
    async def test_failure_without_store_still_relays(self, mock_invoker: MagicMock) -> None:
        mock_invoker.invoke.side_effect = RemoteCallError("Remote script call timed out")
        result = await _make_pipeline(invoker=mock_invoker, audit_store=None).relay(
            make_inbound_request(),
        )
        assert result.status_code == 500
        assert result.body == {"error": "Remote script call timed out"}


class TestMetrics:
    @pytest.mark.asyncio
    async def test_counts_after_mixed_outcomes(self, mock_invoker: MagicMock) -> None:
        ok = RemoteResponse(status_code=200, body={"ok": True})
        mock_invoker.invoke.side_effect = [
            ok,
            RemoteCallError("Remote script backend unavailable"),
            ok,
            RemoteCallError("Remote script call timed out"),
            ok,
        ]
        metrics = MetricsCollector()
        pipeline = _make_pipeline(invoker=mock_invoker, metrics=metrics)

        for _ in range(5):
            await pipeline.relay(make_inbound_request())

        snap = metrics.snapshot()
        assert snap.request_count == 5
        assert snap.remote_call_count == 5
        assert snap.remote_error_count == 2
        assert snap.latency_count == 5
        assert snap.latency_buckets[-1] == 5
        assert snap.status_counts == {200: 3, 500: 2}


class TestAcknowledge:
    @pytest.mark.asyncio
    async def test_ack_never_invokes_remote(
        self, mock_invoker: MagicMock, mock_audit_store: MagicMock,
    ) -> None:
        pipeline = _make_pipeline(invoker=mock_invoker, audit_store=mock_audit_store)
        result = await pipeline.acknowledge(make_inbound_request(endpoint="other-hooks"))

        mock_invoker.invoke.assert_not_awaited()
        assert result.status_code == 200
        assert result.body["status"] == "ok"
        assert result.body["channel"] == "other-hooks"
        assert result.body["requestId"] == result.request_id
        mock_audit_store.insert.assert_awaited_once()
        _, _, status, duration_ms = mock_audit_store.update.await_args.args
        assert status == 200
        assert duration_ms is None


class TestMergeRequestId:
    @pytest.mark.parametrize(
        ("body", "expected"),
        [
            ({"a": 1}, {"a": 1, "requestId": "rid"}),
            ({}, {"requestId": "rid"}),
            (None, {"status": "ok", "requestId": "rid"}),
            ("", {"status": "ok", "requestId": "rid"}),
            ("text", "text"),
            ([1, 2], [1, 2]),
            (0, 0),
        ],
    )
    def test_merge(self, body: Any, expected: Any) -> None:
        assert merge_request_id(body, "rid") == expected
