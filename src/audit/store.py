"""SQLite-backed audit store for webhook records.

The pipeline treats the store as optional: every call site accepts
``AuditStore | None`` and an absent store is a no-op.

Connections are opened per operation and run in a worker thread so that no
connection is held while a request awaits the remote backend. SQLite itself
serializes concurrent writers.
"""

from __future__ import annotations

import asyncio
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any, Protocol

from src.models import WebhookRecord

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS webhooks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    request_id TEXT NOT NULL UNIQUE,
    endpoint TEXT NOT NULL,
    source_host TEXT NOT NULL DEFAULT '',
    user_agent TEXT NOT NULL DEFAULT '',
    client_ip TEXT NOT NULL DEFAULT '',
    request_payload TEXT NOT NULL,
    response_payload TEXT,
    http_status INTEGER,
    duration_ms INTEGER,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_webhooks_endpoint ON webhooks(endpoint);
"""

_COLUMNS = (
    "id, request_id, endpoint, source_host, user_agent, client_ip, "
    "request_payload, response_payload, http_status, duration_ms, created_at"
)


class AuditStore(Protocol):
    """Append/update interface over the single webhook table."""

    async def insert(self, record: WebhookRecord) -> int: ...

    async def update(
        self,
        request_id: str,
        response_payload: str | None,
        http_status: int,
        duration_ms: int | None,
    ) -> bool: ...

    async def get(self, request_id: str) -> WebhookRecord | None: ...

    async def recent(self, limit: int = 50, endpoint: str | None = None) -> list[WebhookRecord]: ...

    async def ping(self) -> None: ...


class SQLiteAuditStore:
    """Audit store persisted in a local SQLite database."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._initialize()

    @property
    def db_path(self) -> str:
        return self._db_path

    def _initialize(self) -> None:
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA_SQL)
            conn.commit()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=10.0)
        conn.row_factory = sqlite3.Row
        return conn

    # --- synchronous operations, run in a worker thread ---

    def _insert_sync(self, record: WebhookRecord) -> int:
        with closing(self._connect()) as conn:
            cursor = conn.execute(
                """INSERT INTO webhooks
                   (request_id, endpoint, source_host, user_agent, client_ip,
                    request_payload, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.request_id,
                    record.endpoint,
                    record.source_host,
                    record.user_agent,
                    record.client_ip,
                    record.request_payload,
                    record.created_at,
                ),
            )
            conn.commit()
            row_id = cursor.lastrowid
        if row_id is None:
            raise sqlite3.DatabaseError("Insert did not return a row id")
        return row_id

    def _update_sync(
        self,
        request_id: str,
        response_payload: str | None,
        http_status: int,
        duration_ms: int | None,
    ) -> bool:
        # Outcome fields are write-once.
        with closing(self._connect()) as conn:
            cursor = conn.execute(
                """UPDATE webhooks SET response_payload=?, http_status=?, duration_ms=?
                   WHERE request_id=? AND http_status IS NULL""",
                (response_payload, http_status, duration_ms, request_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def _get_sync(self, request_id: str) -> WebhookRecord | None:
        with closing(self._connect()) as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM webhooks WHERE request_id = ?", (request_id,)
            ).fetchone()
        return _to_record(dict(row)) if row else None

    def _recent_sync(self, limit: int, endpoint: str | None) -> list[WebhookRecord]:
        sql = f"SELECT {_COLUMNS} FROM webhooks"
        params: tuple[Any, ...] = ()
        if endpoint is not None:
            sql += " WHERE endpoint = ?"
            params = (endpoint,)
        sql += " ORDER BY id DESC LIMIT ?"
        params = (*params, limit)
        with closing(self._connect()) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_to_record(dict(r)) for r in rows]

    def _ping_sync(self) -> None:
        with closing(self._connect()) as conn:
            conn.execute("SELECT 1 AS ping").fetchone()

    # --- async interface ---

    async def insert(self, record: WebhookRecord) -> int:
        return await asyncio.to_thread(self._insert_sync, record)

    async def update(
        self,
        request_id: str,
        response_payload: str | None,
        http_status: int,
        duration_ms: int | None,
    ) -> bool:
        return await asyncio.to_thread(
            self._update_sync, request_id, response_payload, http_status, duration_ms,
        )

    async def get(self, request_id: str) -> WebhookRecord | None:
        return await asyncio.to_thread(self._get_sync, request_id)

    async def recent(self, limit: int = 50, endpoint: str | None = None) -> list[WebhookRecord]:
        return await asyncio.to_thread(self._recent_sync, limit, endpoint)

    async def ping(self) -> None:
        await asyncio.to_thread(self._ping_sync)


def _to_record(row: dict[str, Any]) -> WebhookRecord:
    return WebhookRecord.model_validate(row)
