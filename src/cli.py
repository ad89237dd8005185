"""Click CLI for inspecting the webhook audit store and backend responses."""

from __future__ import annotations

import asyncio
import json
import os
from typing import IO

import click

from src.audit.store import SQLiteAuditStore
from src.remote.normalizer import normalize


@click.group()
@click.option(
    "--db",
    default=lambda: os.environ.get("AUDIT_DB_PATH", "data/webhooks.db"),
    show_default="$AUDIT_DB_PATH or data/webhooks.db",
    help="Audit database path.",
)
@click.pass_context
def cli(ctx: click.Context, db: str) -> None:
    """fm-webhooks relay CLI."""
    ctx.ensure_object(dict)
    ctx.obj["db"] = db


def _store(ctx: click.Context) -> SQLiteAuditStore:
    return SQLiteAuditStore(ctx.obj["db"])


@cli.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the audit table if it does not exist."""
    store = _store(ctx)
    click.echo(f"Audit store ready: {store.db_path}")


@cli.command()
@click.option("--limit", default=20, show_default=True, type=click.IntRange(1, 500))
@click.option("--endpoint", default=None, help="Only records for this endpoint.")
@click.pass_context
def logs(ctx: click.Context, limit: int, endpoint: str | None) -> None:
    """List the most recent webhook records."""
    records = asyncio.run(_store(ctx).recent(limit=limit, endpoint=endpoint))
    click.echo(json.dumps([r.model_dump() for r in records], indent=2))


@cli.command()
@click.argument("request_id")
@click.pass_context
def show(ctx: click.Context, request_id: str) -> None:
    """Show one webhook record by request id."""
    record = asyncio.run(_store(ctx).get(request_id))
    if record is None:
        click.echo(f"No record for request id: {request_id}", err=True)
        ctx.exit(1)
    click.echo(record.model_dump_json(indent=2))


@cli.command("normalize")
@click.argument("response_file", type=click.File("r"))
@click.option("--status", default=200, show_default=True, type=click.IntRange(100, 599),
              help="Transport status of the saved response.")
def normalize_command(response_file: IO[str], status: int) -> None:
    """Show how a saved backend response would be relayed."""
    try:
        raw = json.load(response_file)
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"Response file is not valid JSON: {exc}") from exc
    result = normalize(raw, status)
    click.echo(result.model_dump_json(indent=2))
