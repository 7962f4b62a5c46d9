"""
CLI utility helpers: context construction, the connect/run/close cycle and
output formatting.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from pharos.core.connection import ConnectionConfig, InMemoryConfigStore
from pharos.core.errors import PharosError
from pharos.core.secrets import InMemorySecretStore
from pharos.ops.connections import connect
from pharos.ops.context import OperationContext
from pharos.ops.result import OperationResult, fail_from
from pharos.query.models import QueryResult

CLI_CONNECTION_ID = "cli"

console = Console()
err_console = Console(stderr=True)


# ── Context helpers ──────────────────────────────────────────────────────


def make_context(url: str) -> OperationContext:
    """Create an ``OperationContext`` holding the one CLI connection."""
    config, password = ConnectionConfig.from_url(url, name=CLI_CONNECTION_ID)
    secrets = {CLI_CONNECTION_ID: password} if password else {}
    return OperationContext(
        config_store=InMemoryConfigStore({CLI_CONNECTION_ID: config}),
        secret_store=InMemorySecretStore(secrets),
        caller="cli",
    )


async def _connected(
    ctx: OperationContext,
    operation: Callable[[OperationContext], Awaitable[OperationResult]],
) -> OperationResult:
    connected = await connect(ctx, CLI_CONNECTION_ID)
    if not connected.success:
        return connected
    try:
        return await operation(ctx)
    finally:
        await ctx.close()


def run_operation(
    url: str | None,
    operation: Callable[[OperationContext], Awaitable[OperationResult]],
) -> OperationResult:
    """Connect to ``url``, run one operation, disconnect."""
    if not url:
        return OperationResult.fail("CONFIG_ERROR", "No connection URL; pass --url or set PHAROS_URL")
    try:
        ctx = make_context(url)
    except PharosError as exc:
        return fail_from(exc)
    return asyncio.run(_connected(ctx, operation))


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert a payload to a plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": obj}


def fail(result: OperationResult) -> None:
    """Print the error of a failed result and exit with status 1."""
    msg = result.error.message if result.error else "Unknown error"
    err_console.print(f"[bold red]Error:[/bold red] {msg}", highlight=False)
    raise typer.Exit(code=1)


def output_result(
    result: OperationResult,
    *,
    as_json: bool = False,
    title: str = "",
) -> None:
    """Render an ``OperationResult`` to the terminal."""
    if not result.success:
        fail(result)

    if as_json:
        console.print_json(json.dumps(result.to_dict(), default=str))
        return

    data = result.data
    if isinstance(data, QueryResult):
        _print_rows(data, title=title)
    else:
        _print_dict(_to_dict(data), title=title)
    for warning in result.warnings:
        err_console.print(f"[yellow]Warning:[/yellow] {warning}", highlight=False)


# ── Private helpers ──────────────────────────────────────────────────────


def _cell(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, dict | list):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def _print_rows(result: QueryResult, *, title: str = "") -> None:
    """Render a page of rows as a Rich table."""
    if not result.columns:
        console.print("[dim]No rows.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in result.columns:
        table.add_column(f"{col.name}\n[dim]{col.data_type}[/dim]", overflow="fold")
    for row in result.rows:
        table.add_row(*(_cell(row[col.name]) for col in result.columns))
    console.print(table)

    more = ", more available" if result.has_more else ""
    console.print(f"\n[dim]{result.row_count} row(s) in {result.execution_time_ms} ms{more}[/dim]")


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {_cell(v)}", highlight=False)
