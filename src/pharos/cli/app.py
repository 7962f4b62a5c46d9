"""
Root Typer application for the pharos CLI.

Each command connects to ``--url`` (or ``PHAROS_URL``), runs one operation
through :mod:`pharos.ops`, and disconnects.
"""

from __future__ import annotations

import csv
import sys
from pathlib import Path

import typer
from typer import Typer

from pharos import __version__
from pharos.cli.utils import CLI_CONNECTION_ID, console, fail, output_result, run_operation
from pharos.core.logging import configure_logging
from pharos.core.settings import get_settings

app = Typer(
    name="pharos",
    help="pharos: run SQL against PostgreSQL from the terminal.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

_URL = typer.Option(None, "--url", "-u", envvar="PHAROS_URL", help="postgresql:// connection URL")
_SCHEMA = typer.Option(None, "--schema", "-s", help="Schema to put first on the search_path")
_JSON = typer.Option(False, "--json", help="JSON output")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    """pharos CLI: query, execute, validate and inspect editability."""
    settings = get_settings()
    configure_logging(level="DEBUG" if verbose else settings.log_level, json_format=settings.log_json)


@app.command()
def query(
    sql: str = typer.Argument(..., help="SELECT statement"),
    url: str | None = _URL,
    limit: int | None = typer.Option(None, "--limit", "-n", help="Maximum rows to return"),
    offset: int = typer.Option(0, "--offset", help="Rows to skip"),
    schema: str | None = _SCHEMA,
    json_out: bool = _JSON,
) -> None:
    """Run a query and print one page of rows."""
    from pharos.ops.queries import execute_query, fetch_more
    from pharos.ops.requests import ExecuteQueryRequest, FetchMoreRequest

    if offset:
        request = FetchMoreRequest(CLI_CONNECTION_ID, sql, limit=limit, offset=offset, schema=schema)
        result = run_operation(url, lambda ctx: fetch_more(ctx, request))
    else:
        first = ExecuteQueryRequest(CLI_CONNECTION_ID, sql, limit=limit, schema=schema)
        result = run_operation(url, lambda ctx: execute_query(ctx, first))
    output_result(result, as_json=json_out)


@app.command("exec")
def exec_statement(
    sql: str = typer.Argument(..., help="Statement that returns no rows"),
    url: str | None = _URL,
    schema: str | None = _SCHEMA,
    json_out: bool = _JSON,
) -> None:
    """Execute a statement and print the affected row count."""
    from pharos.ops.queries import execute_statement
    from pharos.ops.requests import ExecuteStatementRequest

    request = ExecuteStatementRequest(CLI_CONNECTION_ID, sql, schema=schema)
    result = run_operation(url, lambda ctx: execute_statement(ctx, request))
    output_result(result, as_json=json_out, title="Statement")


@app.command()
def validate(
    sql: str = typer.Argument(..., help="Statement to check"),
    url: str | None = _URL,
    schema: str | None = _SCHEMA,
    json_out: bool = _JSON,
) -> None:
    """Check syntax on the server without executing. Exits 1 when invalid."""
    from pharos.ops.queries import validate_sql
    from pharos.ops.requests import ValidateSqlRequest

    request = ValidateSqlRequest(CLI_CONNECTION_ID, sql, schema=schema)
    result = run_operation(url, lambda ctx: validate_sql(ctx, request))
    output_result(result, as_json=json_out, title="Validation")
    if result.data is not None and not result.data.valid:
        raise typer.Exit(code=1)


@app.command()
def editable(
    sql: str = typer.Argument(..., help="SELECT statement"),
    url: str | None = _URL,
    schema: str | None = _SCHEMA,
    json_out: bool = _JSON,
) -> None:
    """Report whether the query's rows can be edited in place."""
    from pharos.ops.queries import analyze_editability
    from pharos.ops.requests import AnalyzeEditabilityRequest

    request = AnalyzeEditabilityRequest(CLI_CONNECTION_ID, sql, schema=schema)
    result = run_operation(url, lambda ctx: analyze_editability(ctx, request))
    output_result(result, as_json=json_out, title="Editability")


@app.command()
def export(
    schema: str = typer.Argument(..., help="Schema name"),
    table: str = typer.Argument(..., help="Table name"),
    url: str | None = _URL,
    columns: list[str] | None = typer.Option(None, "--column", "-c", help="Column to export (repeatable)"),
    headers: bool = typer.Option(True, "--headers/--no-headers", help="Write a header row"),
    null_as_empty: bool = typer.Option(False, "--null-as-empty", help="Write NULL as an empty field"),
) -> None:
    """Write a table to stdout as CSV."""
    from pharos.ops.requests import ExportTableRequest
    from pharos.ops.tables import export_table

    request = ExportTableRequest(
        CLI_CONNECTION_ID,
        schema,
        table,
        columns=list(columns or []),
        include_headers=headers,
        null_as_empty=null_as_empty,
    )
    result = run_operation(url, lambda ctx: export_table(ctx, request))
    if not result.success:
        fail(result)
    writer = csv.writer(sys.stdout, lineterminator="\n")
    writer.writerows(result.data or [])


@app.command("import")
def import_csv(
    schema: str = typer.Argument(..., help="Schema name"),
    table: str = typer.Argument(..., help="Table name"),
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="CSV file"),
    url: str | None = _URL,
    has_headers: bool = typer.Option(True, "--headers/--no-headers", help="First row is a header"),
    json_out: bool = _JSON,
) -> None:
    """Insert the rows of a CSV file into a table, all or nothing."""
    from pharos.ops.requests import ImportTableRequest
    from pharos.ops.tables import import_table

    with file.open(newline="", encoding="utf-8") as fh:
        records = list(csv.reader(fh))
    if has_headers and records:
        records = records[1:]

    request = ImportTableRequest(CLI_CONNECTION_ID, schema, table, records=records)
    result = run_operation(url, lambda ctx: import_table(ctx, request))
    if json_out or not result.success:
        output_result(result, as_json=json_out)
        return
    console.print(f"Imported {result.data} row(s) into {schema}.{table}")


@app.command()
def clone(
    source_schema: str = typer.Argument(..., help="Schema of the table to copy"),
    source_table: str = typer.Argument(..., help="Table to copy"),
    target_schema: str = typer.Argument(..., help="Schema for the new table"),
    target_table: str = typer.Argument(..., help="Name of the new table"),
    url: str | None = _URL,
    include_data: bool = typer.Option(False, "--data", help="Copy the rows as well as the structure"),
    json_out: bool = _JSON,
) -> None:
    """Create a table with the structure of another, optionally with its rows."""
    from pharos.ops.requests import CloneTableRequest
    from pharos.ops.tables import clone_table

    request = CloneTableRequest(
        CLI_CONNECTION_ID,
        source_schema,
        source_table,
        target_schema,
        target_table,
        include_data=include_data,
    )
    result = run_operation(url, lambda ctx: clone_table(ctx, request))
    output_result(result, as_json=json_out, title="Clone")


@app.command()
def version() -> None:
    """Show the pharos version."""
    typer.echo(f"pharos {__version__}")
