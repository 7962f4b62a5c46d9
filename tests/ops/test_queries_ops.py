"""Tests for query operations and their error envelopes."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import asyncpg
import pytest
from conftest import CONNECTION_ID, column_row

from pharos.core.errors import ErrorCategory
from pharos.ops import queries
from pharos.ops.requests import (
    AnalyzeEditabilityRequest,
    CancelQueryRequest,
    CommitEditsRequest,
    ExecuteQueryRequest,
    ExecuteStatementRequest,
    FetchMoreRequest,
    ValidateSqlRequest,
)
from pharos.query.metadata import COLUMNS_SQL

SQL = "SELECT id FROM users"


class TestExecuteQuery:
    @pytest.mark.asyncio
    async def test_success(self, ctx, conn):
        conn.add_statement(SQL, [("id", "int4")], [(1,), (2,)])

        result = await queries.execute_query(ctx, ExecuteQueryRequest(CONNECTION_ID, SQL, limit=1))

        assert result.success is True
        assert result.data.rows == [{"id": 1}]
        assert result.data.has_more is True
        assert result.to_dict()["data"]["row_count"] == 1

    @pytest.mark.asyncio
    async def test_not_connected(self, ctx):
        result = await queries.execute_query(ctx, ExecuteQueryRequest("elsewhere", SQL))
        assert result.success is False
        assert result.error.code == "NOT_CONNECTED"
        assert result.error.message == "Not connected to: elsewhere"
        assert result.error.details == {"connection_id": "elsewhere"}

    @pytest.mark.asyncio
    async def test_bad_schema(self, ctx, pool):
        result = await queries.execute_query(ctx, ExecuteQueryRequest(CONNECTION_ID, SQL, schema="a;b"))
        assert result.error.code == "VALIDATION_FAILED"
        assert pool.acquired == 0

    @pytest.mark.asyncio
    async def test_cancelled(self, ctx, conn, registry):
        conn.add_statement(SQL, [("id", "int4")], [(1,), (2,)], on_row=lambda i: registry.request_cancel("q-7"))

        result = await queries.execute_query(ctx, ExecuteQueryRequest(CONNECTION_ID, SQL, query_id="q-7"))

        assert result.success is False
        assert result.data is None
        assert result.error.code == "CANCELLED"
        assert result.error.category is ErrorCategory.CANCELLED

    @pytest.mark.asyncio
    async def test_query_failure_is_redacted(self, ctx, conn):
        conn.statements[SQL] = asyncpg.exceptions.PostgresError("could not open postgresql://bob:s3cret@db/app")

        result = await queries.execute_query(ctx, ExecuteQueryRequest(CONNECTION_ID, SQL))

        assert result.error.code == "QUERY_FAILED"
        assert "s3cret" not in result.error.message
        assert "[credentials]" in result.error.message

    @pytest.mark.asyncio
    async def test_connection_failure_is_retryable(self, ctx, pool):
        pool.acquire_error = asyncio.TimeoutError()
        result = await queries.execute_query(ctx, ExecuteQueryRequest(CONNECTION_ID, SQL))
        assert result.error.code == "CONNECTION_FAILED"
        assert result.error.retryable is True

    @pytest.mark.asyncio
    async def test_unexpected_error_is_internal(self, ctx):
        with patch.object(ctx.executor, "execute", new=AsyncMock(side_effect=RuntimeError("boom"))):
            result = await queries.execute_query(ctx, ExecuteQueryRequest(CONNECTION_ID, SQL))
        assert result.error.code == "INTERNAL"
        assert result.error.message == "Failed to execute query: boom"


class TestOtherQueryOps:
    @pytest.mark.asyncio
    async def test_fetch_more(self, ctx, conn):
        conn.add_statement(
            "SELECT * FROM (SELECT id FROM users) AS _pharos_page LIMIT 11 OFFSET 10",
            [("id", "int4")],
            [(11,)],
        )
        result = await queries.fetch_more(ctx, FetchMoreRequest(CONNECTION_ID, SQL, limit=10, offset=10))
        assert result.data.rows == [{"id": 11}]
        assert result.data.has_more is False

    @pytest.mark.asyncio
    async def test_execute_statement(self, ctx, conn):
        conn.execute_results["DELETE FROM users"] = "DELETE 4"
        result = await queries.execute_statement(ctx, ExecuteStatementRequest(CONNECTION_ID, "DELETE FROM users"))
        assert result.data.rows_affected == 4

    @pytest.mark.asyncio
    async def test_cancel_unknown_query(self, ctx):
        result = await queries.cancel_query(ctx, CancelQueryRequest(CONNECTION_ID, "nope"))
        assert result.error.code == "QUERY_NOT_FOUND"
        assert result.error.details == {"query_id": "nope"}

    @pytest.mark.asyncio
    async def test_invalid_sql_is_successful_call(self, ctx, conn):
        conn.statements["SELEC 1"] = asyncpg.exceptions.PostgresSyntaxError('syntax error at or near "SELEC"')
        result = await queries.validate_sql(ctx, ValidateSqlRequest(CONNECTION_ID, "SELEC 1"))
        assert result.success is True
        assert result.data.valid is False
        assert result.data.error.message.startswith("syntax error")

    @pytest.mark.asyncio
    async def test_analyze_editability(self, ctx, conn):
        conn.fetch_results[COLUMNS_SQL] = [column_row("id", "integer", 1, primary_key=True)]
        result = await queries.analyze_editability(ctx, AnalyzeEditabilityRequest(CONNECTION_ID, SQL))
        assert result.data.is_editable is True
        assert result.data.primary_keys == ["id"]


class TestCommitEdits:
    @pytest.mark.asyncio
    async def test_rolled_back_batch_is_reported_in_payload(self, ctx, conn):
        conn.fetch_results[COLUMNS_SQL] = [column_row("id", "integer", 1, primary_key=True)]
        conn.execute_results['DELETE FROM "public"."users" WHERE "id" = $1::text::integer'] = (
            asyncpg.exceptions.ForeignKeyViolationError("violates foreign key constraint")
        )

        result = await queries.commit_edits(
            ctx,
            CommitEditsRequest(
                CONNECTION_ID,
                "public",
                "users",
                ["id"],
                [{"type": "delete", "originalRow": {"id": 1}}],
            ),
        )

        assert result.success is True
        assert result.data.success is False
        assert result.data.rows_affected == 0
        assert result.warnings == ["violates foreign key constraint"]

    @pytest.mark.asyncio
    async def test_unknown_edit_type(self, ctx):
        result = await queries.commit_edits(
            ctx,
            CommitEditsRequest(CONNECTION_ID, "public", "users", ["id"], [{"type": "upsert", "originalRow": {}}]),
        )
        assert result.error.code == "VALIDATION_FAILED"
        assert "Unknown edit type" in result.error.message

    @pytest.mark.asyncio
    async def test_missing_table_is_commit_failure(self, ctx):
        result = await queries.commit_edits(
            ctx,
            CommitEditsRequest(CONNECTION_ID, "public", "ghosts", ["id"], [{"type": "delete", "originalRow": {"id": 1}}]),
        )
        assert result.error.code == "COMMIT_FAILED"
        assert result.error.message == "Table not found: public.ghosts"
