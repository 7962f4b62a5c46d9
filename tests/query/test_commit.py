"""Tests for the commit engine (grid edits applied in one transaction)."""

from __future__ import annotations

import asyncpg
import pytest
from conftest import CONNECTION_ID, column_row

from pharos.core.errors import CommitError, IdentifierError, NotConnectedError, ValidationError
from pharos.query.commit import CommitEngine, bind_text
from pharos.query.metadata import COLUMNS_SQL, ColumnInfo
from pharos.query.models import CommitRequest, DeleteEdit, UpdateEdit

ITEM_COLUMNS = [
    column_row("id", "integer", 1, primary_key=True, nullable=False),
    column_row("name", "text", 2),
    column_row("price", "numeric(10,2)", 3),
    column_row("tags", "text[]", 4),
]

UPDATE_SQL = (
    'UPDATE "public"."items" SET "name" = $1::text::text, "price" = $2::text::numeric(10,2) '
    'WHERE "id" = $3::text::integer'
)
DELETE_SQL = 'DELETE FROM "public"."items" WHERE "id" = $1::text::integer'


def request(*edits, primary_keys=("id",)) -> CommitRequest:
    return CommitRequest(schema="public", table="items", primary_keys=list(primary_keys), edits=list(edits))


@pytest.fixture()
def engine(registry, settings, conn) -> CommitEngine:
    conn.fetch_results[COLUMNS_SQL] = ITEM_COLUMNS
    return CommitEngine(registry, settings)


class TestBindText:
    @pytest.mark.parametrize(
        "value,sql_type,expected",
        [
            (True, "boolean", "true"),
            (3, "integer", "3"),
            (9.5, "numeric", "9.5"),
            ("x", "text", "x"),
            ({"a": 1}, "jsonb", '{"a":1}'),
            ([1, None], "integer[]", "{1,NULL}"),
            ([1, 2], "jsonb", "[1,2]"),
        ],
    )
    def test_text_forms(self, value, sql_type, expected):
        assert bind_text(value, sql_type) == expected


class TestBuildStatement:
    def _columns(self):
        return {
            row["column_name"]: ColumnInfo(
                name=row["column_name"],
                data_type=row["data_type"],
                is_nullable=row["is_nullable"],
                is_primary_key=row["is_primary_key"],
                ordinal_position=row["ordinal_position"],
            )
            for row in ITEM_COLUMNS
        }

    def test_update(self, engine):
        edit = UpdateEdit(row_index=0, changes={"name": "Widget", "price": 9.5}, original_row={"id": 7, "name": "w"})
        sql, params = engine.build_statement(request(edit), self._columns(), edit)
        assert sql == UPDATE_SQL
        assert params == ["Widget", "9.5", "7"]

    def test_update_to_null(self, engine):
        edit = UpdateEdit(row_index=0, changes={"name": None}, original_row={"id": 7})
        sql, params = engine.build_statement(request(edit), self._columns(), edit)
        assert sql == 'UPDATE "public"."items" SET "name" = NULL WHERE "id" = $1::text::integer'
        assert params == ["7"]

    def test_null_key_uses_is_null(self, engine):
        edit = DeleteEdit(row_index=0, original_row={"id": None})
        sql, params = engine.build_statement(request(edit), self._columns(), edit)
        assert sql == 'DELETE FROM "public"."items" WHERE "id" IS NULL'
        assert params == []

    def test_empty_update_is_skipped(self, engine):
        edit = UpdateEdit(row_index=0, changes={}, original_row={"id": 7})
        assert engine.build_statement(request(edit), self._columns(), edit) is None

    def test_unknown_column(self, engine):
        edit = UpdateEdit(row_index=0, changes={"colour": "red"}, original_row={"id": 7})
        with pytest.raises(CommitError, match="Unknown column 'colour'"):
            engine.build_statement(request(edit), self._columns(), edit)


class TestCommit:
    @pytest.mark.asyncio
    async def test_applies_all_edits(self, engine, conn, pool):
        conn.execute_results[UPDATE_SQL] = "UPDATE 1"
        conn.execute_results[DELETE_SQL] = "DELETE 1"
        outcome = await engine.commit(
            CONNECTION_ID,
            request(
                UpdateEdit(row_index=0, changes={"name": "Widget", "price": "9.50"}, original_row={"id": 7}),
                DeleteEdit(row_index=1, original_row={"id": 8}),
            ),
        )

        assert outcome.success is True
        assert outcome.rows_affected == 2
        assert conn.transactions == ["begin", "commit"]
        assert [args for sql, args in conn.executed if sql != COLUMNS_SQL] == [("Widget", "9.50", "7"), ("8",)]
        assert pool.released == 1

    @pytest.mark.asyncio
    async def test_second_edit_failure_rolls_back(self, engine, conn):
        conn.execute_results[UPDATE_SQL] = "UPDATE 1"
        conn.execute_results[DELETE_SQL] = asyncpg.exceptions.ForeignKeyViolationError(
            'update or delete on table "items" violates foreign key constraint'
        )

        outcome = await engine.commit(
            CONNECTION_ID,
            request(
                UpdateEdit(row_index=0, changes={"name": "a", "price": 1}, original_row={"id": 1}),
                DeleteEdit(row_index=1, original_row={"id": 2}),
            ),
        )

        assert outcome.success is False
        assert outcome.rows_affected == 0
        assert outcome.errors == ['update or delete on table "items" violates foreign key constraint']
        assert conn.transactions == ["begin", "rollback"]

    @pytest.mark.asyncio
    async def test_deferred_failure_at_commit(self, engine, conn):
        conn.commit_error = asyncpg.exceptions.UniqueViolationError("duplicate key value")
        outcome = await engine.commit(CONNECTION_ID, request(DeleteEdit(row_index=0, original_row={"id": 2})))
        assert outcome.success is False
        assert outcome.errors == ["duplicate key value"]

    @pytest.mark.asyncio
    async def test_missing_key_in_original_row(self, engine, conn):
        outcome = await engine.commit(CONNECTION_ID, request(DeleteEdit(row_index=0, original_row={"name": "x"})))
        assert outcome.success is False
        assert outcome.errors == ["Primary key 'id' not found in original row"]
        assert conn.transactions == ["begin", "rollback"]

    @pytest.mark.asyncio
    async def test_no_edits_is_noop(self, engine, pool):
        outcome = await engine.commit(CONNECTION_ID, request())
        assert outcome.success is True
        assert pool.acquired == 0

    @pytest.mark.asyncio
    async def test_primary_keys_required(self, engine, pool):
        with pytest.raises(ValidationError, match="primary key"):
            await engine.commit(CONNECTION_ID, request(DeleteEdit(row_index=0, original_row={}), primary_keys=()))
        assert pool.acquired == 0

    @pytest.mark.asyncio
    async def test_bad_table_name(self, engine):
        bad = CommitRequest(schema="public", table="items;drop", primary_keys=["id"], edits=[])
        with pytest.raises(IdentifierError):
            await engine.commit(CONNECTION_ID, bad)

    @pytest.mark.asyncio
    async def test_table_not_found(self, engine, conn, pool):
        conn.fetch_results[COLUMNS_SQL] = []
        with pytest.raises(CommitError, match="Table not found: public.items"):
            await engine.commit(CONNECTION_ID, request(DeleteEdit(row_index=0, original_row={"id": 1})))
        assert pool.released == 1

    @pytest.mark.asyncio
    async def test_not_connected(self, engine):
        with pytest.raises(NotConnectedError):
            await engine.commit("elsewhere", request(DeleteEdit(row_index=0, original_row={"id": 1})))
