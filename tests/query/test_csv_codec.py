"""Tests for CSV cell encoding and import statement building."""

import datetime
import decimal

import pytest

from pharos.core.errors import IdentifierError, ValidationError
from pharos.query.csv_codec import (
    build_export_select,
    build_insert_statement,
    cast_type_for,
    decode_csv_record,
    encode_csv_value,
    iter_csv_rows,
)
from pharos.query.metadata import ColumnInfo
from pharos.query.models import ColumnDescriptor


def column(name: str, data_type: str, position: int = 1) -> ColumnInfo:
    return ColumnInfo(
        name=name, data_type=data_type, is_nullable=True, is_primary_key=False, ordinal_position=position
    )


class TestCastTypes:
    @pytest.mark.parametrize(
        "data_type,expected",
        [
            ("character varying(255)", "text"),
            ("numeric(10,2)", "numeric"),
            ("Timestamp With Time Zone", "timestamptz"),
            ("int4", "integer"),
            ("integer[]", "integer[]"),
            ("_int4", "_int4"),
            ("hstore", "hstore"),
        ],
    )
    def test_cast_type_for(self, data_type, expected):
        assert cast_type_for(data_type) == expected


class TestEncode:
    def test_null_spelling(self):
        assert encode_csv_value(None, "INT4") == "NULL"
        assert encode_csv_value(None, "INT4", null_as_empty=True) == ""

    @pytest.mark.parametrize(
        "value,type_name,expected",
        [
            (0.10000000149011612, "FLOAT4", "0.1"),
            (2.0, "FLOAT8", "2"),
            (float("nan"), "FLOAT8", "NaN"),
            (decimal.Decimal("1.50"), "NUMERIC", "1.50"),
            (True, "BOOL", "true"),
            (datetime.date(2024, 1, 31), "DATE", "2024-01-31"),
            (datetime.datetime(2024, 1, 31, 8, 5), "TIMESTAMP", "2024-01-31 08:05:00"),
            ({"a": [1, 2]}, "JSONB", '{"a":[1,2]}'),
            ("plain", "JSON", '"plain"'),
            ([1, 2], "_INT4", "{1,2}"),
            ("plain", "TEXT", "plain"),
        ],
    )
    def test_cells(self, value, type_name, expected):
        assert encode_csv_value(value, type_name) == expected

    def test_timestamptz_is_utc(self):
        value = datetime.datetime(2024, 1, 31, 8, 0, tzinfo=datetime.timezone(datetime.timedelta(hours=1)))
        assert encode_csv_value(value, "TIMESTAMPTZ") == "2024-01-31T07:00:00+00:00"

    def test_rows_with_header(self):
        columns = [ColumnDescriptor("id", "INT4"), ColumnDescriptor("note", "TEXT")]
        rows = list(iter_csv_rows(columns, [(1, None), (2, "x")], null_as_empty=True))
        assert rows == [["id", "note"], ["1", ""], ["2", "x"]]

    def test_rows_without_header(self):
        rows = list(iter_csv_rows([ColumnDescriptor("id", "INT4")], [(1,)], include_headers=False))
        assert rows == [["1"]]


class TestStatements:
    def test_export_select_all(self):
        assert build_export_select("public", "items") == 'SELECT * FROM "public"."items"'

    def test_export_select_columns(self):
        assert build_export_select("sales-2024", "items", ["id", "name"]) == (
            'SELECT "id", "name" FROM "sales-2024"."items"'
        )

    def test_export_rejects_bad_column(self):
        with pytest.raises(IdentifierError, match="column"):
            build_export_select("public", "items", ["id; drop"])

    def test_insert(self):
        sql = build_insert_statement(
            "public", "items", [column("id", "integer"), column("label", "character varying(20)", 2)]
        )
        assert sql == 'INSERT INTO "public"."items" ("id", "label") VALUES ($1::text::integer, $2::text::text)'

    def test_insert_needs_columns(self):
        with pytest.raises(ValidationError, match="Table public.items has no columns"):
            build_insert_statement("public", "items", [])


class TestDecodeRecord:
    def test_empty_fields_are_null(self):
        assert decode_csv_record(["1", "", "x"], [column("a", "int"), column("b", "text"), column("c", "text")]) == [
            "1",
            None,
            "x",
        ]

    def test_width_mismatch(self):
        with pytest.raises(ValidationError, match="CSV row has 1 columns but table has 2 columns"):
            decode_csv_record(["1"], [column("a", "int"), column("b", "text")])
