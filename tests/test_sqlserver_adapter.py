"""Tests for dbmigrate.adapters.sqlserver - rendering in dry-run mode."""

from __future__ import annotations

import io

import pytest

from dbmigrate.adapters import SqlServerAdapter
from dbmigrate.exceptions import UnsupportedFeatureError
from dbmigrate.schema import Column, TableSpec
from dbmigrate.table import Table


@pytest.fixture
def mssql_dry(monkeypatch, output: io.StringIO) -> SqlServerAdapter:
    adapter = SqlServerAdapter({"name": "dbmigrate_test"}, output=output, dry_run=True)
    monkeypatch.setattr(adapter, "_has_table", lambda name: False)
    monkeypatch.setattr(adapter, "fetch_all", lambda sql, params=None: [])
    monkeypatch.setattr(adapter, "fetch_row", lambda sql, params=None: None)
    return adapter


def _lines(output) -> list[str]:
    return output.getvalue().splitlines()


class TestCreateTable:
    def test_identity_and_named_key(self, mssql_dry, output):
        Table("users", adapter=mssql_dry).add_column("email", "string").create()
        assert _lines(output) == [
            "CREATE TABLE [users] ([id] INT NOT NULL IDENTITY(1, 1), [email] NVARCHAR(255) NOT NULL, "
            "CONSTRAINT [PK_users] PRIMARY KEY ([id]));"
        ]

    def test_index_follows(self, mssql_dry, output):
        Table("users", adapter=mssql_dry).add_column("email", "string").add_index("email", unique=True).create()
        assert _lines(output)[1] == "CREATE UNIQUE INDEX [users_email] ON [users] ([email]);"

    def test_table_comment_uses_extended_property(self, mssql_dry, output):
        Table("users", adapter=mssql_dry, id=False, comment="people").add_column("a", "integer").create()
        assert _lines(output)[1] == (
            "EXEC sys.sp_addextendedproperty @name = N'MS_Description', @value = N'people', "
            "@level0type = N'SCHEMA', @level0name = N'dbo', "
            "@level1type = N'TABLE', @level1name = N'users';"
        )


class TestColumns:
    @pytest.mark.parametrize(
        ("column", "expected"),
        [
            (Column.build("a", "text"), "NVARCHAR(MAX) NOT NULL"),
            (Column.build("a", "boolean", default=False), "BIT NOT NULL DEFAULT 0"),
            (Column.build("a", "decimal", precision=12), "DECIMAL(12, 0) NOT NULL"),
            (Column.build("a", "uuid", null=True), "UNIQUEIDENTIFIER NULL"),
            (Column.build("a", "string", default="x"), "NVARCHAR(255) NOT NULL DEFAULT N'x'"),
        ],
    )
    def test_definition(self, mssql_dry, column, expected):
        assert mssql_dry.column_sql_definition(column) == expected


class TestAlter:
    def test_parts_run_as_separate_statements(self, mssql_dry, output):
        Table("users", adapter=mssql_dry).add_column("a", "integer", null=True).add_column(
            "b", "integer", null=True
        ).update()
        assert _lines(output) == [
            "ALTER TABLE [users] ADD [a] INT NULL;",
            "ALTER TABLE [users] ADD [b] INT NULL;",
        ]

    def test_drop_column_drops_default_first(self, mssql_dry, output):
        Table("users", adapter=mssql_dry).remove_column("a").update()
        lines = _lines(output)
        assert lines[0].startswith("DECLARE @constraint NVARCHAR(256);")
        assert lines[1] == "ALTER TABLE [users] DROP COLUMN [a];"

    def test_rename_table(self, mssql_dry, output):
        Table("users", adapter=mssql_dry).rename("people").update()
        assert _lines(output) == ["EXEC sp_rename N'users', N'people';"]

    def test_change_primary_key(self, mssql_dry, output):
        Table("users", adapter=mssql_dry).change_primary_key("code").update()
        assert _lines(output) == ["ALTER TABLE [users] ADD CONSTRAINT [PK_users] PRIMARY KEY ([code]);"]


class TestData:
    def test_insert_or_ignore_unsupported(self, mssql_dry):
        with pytest.raises(UnsupportedFeatureError):
            mssql_dry.insert(TableSpec("users"), {"a": 1}, ignore_duplicates=True)

    def test_values(self, mssql_dry, output):
        mssql_dry.insert(TableSpec("users"), {"a": "it's", "b": b"\xff", "c": True})
        assert _lines(output) == ["INSERT INTO [users] ([a], [b], [c]) VALUES (N'it''s', 0xff, 1);"]

    def test_transaction_statements(self, mssql_dry, output):
        mssql_dry.begin_transaction()
        mssql_dry.rollback_transaction()
        assert _lines(output) == ["BEGIN TRANSACTION;", "ROLLBACK TRANSACTION;"]
