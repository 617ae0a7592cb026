"""Tests for dbmigrate.table - the fluent Table handle against in-memory SQLite."""

from __future__ import annotations

import pytest

from dbmigrate.actions import AddColumn, RenameColumn
from dbmigrate.exceptions import (
    ColumnNotFoundError,
    ConfigurationError,
    IndexNotFoundError,
    InvalidColumnTypeError,
    SchemaError,
    UnsupportedFeatureError,
)
from dbmigrate.schema import Column
from dbmigrate.table import Table


def _rows(adapter, table: str) -> list[dict]:
    return adapter.fetch_all(f'SELECT * FROM "{table}" ORDER BY 1')


def _users(adapter) -> Table:
    table = Table("users", adapter=adapter)
    table.add_column("email", "string", limit=190).add_column("age", "integer", null=True).create()
    return table


# ── Construction ─────────────────────────────────────────────────────


class TestConstruction:
    def test_options_validated(self):
        with pytest.raises(SchemaError):
            Table("t", engine_name="InnoDB")

    def test_adapter_required_for_io(self):
        with pytest.raises(ConfigurationError, match="no database adapter"):
            Table("t").exists()

    def test_set_adapter(self, sqlite):
        table = Table("t").set_adapter(sqlite)
        assert table.adapter is sqlite

    def test_mutators_record_actions(self, sqlite):
        table = Table("users", adapter=sqlite).add_column("email", "string").rename_column("email", "mail")
        assert [type(a) for a in table.intent] == [AddColumn, RenameColumn]
        assert table.has_pending_actions()

    def test_invalid_column_type(self, sqlite):
        with pytest.raises(InvalidColumnTypeError, match='invalid column type "jsonb"'):
            Table("t", adapter=sqlite).add_column("doc", "jsonb")

    def test_add_column_instance(self, sqlite):
        table = Table("t", adapter=sqlite).add_column_instance(Column.build("a", "string"))
        assert table.intent.actions[0].column.name == "a"


# ── Create / update ──────────────────────────────────────────────────


class TestCreate:
    def test_creates_with_id(self, sqlite):
        _users(sqlite)
        assert sqlite.has_table("users")
        columns = {c.name: c for c in Table("users", adapter=sqlite).get_columns()}
        assert list(columns) == ["id", "email", "age"]
        assert columns["id"].identity
        assert columns["email"].type == "string"
        assert columns["email"].limit == 190
        assert columns["age"].null is True

    def test_without_id_and_composite_key(self, sqlite):
        table = Table("pairs", adapter=sqlite, id=False, primary_key=["a", "b"])
        table.add_column("a", "integer").add_column("b", "integer").create()
        assert table.has_primary_key(["a", "b"])
        assert not table.has_column("id")

    def test_index_created(self, sqlite):
        table = Table("users", adapter=sqlite)
        table.add_column("email", "string").add_index("email", unique=True).create()
        assert table.has_index("email")
        assert table.has_index_by_name("users_email")

    def test_save_creates_then_updates(self, sqlite):
        table = Table("users", adapter=sqlite)
        table.add_column("email", "string").save()
        table.add_column("nickname", "string", null=True).save()
        assert table.has_column("nickname")

    def test_save_is_idempotent(self, sqlite):
        table = Table("users", adapter=sqlite)
        table.add_column("email", "string").save()
        table.save()
        assert not table.has_pending_actions()

    def test_timestamps(self, sqlite):
        table = Table("posts", adapter=sqlite)
        table.add_timestamps().create()
        created = table.get_column("created_at")
        updated = table.get_column("updated_at")
        assert created.default == "CURRENT_TIMESTAMP"
        assert created.null is False
        assert updated.null is True

    def test_timestamps_custom_names(self, sqlite):
        table = Table("posts", adapter=sqlite).add_timestamps("born", None)
        assert [a.column.name for a in table.intent] == ["born"]

    def test_timestamps_with_timezone(self, sqlite):
        table = Table("posts", adapter=sqlite).add_timestamps_with_timezone()
        assert all(a.column.timezone for a in table.intent)

    def test_timestamps_both_disabled(self, sqlite):
        with pytest.raises(SchemaError, match="Cannot set both"):
            Table("posts", adapter=sqlite).add_timestamps(None, None)


class TestUpdate:
    def test_add_column_keeps_rows(self, sqlite):
        table = _users(sqlite)
        table.insert({"email": "a@example.com"}).save()
        table.add_column("active", "boolean", default=True).update()
        assert _rows(sqlite, "users")[0]["active"] == 1

    def test_add_column_after(self, sqlite):
        table = _users(sqlite)
        table.add_column("name", "string", null=True, after="id").update()
        assert [c.name for c in table.get_columns()] == ["id", "name", "email", "age"]

    def test_remove_column_keeps_rows(self, sqlite):
        table = _users(sqlite)
        table.insert({"email": "a@example.com", "age": 3}).save()
        table.remove_column("age").update()
        assert not table.has_column("age")
        assert _rows(sqlite, "users") == [{"id": 1, "email": "a@example.com"}]

    def test_rename_column(self, sqlite):
        table = _users(sqlite)
        table.rename_column("email", "mail").update()
        assert table.has_column("mail")
        assert not table.has_column("email")

    def test_rename_missing_column(self, sqlite):
        table = _users(sqlite)
        with pytest.raises(ColumnNotFoundError, match="doesn't exist: nope"):
            table.rename_column("nope", "yes").update()

    def test_rename_of_column_added_in_same_update(self, sqlite):
        table = _users(sqlite)
        table.add_column("nick", "string", null=True).rename_column("nick", "nickname").update()
        assert table.has_column("nickname")

    def test_change_column(self, sqlite):
        table = _users(sqlite)
        table.insert({"email": "a@example.com", "age": 30}).save()
        table.change_column("age", "string", null=True).update()
        column = table.get_column("age")
        assert column.type == "string"
        assert _rows(sqlite, "users")[0]["age"] == "30"

    def test_remove_index(self, sqlite):
        table = Table("users", adapter=sqlite)
        table.add_column("email", "string").add_index("email").create()
        table.remove_index("email").update()
        assert not table.has_index("email")

    def test_remove_composite_index(self, sqlite):
        table = Table("users", adapter=sqlite)
        table.add_column("fname", "string").add_column("lname", "string")
        table.add_index(["fname", "lname"], name="multiname").create()
        with pytest.raises(IndexNotFoundError, match="on columns 'fname' does not exist"):
            Table("users", adapter=sqlite).remove_index("fname").update()
        assert table.has_index(["fname", "lname"])

        Table("users", adapter=sqlite).remove_index(["fname", "lname"]).update()
        assert not table.has_index(["fname", "lname"])
        assert not table.has_index_by_name("multiname")

    def test_remove_missing_index(self, sqlite):
        table = _users(sqlite)
        with pytest.raises(IndexNotFoundError, match="on columns 'email' does not exist"):
            table.remove_index("email").update()

    def test_remove_missing_index_if_exists(self, sqlite):
        table = _users(sqlite)
        table.remove_index_by_name("nope", if_exists=True).update()

    def test_foreign_keys(self, sqlite):
        Table("groups", adapter=sqlite).add_column("name", "string").create()
        table = _users(sqlite)
        table.add_column("group_id", "integer", null=True).add_foreign_key("group_id", "groups").update()
        assert table.has_foreign_key("group_id")
        assert table.has_foreign_key("group_id", "users_group_id_fkey")
        table.drop_foreign_key("group_id").update()
        assert not table.has_foreign_key("group_id")

    def test_named_foreign_key(self, sqlite):
        Table("groups", adapter=sqlite).add_column("name", "string").create()
        table = Table("users", adapter=sqlite)
        table.add_column("group_id", "integer").add_foreign_key_with_name(
            "fk_users_group", "group_id", "groups", delete="cascade"
        ).create()
        assert table.has_foreign_key("group_id", "fk_users_group")

    def test_change_primary_key(self, sqlite):
        table = Table("codes", adapter=sqlite, id=False)
        table.add_column("code", "string").add_column("label", "string").create()
        table.change_primary_key("code").update()
        assert table.has_primary_key("code")

    def test_change_comment_unsupported(self, sqlite):
        table = _users(sqlite)
        with pytest.raises(UnsupportedFeatureError):
            table.change_comment("people").update()


# ── Table-level ──────────────────────────────────────────────────────


class TestTableLevel:
    def test_rename_retargets_handle(self, sqlite):
        table = _users(sqlite)
        table.rename("people").update()
        assert table.name == "people"
        assert sqlite.has_table("people")
        assert not sqlite.has_table("users")
        table.add_column("nickname", "string", null=True).update()
        assert sqlite.has_column("people", "nickname")

    def test_drop(self, sqlite):
        table = _users(sqlite)
        table.drop().save()
        assert not sqlite.has_table("users")

    def test_truncate(self, sqlite):
        table = _users(sqlite)
        table.insert([{"email": "a"}, {"email": "b"}]).save()
        table.truncate()
        assert _rows(sqlite, "users") == []
        table.insert({"email": "c"}).save()
        assert _rows(sqlite, "users")[0]["id"] == 1


# ── Data ─────────────────────────────────────────────────────────────


class TestData:
    def test_bulk_insert(self, sqlite):
        table = _users(sqlite)
        table.insert([{"email": "a", "age": 1}, {"email": "b", "age": None}]).save()
        rows = _rows(sqlite, "users")
        assert [(r["email"], r["age"]) for r in rows] == [("a", 1), ("b", None)]

    def test_mixed_keys_inserted_row_by_row(self, sqlite):
        table = _users(sqlite)
        table.insert([{"email": "a"}, {"email": "b", "age": 2}]).save()
        assert len(_rows(sqlite, "users")) == 2

    def test_empty_rows_skipped(self, sqlite):
        table = _users(sqlite)
        table.insert([{}, {"email": "a"}])
        assert table.data == [{"email": "a"}]

    def test_insert_or_ignore(self, sqlite):
        table = Table("users", adapter=sqlite)
        table.add_column("email", "string").add_index("email", unique=True).create()
        table.insert({"email": "a"}).save()
        table.insert_or_ignore([{"email": "a"}, {"email": "b"}]).save()
        assert [r["email"] for r in _rows(sqlite, "users")] == ["a", "b"]

    def test_data_saved_with_create(self, sqlite):
        table = Table("flags", adapter=sqlite)
        table.add_column("name", "string").add_column("on", "boolean").insert(
            {"name": "beta", "on": True}
        ).create()
        assert _rows(sqlite, "flags") == [{"id": 1, "name": "beta", "on": 1}]
        assert table.data == []

    def test_reset_clears_everything(self, sqlite):
        table = Table("t", adapter=sqlite).add_column("a", "string").insert({"a": "x"})
        table.reset()
        assert not table.has_pending_actions()
