"""Tests for dbmigrate.actions - construction, descriptions and inversion."""

import pytest

from dbmigrate.actions import (
    AddColumn,
    AddForeignKey,
    AddIndex,
    ChangeColumn,
    ChangeComment,
    ChangePrimaryKey,
    CreateTable,
    DropForeignKey,
    DropIndex,
    DropTable,
    RemoveColumn,
    RenameColumn,
    RenameTable,
    retarget,
)
from dbmigrate.exceptions import IrreversibleActionError
from dbmigrate.schema import TableSpec

T = TableSpec("users")


# ── Builders ─────────────────────────────────────────────────────────


class TestBuilders:
    def test_add_column(self):
        action = AddColumn.build(T, "email", "string", limit=190)
        assert action.column.name == "email"
        assert action.column.limit == 190

    def test_change_column_keeps_name(self):
        action = ChangeColumn.build(T, "email", "text")
        assert action.column_name == "email"
        assert action.column.name == "email"

    def test_add_index_from_string(self):
        assert AddIndex.build(T, "email").index.columns == ("email",)

    def test_drop_index_by_name(self):
        action = DropIndex.build_by_name(T, "by_email", if_exists=True)
        assert action.index.name == "by_email"
        assert action.if_exists

    def test_add_foreign_key(self):
        action = AddForeignKey.build(T, "group_id", "groups", delete="cascade")
        assert action.foreign_key.referenced_table == "groups"
        assert action.foreign_key.on_delete.value == "CASCADE"

    def test_drop_foreign_key_by_constraint(self):
        action = DropForeignKey.build(T, "group_id", "users_group")
        assert action.foreign_key.columns == ("group_id",)
        assert action.foreign_key.constraint == "users_group"

    def test_retarget(self):
        action = retarget(RemoveColumn(T, "a"), TableSpec("people"))
        assert action.table.name == "people"
        assert action.column_name == "a"


# ── Inversion ────────────────────────────────────────────────────────


class TestInvert:
    def test_create_table_drops(self):
        assert CreateTable(T).invert() == DropTable(T)

    def test_rename_table(self):
        inverted = RenameTable(T, "people").invert()
        assert inverted.table.name == "people"
        assert inverted.new_name == "users"

    def test_add_column_removes(self):
        action = AddColumn.build(T, "email", "string")
        assert action.invert() == RemoveColumn(T, "email")

    def test_rename_column(self):
        assert RenameColumn(T, "a", "b").invert() == RenameColumn(T, "b", "a")

    def test_add_index_by_columns(self):
        inverted = AddIndex.build(T, ["a", "b"], unique=True).invert()
        assert isinstance(inverted, DropIndex)
        assert inverted.index.columns == ("a", "b")

    def test_add_index_by_name(self):
        inverted = AddIndex.build(T, "a", name="ix_a").invert()
        assert inverted.index.name == "ix_a"

    def test_add_foreign_key(self):
        action = AddForeignKey.build(T, "group_id", "groups")
        assert action.invert() == DropForeignKey(T, action.foreign_key)

    @pytest.mark.parametrize(
        "action",
        [
            DropTable(T),
            RemoveColumn(T, "a"),
            ChangeColumn.build(T, "a", "string"),
            DropIndex.build(T, "a"),
            DropForeignKey.build(T, "a"),
            ChangePrimaryKey(T, ("a",)),
            ChangeComment(T, "hello"),
        ],
    )
    def test_irreversible(self, action):
        with pytest.raises(IrreversibleActionError, match="cannot be reversed") as exc_info:
            action.invert()
        assert exc_info.value.table == "users"


class TestDescribe:
    def test_add_column(self):
        assert AddColumn.build(T, "email", "string").describe() == "Add column email to users"

    def test_drop_index_by_columns(self):
        assert DropIndex.build(T, ["a", "b"]).describe() == "Drop index on (a, b) from users"

    def test_primary_key_none(self):
        assert ChangePrimaryKey(T, None).describe() == "Change primary key of users to (none)"
