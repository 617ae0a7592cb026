"""Tests for dbmigrate.schema and dbmigrate.literal - option models and validation."""

import pytest

from dbmigrate.exceptions import InvalidOptionError, SchemaError
from dbmigrate.literal import Literal
from dbmigrate.schema import (
    Column,
    ColumnType,
    ForeignKey,
    ForeignKeyAction,
    Index,
    IndexType,
    TableOptions,
    TableSpec,
)


# ── Literal ──────────────────────────────────────────────────────────


class TestLiteral:
    def test_str_is_verbatim(self):
        assert str(Literal("CHAR(3) BINARY")) == "CHAR(3) BINARY"

    def test_equality_and_hash(self):
        assert Literal("x") == Literal.from_("x")
        assert len({Literal("x"), Literal("x")}) == 1

    def test_not_equal_to_plain_string(self):
        assert Literal("x") != "x"

    def test_accepted_as_column_type(self):
        column = Column.build("code", Literal("CHAR(3) BINARY"))
        assert column.is_literal_type
        assert column.type == Literal("CHAR(3) BINARY")


# ── Column ───────────────────────────────────────────────────────────


class TestColumn:
    def test_defaults(self):
        column = Column.build("email", "string")
        assert column.type == "string"
        assert column.null is False
        assert column.limit is None
        assert column.signed is True

    def test_enum_type_unwrapped(self):
        assert Column.build("n", ColumnType.INTEGER).type == "integer"

    def test_length_alias(self):
        assert Column.build("s", "string", length=40).limit == 40

    def test_values_from_comma_string(self):
        column = Column.build("state", "enum", values="one, two,three")
        assert column.values == ("one", "two", "three")

    def test_values_from_list(self):
        assert Column.build("state", "set", values=["a", "b"]).values == ("a", "b")

    def test_unknown_option_rejected(self):
        with pytest.raises(InvalidOptionError, match='"nullable" is not a valid column option') as exc_info:
            Column.build("email", "string", nullable=True)
        assert exc_info.value.column == "email"
        assert exc_info.value.details

    def test_wrong_type_rejected(self):
        with pytest.raises(InvalidOptionError):
            Column.build("n", "integer", limit="big")

    def test_frozen(self):
        column = Column.build("n", "integer")
        with pytest.raises(Exception):
            column.name = "m"

    def test_with_name(self):
        column = Column.build("a", "string", null=True).with_name("b")
        assert column.name == "b"
        assert column.null is True

    def test_first_marker(self):
        assert Column.build("a", "string", after=Column.FIRST).after == Column.FIRST


# ── Index ────────────────────────────────────────────────────────────


class TestIndex:
    def test_single_column_becomes_tuple(self):
        assert Index.build("email").columns == ("email",)

    def test_unique_shorthand(self):
        index = Index.build(["a", "b"], unique=True)
        assert index.type == IndexType.UNIQUE
        assert index.is_unique

    def test_unique_false_keeps_plain_index(self):
        assert Index.build("a", unique=False).type == IndexType.INDEX

    def test_order_normalized(self):
        index = Index.build(["a", "b"], order={"a": "desc"})
        assert index.column_order("a") == "DESC"
        assert index.column_order("b") is None

    def test_bad_order_rejected(self):
        with pytest.raises(InvalidOptionError):
            Index.build("a", order={"a": "sideways"})

    def test_per_column_limit(self):
        index = Index.build(["a", "b"], limit={"a": 10, "b": 0})
        assert index.column_limit("a") == 10
        assert index.column_limit("b") is None

    def test_needs_columns_or_name(self):
        with pytest.raises(InvalidOptionError):
            Index.build(None)

    def test_name_only(self):
        assert Index.build(None, name="by_email").name == "by_email"

    def test_unknown_option_rejected(self):
        with pytest.raises(InvalidOptionError, match="not a valid index option"):
            Index.build("a", concurrently=True)


# ── ForeignKey ───────────────────────────────────────────────────────


class TestForeignKey:
    def test_defaults_to_id(self):
        fk = ForeignKey.build("user_id", "users")
        assert fk.columns == ("user_id",)
        assert fk.referenced_columns == ("id",)

    def test_actions_parsed(self):
        fk = ForeignKey.build("user_id", "users", delete="set_null", update="cascade")
        assert fk.on_delete is ForeignKeyAction.SET_NULL
        assert fk.on_update is ForeignKeyAction.CASCADE

    def test_unknown_action_rejected(self):
        with pytest.raises(InvalidOptionError):
            ForeignKey.build("user_id", "users", on_delete="explode")

    def test_arity_mismatch(self):
        with pytest.raises(SchemaError, match="references 1 column"):
            ForeignKey.build(["a", "b"], "other", "id", table="t")

    def test_default_constraint_name(self):
        fk = ForeignKey.build(["a", "b"], "other", ["x", "y"])
        assert fk.constraint_name("t") == "t_a_b_fkey"

    def test_explicit_constraint_name(self):
        fk = ForeignKey.build("a", "other", constraint="fk_custom")
        assert fk.constraint_name("t") == "fk_custom"


# ── TableOptions / TableSpec ─────────────────────────────────────────


class TestTableOptions:
    def test_default_id(self):
        options = TableOptions.build()
        assert options.id_column() == "id"
        assert options.primary_key_columns() == ("id",)

    def test_custom_id_name(self):
        assert TableOptions.build(id="user_id").primary_key_columns() == ("user_id",)

    def test_no_id_with_composite_key(self):
        options = TableOptions.build(id=False, primary_key=["a", "b"])
        assert options.id_column() is None
        assert options.primary_key_columns() == ("a", "b")

    def test_no_id_no_key(self):
        assert TableOptions.build(id=False).primary_key_columns() is None

    def test_id_conflicts_with_other_key(self):
        options = TableOptions.build(primary_key="code")
        with pytest.raises(SchemaError, match="auto incrementing ID field and a primary key"):
            options.primary_key_columns(table="t")

    def test_unknown_option_rejected(self):
        with pytest.raises(InvalidOptionError, match='"engine_name" is not a valid table option'):
            TableOptions.build(table="t", engine_name="InnoDB")


class TestTableSpec:
    def test_plain_name(self):
        spec = TableSpec("users")
        assert spec.schema is None
        assert spec.table_name == "users"

    def test_schema_qualified(self):
        spec = TableSpec("app.users")
        assert spec.schema == "app"
        assert spec.table_name == "users"

    def test_with_name_keeps_options(self):
        spec = TableSpec("a", TableOptions.build(id=False)).with_name("b")
        assert spec.name == "b"
        assert spec.options.id is False
