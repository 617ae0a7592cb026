"""PostgreSQL adapter (psycopg2 driver)."""

from __future__ import annotations

import re
from typing import Any, Sequence

from dbmigrate.adapters.base import AlterInstructions, PrimaryKeyInfo, SqlAdapter, SqlType
from dbmigrate.exceptions import ColumnNotFoundError
from dbmigrate.literal import Literal
from dbmigrate.schema import Column, ColumnType, ForeignKey, Index, IndexType, SizeTier, TableSpec

INT_LIMITS = {
    SizeTier.SMALL: 32767,
    SizeTier.REGULAR: 2147483647,
    SizeTier.BIG: 9223372036854775807,
}

_SQL_TYPES = {
    ColumnType.TEXT.value: "text",
    ColumnType.INTEGER.value: "integer",
    ColumnType.TINY_INTEGER.value: "smallint",
    ColumnType.SMALL_INTEGER.value: "smallint",
    ColumnType.BIG_INTEGER.value: "bigint",
    ColumnType.BOOLEAN.value: "boolean",
    ColumnType.FLOAT.value: "real",
    ColumnType.DOUBLE.value: "double precision",
    ColumnType.DECIMAL.value: "decimal",
    ColumnType.DATETIME.value: "timestamp",
    ColumnType.TIMESTAMP.value: "timestamp",
    ColumnType.TIME.value: "time",
    ColumnType.DATE.value: "date",
    ColumnType.BINARY.value: "bytea",
    ColumnType.VARBINARY.value: "bytea",
    ColumnType.BLOB.value: "bytea",
    ColumnType.TINY_BLOB.value: "bytea",
    ColumnType.MEDIUM_BLOB.value: "bytea",
    ColumnType.LONG_BLOB.value: "bytea",
    ColumnType.UUID.value: "uuid",
    ColumnType.BINARY_UUID.value: "uuid",
    ColumnType.JSON.value: "json",
    ColumnType.JSONB.value: "jsonb",
    ColumnType.INTERVAL.value: "interval",
    ColumnType.CIDR.value: "cidr",
    ColumnType.INET.value: "inet",
    ColumnType.MACADDR.value: "macaddr",
    ColumnType.GEOMETRY.value: "geography",
    ColumnType.POINT.value: "geography",
    ColumnType.LINESTRING.value: "geography",
    ColumnType.POLYGON.value: "geography",
}

# Types PostgreSQL does not accept a length for.
_UNSIZED = frozenset(
    {
        "text",
        "integer",
        "smallint",
        "bigint",
        "boolean",
        "real",
        "double precision",
        "bytea",
        "uuid",
        "json",
        "jsonb",
        "interval",
        "cidr",
        "inet",
        "macaddr",
        "date",
    }
)

_SEMANTIC_TYPES = {
    "character varying": ColumnType.STRING,
    "character": ColumnType.CHAR,
    "text": ColumnType.TEXT,
    "integer": ColumnType.INTEGER,
    "smallint": ColumnType.SMALL_INTEGER,
    "bigint": ColumnType.BIG_INTEGER,
    "boolean": ColumnType.BOOLEAN,
    "real": ColumnType.FLOAT,
    "double precision": ColumnType.DOUBLE,
    "numeric": ColumnType.DECIMAL,
    "timestamp without time zone": ColumnType.DATETIME,
    "timestamp with time zone": ColumnType.DATETIME,
    "time without time zone": ColumnType.TIME,
    "time with time zone": ColumnType.TIME,
    "date": ColumnType.DATE,
    "bytea": ColumnType.BINARY,
    "uuid": ColumnType.UUID,
    "json": ColumnType.JSON,
    "jsonb": ColumnType.JSONB,
    "interval": ColumnType.INTERVAL,
    "cidr": ColumnType.CIDR,
    "inet": ColumnType.INET,
    "macaddr": ColumnType.MACADDR,
    "bit": ColumnType.BIT,
}

_QUOTED_DEFAULT_RE = re.compile(r"^'((?:[^']|'')*)'(?:::[\w\s]+)?$")


class PostgresAdapter(SqlAdapter):
    name = "pgsql"
    label = "PostgreSQL"
    drivername = "postgresql+psycopg2"
    DRIVER_ATTRIBUTES = {
        "timeout": "connect_timeout",
        "connect_timeout": "connect_timeout",
        "sslmode": "sslmode",
        "sslrootcert": "sslrootcert",
        "application_name": "application_name",
        "options": "options",
    }
    COLUMN_TYPES = frozenset(
        {ColumnType.STRING.value, ColumnType.CHAR.value, ColumnType.BIT.value, *_SQL_TYPES}
    )
    SIZE_LIMITS = {"int": INT_LIMITS}

    def _on_connect(self) -> None:
        if self._options.schema_name:
            self.connection.exec_driver_sql(
                f"SET search_path TO {self.quote_column_name(self._options.schema_name)}"
            )

    @property
    def default_schema(self) -> str:
        return self._options.schema_name or "public"

    def _split_name(self, table_name: str) -> tuple[str, str]:
        if "." in table_name:
            schema, name = table_name.split(".", 1)
            return schema, name
        return self.default_schema, table_name

    def cast_to_bool(self, value: Any) -> Any:
        return bool(value)

    def quote_bytes(self, value: bytes) -> str:
        return f"'\\x{value.hex()}'::bytea"

    def insert_statement(
        self, table: TableSpec, columns: Sequence[str], ignore_duplicates: bool
    ) -> tuple[str, str]:
        head = f"INSERT INTO {self.quote_table_name(table.name)} ({self.column_list(columns)})"
        return head, " ON CONFLICT DO NOTHING" if ignore_duplicates else ""

    def truncate_table(self, table_name: str) -> None:
        self.execute(f"TRUNCATE TABLE {self.quote_table_name(table_name)} RESTART IDENTITY")

    # ── Types ─────────────────────────────────────────────────────────

    def get_sql_type(self, type: str | Literal, limit: int | None = None) -> SqlType:
        if isinstance(type, Literal):
            return SqlType(str(type))
        type = getattr(type, "value", type)
        if type == ColumnType.STRING:
            return SqlType("character varying", limit or 255)
        if type == ColumnType.CHAR:
            return SqlType("character", limit or 255)
        if type == ColumnType.BIT:
            return SqlType("bit", limit or 1)
        if type == ColumnType.INTEGER and limit == INT_LIMITS[SizeTier.SMALL]:
            return SqlType("smallint")
        if type in _SQL_TYPES:
            return SqlType(_SQL_TYPES[type])
        raise self._unsupported_type(type)

    def _type_definition(self, column: Column) -> str:
        if column.identity:
            return "BIGSERIAL" if column.type == ColumnType.BIG_INTEGER else "SERIAL"
        if column.is_literal_type:
            return str(column.type)
        sql_type = self.get_sql_type(column.type, column.limit)
        parts = [sql_type.name.upper()]
        if sql_type.name == "decimal" and (column.precision or column.scale):
            parts.append(f"({column.precision or 10}, {column.scale or 0})")
        elif sql_type.name in ("time", "timestamp"):
            if column.precision is not None:
                parts.append(f"({column.precision})")
            if column.timezone:
                parts.append("WITH TIME ZONE")
        elif sql_type.name == "geography":
            parts.append(f"({column.type.upper()}, {column.srid or 4326})")
        elif sql_type.name not in _UNSIZED and sql_type.limit is not None:
            parts.append(f"({sql_type.limit})")
        return " ".join(parts)

    def column_sql_definition(self, column: Column) -> str:
        parts = [self._type_definition(column), "NULL" if column.null else "NOT NULL"]
        default = self.get_default_value_definition(column.default, column.type).strip()
        if default:
            parts.append(default)
        return " ".join(parts)

    def _column_comment(self, table_name: str, column: Column) -> str:
        comment = self.quote_string(column.comment) if column.comment else "NULL"
        return (
            f"COMMENT ON COLUMN {self.quote_table_name(table_name)}."
            f"{self.quote_column_name(column.name)} IS {comment}"
        )

    def _index_name(self, table_name: str, index: Index) -> str:
        return index.name or f"{table_name.split('.')[-1]}_{'_'.join(index.columns or ())}"

    def _create_index_statement(self, table_name: str, index: Index) -> str:
        unique = "UNIQUE " if index.type == IndexType.UNIQUE else ""
        columns = []
        for column in index.columns or ():
            part = self.quote_column_name(column)
            order = index.column_order(column)
            if order:
                part += f" {order}"
            columns.append(part)
        return (
            f"CREATE {unique}INDEX {self.quote_column_name(self._index_name(table_name, index))} "
            f"ON {self.quote_table_name(table_name)} ({', '.join(columns)})"
        )

    def create_table_statements(
        self, table: TableSpec, columns: Sequence[Column], indexes: Sequence[Index]
    ) -> list[str]:
        options = table.options
        primary_key = options.primary_key_columns(table=table.name)
        columns = self.table_columns(table, columns)

        sql = f"CREATE TABLE {self.quote_table_name(table.name)} ("
        sql += ", ".join(
            f"{self.quote_column_name(c.name)} {self.column_sql_definition(c)}" for c in columns
        )
        if primary_key:
            sql += (
                f", CONSTRAINT {self.quote_column_name(table.table_name + '_pkey')}"
                f" PRIMARY KEY ({self.column_list(primary_key)})"
            )
        sql += ")"

        statements = [sql]
        if options.comment:
            statements.append(
                f"COMMENT ON TABLE {self.quote_table_name(table.name)} IS "
                f"{self.quote_string(options.comment)}"
            )
        statements.extend(
            self._column_comment(table.name, c) for c in columns if c.comment
        )
        statements.extend(self._create_index_statement(table.name, i) for i in indexes)
        return statements

    # ── Introspection ─────────────────────────────────────────────────

    def _has_table(self, table_name: str) -> bool:
        schema, name = self._split_name(table_name)
        row = self.fetch_row(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = :schema AND table_name = :name",
            {"schema": schema, "name": name},
        )
        return row is not None

    def get_columns(self, table_name: str) -> list[Column]:
        schema, name = self._split_name(table_name)
        rows = self.fetch_all(
            "SELECT column_name, data_type, udt_name, is_nullable, column_default, "
            "character_maximum_length, numeric_precision, numeric_scale, datetime_precision "
            "FROM information_schema.columns "
            "WHERE table_schema = :schema AND table_name = :name ORDER BY ordinal_position",
            {"schema": schema, "name": name},
        )
        return [self._column_from_row(row) for row in rows]

    def _column_from_row(self, row: dict[str, Any]) -> Column:
        data_type = row["data_type"]
        options: dict[str, Any] = {"null": row["is_nullable"] == "YES"}
        column_type: Any = _SEMANTIC_TYPES.get(data_type)
        if column_type is None:
            column_type = Literal(data_type)
        if column_type in (ColumnType.STRING, ColumnType.CHAR):
            length = row.get("character_maximum_length")
            options["limit"] = None if length == 255 else length
        elif column_type == ColumnType.DECIMAL:
            options["precision"] = row.get("numeric_precision")
            options["scale"] = row.get("numeric_scale")
        if "with time zone" in data_type:
            options["timezone"] = True

        default = row.get("column_default")
        if isinstance(default, str) and default.startswith("nextval("):
            options["identity"] = True
        elif isinstance(default, str):
            match = _QUOTED_DEFAULT_RE.match(default)
            if match:
                options["default"] = match.group(1).replace("''", "'")
            elif default.lower() in ("true", "false"):
                options["default"] = default.lower() == "true"
            else:
                options["default"] = Literal(default)
        return Column.build(row["column_name"], column_type, **options)

    def get_indexes(self, table_name: str) -> dict[str, list[str]]:
        schema, name = self._split_name(table_name)
        rows = self.fetch_all(
            "SELECT i.relname AS index_name, a.attname AS column_name "
            "FROM pg_class t "
            "JOIN pg_namespace n ON n.oid = t.relnamespace "
            "JOIN pg_index ix ON t.oid = ix.indrelid "
            "JOIN pg_class i ON i.oid = ix.indexrelid "
            "JOIN LATERAL unnest(ix.indkey) WITH ORDINALITY AS k(attnum, ord) ON true "
            "JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = k.attnum "
            "WHERE t.relkind = 'r' AND n.nspname = :schema AND t.relname = :name "
            "ORDER BY i.relname, k.ord",
            {"schema": schema, "name": name},
        )
        indexes: dict[str, list[str]] = {}
        for row in rows:
            indexes.setdefault(row["index_name"], []).append(row["column_name"])
        return indexes

    def _constraints(self, table_name: str, constraint_type: str) -> dict[str, list[str]]:
        schema, name = self._split_name(table_name)
        rows = self.fetch_all(
            "SELECT tc.constraint_name, kcu.column_name "
            "FROM information_schema.table_constraints tc "
            "JOIN information_schema.key_column_usage kcu "
            "ON tc.constraint_name = kcu.constraint_name AND tc.table_schema = kcu.table_schema "
            "WHERE tc.constraint_type = :type AND tc.table_schema = :schema "
            "AND tc.table_name = :name ORDER BY kcu.ordinal_position",
            {"type": constraint_type, "schema": schema, "name": name},
        )
        constraints: dict[str, list[str]] = {}
        for row in rows:
            constraints.setdefault(row["constraint_name"], []).append(row["column_name"])
        return constraints

    def get_primary_key(self, table_name: str) -> PrimaryKeyInfo:
        for constraint, columns in self._constraints(table_name, "PRIMARY KEY").items():
            return PrimaryKeyInfo(constraint, tuple(columns))
        return PrimaryKeyInfo(None, ())

    def get_foreign_keys(self, table_name: str) -> dict[str, list[str]]:
        return self._constraints(table_name, "FOREIGN KEY")

    # ── ALTER instructions ────────────────────────────────────────────

    def get_add_column_instructions(self, table: TableSpec, column: Column) -> AlterInstructions:
        instructions = AlterInstructions(
            [f"ADD {self.quote_column_name(column.name)} {self.column_sql_definition(column)}"]
        )
        if column.comment:
            instructions.post_steps.append(self._column_comment(table.name, column))
        return instructions

    def get_drop_column_instructions(self, table_name: str, column_name: str) -> AlterInstructions:
        return AlterInstructions([f"DROP COLUMN {self.quote_column_name(column_name)}"])

    def get_rename_column_instructions(
        self, table_name: str, column_name: str, new_name: str
    ) -> AlterInstructions:
        if not self.has_column(table_name, column_name):
            raise ColumnNotFoundError(
                f"The specified column doesn't exist: {column_name}",
                table=table_name,
                column=column_name,
            )
        return AlterInstructions(
            post_steps=[
                f"ALTER TABLE {self.quote_table_name(table_name)} RENAME COLUMN "
                f"{self.quote_column_name(column_name)} TO {self.quote_column_name(new_name)}"
            ]
        )

    def get_change_column_instructions(
        self, table_name: str, column_name: str, column: Column
    ) -> AlterInstructions:
        quoted = self.quote_column_name(column_name)
        type_definition = self._type_definition(column.model_copy(update={"identity": False}))
        instructions = AlterInstructions(
            [
                f"ALTER {quoted} TYPE {type_definition} USING ({quoted}::{type_definition})",
                f"ALTER {quoted} {'DROP' if column.null else 'SET'} NOT NULL",
            ]
        )
        default = self.get_default_value_definition(column.default, column.type).strip()
        instructions.alter_parts.append(
            f"ALTER {quoted} SET {default}" if default else f"ALTER {quoted} DROP DEFAULT"
        )
        if column.name != column_name:
            instructions.merge(
                self.get_rename_column_instructions(table_name, column_name, column.name)
            )
        if column.comment:
            instructions.post_steps.append(self._column_comment(table_name, column))
        return instructions

    def get_add_index_instructions(self, table: TableSpec, index: Index) -> AlterInstructions:
        return AlterInstructions(post_steps=[self._create_index_statement(table.name, index)])

    def _drop_index_statement(self, table_name: str, index_name: str) -> str:
        schema, _ = self._split_name(table_name)
        return f"DROP INDEX IF EXISTS {self.quote_table_name(f'{schema}.{index_name}')}"

    def get_drop_index_by_columns_instructions(
        self, table_name: str, columns: Sequence[str]
    ) -> AlterInstructions | None:
        name = self.find_index_name(table_name, columns)
        if name is None:
            return None
        return AlterInstructions(post_steps=[self._drop_index_statement(table_name, name)])

    def get_drop_index_by_name_instructions(
        self, table_name: str, index_name: str
    ) -> AlterInstructions | None:
        if not self.has_index_by_name(table_name, index_name):
            return None
        return AlterInstructions(post_steps=[self._drop_index_statement(table_name, index_name)])

    def get_add_foreign_key_instructions(
        self, table: TableSpec, foreign_key: ForeignKey
    ) -> AlterInstructions:
        return AlterInstructions(
            [f"ADD{self.get_foreign_key_sql_definition(foreign_key, table.table_name)}"]
        )

    def get_drop_foreign_key_instructions(
        self, table_name: str, foreign_key: ForeignKey
    ) -> AlterInstructions:
        constraint = self._foreign_key_constraint(table_name, foreign_key)
        return AlterInstructions([f"DROP CONSTRAINT {self.quote_column_name(constraint)}"])

    def get_rename_table_instructions(self, table_name: str, new_name: str) -> AlterInstructions:
        return AlterInstructions(
            post_steps=[
                f"ALTER TABLE {self.quote_table_name(table_name)} "
                f"RENAME TO {self.quote_column_name(new_name.split('.')[-1])}"
            ]
        )

    def get_change_primary_key_instructions(
        self, table: TableSpec, new_columns: Sequence[str] | None
    ) -> AlterInstructions:
        instructions = AlterInstructions()
        current = self.get_primary_key(table.name)
        if current.constraint:
            instructions.alter_parts.append(
                f"DROP CONSTRAINT {self.quote_column_name(current.constraint)}"
            )
        if new_columns:
            instructions.alter_parts.append(
                f"ADD CONSTRAINT {self.quote_column_name(table.table_name + '_pkey')} "
                f"PRIMARY KEY ({self.column_list(new_columns)})"
            )
        return instructions

    def get_change_comment_instructions(
        self, table: TableSpec, comment: str | None
    ) -> AlterInstructions:
        value = self.quote_string(comment) if comment else "NULL"
        return AlterInstructions(
            post_steps=[f"COMMENT ON TABLE {self.quote_table_name(table.name)} IS {value}"]
        )
