"""SQL Server adapter (pyodbc driver)."""

from __future__ import annotations

from typing import Any, Sequence

from dbmigrate.adapters.base import AlterInstructions, PrimaryKeyInfo, SqlAdapter, SqlType
from dbmigrate.exceptions import ColumnNotFoundError, UnsupportedFeatureError
from dbmigrate.literal import Literal
from dbmigrate.schema import Column, ColumnType, ForeignKey, Index, IndexType, TableSpec

DEFAULT_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"

_SQL_TYPES = {
    ColumnType.TEXT.value: "nvarchar(max)",
    ColumnType.INTEGER.value: "int",
    ColumnType.TINY_INTEGER.value: "tinyint",
    ColumnType.SMALL_INTEGER.value: "smallint",
    ColumnType.BIG_INTEGER.value: "bigint",
    ColumnType.FLOAT.value: "float",
    ColumnType.DOUBLE.value: "float",
    ColumnType.DECIMAL.value: "decimal",
    ColumnType.DATETIME.value: "datetime2",
    ColumnType.TIMESTAMP.value: "datetime2",
    ColumnType.TIME.value: "time",
    ColumnType.DATE.value: "date",
    ColumnType.BLOB.value: "varbinary(max)",
    ColumnType.TINY_BLOB.value: "varbinary(max)",
    ColumnType.MEDIUM_BLOB.value: "varbinary(max)",
    ColumnType.LONG_BLOB.value: "varbinary(max)",
    ColumnType.BOOLEAN.value: "bit",
    ColumnType.UUID.value: "uniqueidentifier",
    ColumnType.BINARY_UUID.value: "uniqueidentifier",
    ColumnType.JSON.value: "nvarchar(max)",
    ColumnType.GEOMETRY.value: "geometry",
}

_SEMANTIC_TYPES = {
    "nvarchar": ColumnType.STRING,
    "varchar": ColumnType.STRING,
    "nchar": ColumnType.CHAR,
    "char": ColumnType.CHAR,
    "ntext": ColumnType.TEXT,
    "text": ColumnType.TEXT,
    "int": ColumnType.INTEGER,
    "tinyint": ColumnType.TINY_INTEGER,
    "smallint": ColumnType.SMALL_INTEGER,
    "bigint": ColumnType.BIG_INTEGER,
    "float": ColumnType.FLOAT,
    "decimal": ColumnType.DECIMAL,
    "numeric": ColumnType.DECIMAL,
    "datetime": ColumnType.DATETIME,
    "datetime2": ColumnType.DATETIME,
    "time": ColumnType.TIME,
    "date": ColumnType.DATE,
    "binary": ColumnType.BINARY,
    "varbinary": ColumnType.VARBINARY,
    "bit": ColumnType.BOOLEAN,
    "uniqueidentifier": ColumnType.UUID,
    "geometry": ColumnType.GEOMETRY,
}


class SqlServerAdapter(SqlAdapter):
    name = "sqlsrv"
    label = "SQL Server"
    drivername = "mssql+pyodbc"
    IDENTIFIER_QUOTE = ("[", "]")
    BEGIN_SQL = "BEGIN TRANSACTION"
    COMMIT_SQL = "COMMIT TRANSACTION"
    ROLLBACK_SQL = "ROLLBACK TRANSACTION"
    DRIVER_ATTRIBUTES = {
        "timeout": "timeout",
        "readonly": "readonly",
        "ansi": "ansi",
    }
    COLUMN_TYPES = frozenset(
        {
            ColumnType.STRING.value,
            ColumnType.CHAR.value,
            ColumnType.BINARY.value,
            ColumnType.VARBINARY.value,
            *_SQL_TYPES,
        }
    )

    def _url_query(self) -> dict[str, str]:
        return {"driver": DEFAULT_ODBC_DRIVER}

    @property
    def default_schema(self) -> str:
        return self._options.schema_name or "dbo"

    def _split_name(self, table_name: str) -> tuple[str, str]:
        if "." in table_name:
            schema, name = table_name.split(".", 1)
            return schema, name
        return self.default_schema, table_name

    def quote_string(self, value: str) -> str:
        return "N'" + value.replace("'", "''") + "'"

    def quote_bytes(self, value: bytes) -> str:
        return f"0x{value.hex()}"

    def _insert_ignore_verb(self) -> str:
        raise UnsupportedFeatureError("SQL Server does not support insert-or-ignore")

    def execute_alter_steps(self, table_name: str, instructions: AlterInstructions) -> None:
        # ADD and DROP clauses cannot share one ALTER TABLE statement.
        for part in instructions.alter_parts:
            self.execute(f"ALTER TABLE {self.quote_table_name(table_name)} {part}")
        self._run_post_steps(instructions)

    # ── Types ─────────────────────────────────────────────────────────

    def get_sql_type(self, type: str | Literal, limit: int | None = None) -> SqlType:
        if isinstance(type, Literal):
            return SqlType(str(type))
        type = getattr(type, "value", type)
        if type == ColumnType.STRING:
            return SqlType("nvarchar", limit or 255)
        if type == ColumnType.CHAR:
            return SqlType("nchar", limit or 255)
        if type in (ColumnType.BINARY, ColumnType.VARBINARY):
            return SqlType(type, limit or 255)
        if type in _SQL_TYPES:
            return SqlType(_SQL_TYPES[type])
        raise self._unsupported_type(type)

    def _type_definition(self, column: Column) -> str:
        if column.is_literal_type:
            return str(column.type)
        sql_type = self.get_sql_type(column.type, column.limit)
        definition = sql_type.name.upper()
        if sql_type.name == "decimal" and (column.precision or column.scale):
            definition += f"({column.precision or 18}, {column.scale or 0})"
        elif sql_type.limit is not None:
            definition += f"({sql_type.limit})"
        return definition

    def column_sql_definition(self, column: Column) -> str:
        parts = [self._type_definition(column), "NULL" if column.null else "NOT NULL"]
        if column.identity:
            parts.append("IDENTITY(1, 1)")
        default = self.get_default_value_definition(column.default, column.type).strip()
        if default:
            parts.append(default)
        return " ".join(parts)

    def _describe(self, table_name: str, comment: str | None, column: str | None = None) -> list[str]:
        """Statements replacing the MS_Description extended property."""
        schema, name = self._split_name(table_name)
        target = f"@level0type = N'SCHEMA', @level0name = {self.quote_string(schema)}, "
        target += f"@level1type = N'TABLE', @level1name = {self.quote_string(name)}"
        minor = "0"
        if column is not None:
            target += f", @level2type = N'COLUMN', @level2name = {self.quote_string(column)}"
            minor = (
                f"COLUMNPROPERTY(OBJECT_ID({self.quote_string(f'{schema}.{name}')}), "
                f"{self.quote_string(column)}, 'ColumnId')"
            )
        statements = [
            "IF EXISTS (SELECT 1 FROM sys.extended_properties "
            f"WHERE major_id = OBJECT_ID({self.quote_string(f'{schema}.{name}')}) "
            f"AND minor_id = {minor} AND name = N'MS_Description') "
            f"EXEC sys.sp_dropextendedproperty @name = N'MS_Description', {target}"
        ]
        if comment:
            statements.append(
                "EXEC sys.sp_addextendedproperty @name = N'MS_Description', "
                f"@value = {self.quote_string(comment)}, {target}"
            )
        return statements

    def _index_name(self, table_name: str, index: Index) -> str:
        return index.name or f"{self._split_name(table_name)[1]}_{'_'.join(index.columns or ())}"

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
        primary_key = table.options.primary_key_columns(table=table.name)
        columns = self.table_columns(table, columns)
        parts = [f"{self.quote_column_name(c.name)} {self.column_sql_definition(c)}" for c in columns]
        if primary_key:
            parts.append(
                f"CONSTRAINT {self.quote_column_name('PK_' + table.table_name)} "
                f"PRIMARY KEY ({self.column_list(primary_key)})"
            )
        statements = [f"CREATE TABLE {self.quote_table_name(table.name)} ({', '.join(parts)})"]
        if table.options.comment:
            statements.extend(self._describe(table.name, table.options.comment)[1:])
        for column in columns:
            if column.comment:
                statements.extend(self._describe(table.name, column.comment, column.name)[1:])
        statements.extend(self._create_index_statement(table.name, i) for i in indexes)
        return statements

    # ── Introspection ─────────────────────────────────────────────────

    def _has_table(self, table_name: str) -> bool:
        schema, name = self._split_name(table_name)
        row = self.fetch_row(
            "SELECT TABLE_NAME FROM INFORMATION_SCHEMA.TABLES "
            "WHERE TABLE_SCHEMA = :schema AND TABLE_NAME = :name",
            {"schema": schema, "name": name},
        )
        return row is not None

    def get_columns(self, table_name: str) -> list[Column]:
        schema, name = self._split_name(table_name)
        rows = self.fetch_all(
            "SELECT COLUMN_NAME AS name, DATA_TYPE AS type, IS_NULLABLE AS nullable, "
            "COLUMN_DEFAULT AS column_default, CHARACTER_MAXIMUM_LENGTH AS length, "
            "NUMERIC_PRECISION AS precision, NUMERIC_SCALE AS scale, "
            "COLUMNPROPERTY(OBJECT_ID(TABLE_SCHEMA + '.' + TABLE_NAME), COLUMN_NAME, 'IsIdentity') "
            "AS is_identity "
            "FROM INFORMATION_SCHEMA.COLUMNS "
            "WHERE TABLE_SCHEMA = :schema AND TABLE_NAME = :name ORDER BY ORDINAL_POSITION",
            {"schema": schema, "name": name},
        )
        return [self._column_from_row(row) for row in rows]

    def _column_from_row(self, row: dict[str, Any]) -> Column:
        column_type: Any = _SEMANTIC_TYPES.get(row["type"].lower()) or Literal(row["type"])
        options: dict[str, Any] = {
            "null": row["nullable"] == "YES",
            "identity": bool(row.get("is_identity")),
        }
        if column_type in (ColumnType.STRING, ColumnType.CHAR, ColumnType.BINARY, ColumnType.VARBINARY):
            length = row.get("length")
            if length == -1:
                column_type = ColumnType.TEXT if column_type == ColumnType.STRING else ColumnType.BLOB
            elif length != 255:
                options["limit"] = length
        elif column_type == ColumnType.DECIMAL:
            options.update(precision=row.get("precision"), scale=row.get("scale"))
        default = row.get("column_default")
        if isinstance(default, str):
            # Reported wrapped in parentheses, e.g. ((0)) or ('x').
            value = default
            while value.startswith("(") and value.endswith(")"):
                value = value[1:-1]
            if value.startswith(("'", "N'")) and value.endswith("'"):
                options["default"] = value[value.index("'") + 1:-1].replace("''", "'")
            elif value.lstrip("-").isdigit():
                options["default"] = int(value)
            else:
                options["default"] = Literal(value)
        return Column.build(row["name"], column_type, **options)

    def get_indexes(self, table_name: str) -> dict[str, list[str]]:
        schema, name = self._split_name(table_name)
        rows = self.fetch_all(
            "SELECT i.name AS index_name, c.name AS column_name "
            "FROM sys.indexes i "
            "JOIN sys.index_columns ic ON i.object_id = ic.object_id AND i.index_id = ic.index_id "
            "JOIN sys.columns c ON ic.object_id = c.object_id AND ic.column_id = c.column_id "
            "WHERE i.object_id = OBJECT_ID(:table) AND i.name IS NOT NULL "
            "ORDER BY i.name, ic.key_ordinal",
            {"table": f"{schema}.{name}"},
        )
        indexes: dict[str, list[str]] = {}
        for row in rows:
            indexes.setdefault(row["index_name"], []).append(row["column_name"])
        return indexes

    def _constraints(self, table_name: str, constraint_type: str) -> dict[str, list[str]]:
        schema, name = self._split_name(table_name)
        rows = self.fetch_all(
            "SELECT tc.CONSTRAINT_NAME AS constraint_name, kcu.COLUMN_NAME AS column_name "
            "FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc "
            "JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu "
            "ON tc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME AND tc.TABLE_SCHEMA = kcu.TABLE_SCHEMA "
            "WHERE tc.CONSTRAINT_TYPE = :type AND tc.TABLE_SCHEMA = :schema "
            "AND tc.TABLE_NAME = :name ORDER BY kcu.ORDINAL_POSITION",
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

    def _drop_default_statement(self, table_name: str, column_name: str) -> str:
        schema, name = self._split_name(table_name)
        return (
            "DECLARE @constraint NVARCHAR(256); "
            "SELECT @constraint = d.name FROM sys.default_constraints d "
            "JOIN sys.columns c ON d.parent_object_id = c.object_id "
            "AND d.parent_column_id = c.column_id "
            f"WHERE d.parent_object_id = OBJECT_ID({self.quote_string(f'{schema}.{name}')}) "
            f"AND c.name = {self.quote_string(column_name)}; "
            "IF @constraint IS NOT NULL "
            f"EXEC('ALTER TABLE {self.quote_table_name(table_name)} DROP CONSTRAINT ' + @constraint)"
        )

    def get_add_column_instructions(self, table: TableSpec, column: Column) -> AlterInstructions:
        instructions = AlterInstructions(
            [f"ADD {self.quote_column_name(column.name)} {self.column_sql_definition(column)}"]
        )
        if column.comment:
            instructions.post_steps.extend(self._describe(table.name, column.comment, column.name))
        return instructions

    def get_drop_column_instructions(self, table_name: str, column_name: str) -> AlterInstructions:
        return AlterInstructions(
            post_steps=[
                self._drop_default_statement(table_name, column_name),
                f"ALTER TABLE {self.quote_table_name(table_name)} "
                f"DROP COLUMN {self.quote_column_name(column_name)}",
            ]
        )

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
                f"EXEC sp_rename {self.quote_string(f'{table_name}.{column_name}')}, "
                f"{self.quote_string(new_name)}, N'COLUMN'"
            ]
        )

    def get_change_column_instructions(
        self, table_name: str, column_name: str, column: Column
    ) -> AlterInstructions:
        quoted_table = self.quote_table_name(table_name)
        steps: list[Any] = [
            self._drop_default_statement(table_name, column_name),
            f"ALTER TABLE {quoted_table} ALTER COLUMN {self.quote_column_name(column_name)} "
            f"{self._type_definition(column)} {'NULL' if column.null else 'NOT NULL'}",
        ]
        default = self.get_default_value_definition(column.default, column.type).strip()
        if default:
            constraint = f"DF_{self._split_name(table_name)[1]}_{column.name}"
            steps.append(
                f"ALTER TABLE {quoted_table} ADD CONSTRAINT {self.quote_column_name(constraint)} "
                f"{default} FOR {self.quote_column_name(column_name)}"
            )
        instructions = AlterInstructions(post_steps=steps)
        if column.name != column_name:
            instructions.merge(
                self.get_rename_column_instructions(table_name, column_name, column.name)
            )
        if column.comment:
            instructions.post_steps.extend(self._describe(table_name, column.comment, column.name))
        return instructions

    def get_add_index_instructions(self, table: TableSpec, index: Index) -> AlterInstructions:
        return AlterInstructions(post_steps=[self._create_index_statement(table.name, index)])

    def _drop_index_statement(self, table_name: str, index_name: str) -> str:
        return f"DROP INDEX {self.quote_column_name(index_name)} ON {self.quote_table_name(table_name)}"

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
                f"EXEC sp_rename {self.quote_string(table_name)}, "
                f"{self.quote_string(self._split_name(new_name)[1])}"
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
                f"ADD CONSTRAINT {self.quote_column_name('PK_' + table.table_name)} "
                f"PRIMARY KEY ({self.column_list(new_columns)})"
            )
        return instructions

    def get_change_comment_instructions(
        self, table: TableSpec, comment: str | None
    ) -> AlterInstructions:
        return AlterInstructions(post_steps=list(self._describe(table.name, comment)))
