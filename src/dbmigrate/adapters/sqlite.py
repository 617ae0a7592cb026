"""SQLite adapter (stdlib sqlite3 through SQLAlchemy).

SQLite's ALTER TABLE only renames tables and columns and appends columns.
Everything else (dropping or redefining a column, foreign keys, primary key
changes) is done by rebuilding the table: create a copy with the new
definition, copy the rows, drop the original and rename the copy.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from sqlalchemy.engine import URL

from dbmigrate.adapters.base import AlterInstructions, PrimaryKeyInfo, SqlAdapter, SqlType
from dbmigrate.exceptions import ColumnNotFoundError, SchemaError, UnsupportedFeatureError
from dbmigrate.literal import Literal
from dbmigrate.schema import Column, ColumnType, ForeignKey, Index, IndexType, TableSpec

_SQL_TYPES = {
    ColumnType.TEXT.value: "text",
    ColumnType.INTEGER.value: "integer",
    ColumnType.TINY_INTEGER.value: "tinyint",
    ColumnType.SMALL_INTEGER.value: "smallint",
    ColumnType.BIG_INTEGER.value: "bigint",
    ColumnType.FLOAT.value: "float",
    ColumnType.DOUBLE.value: "double",
    ColumnType.DECIMAL.value: "decimal",
    ColumnType.DATETIME.value: "datetime",
    ColumnType.TIMESTAMP.value: "timestamp",
    ColumnType.TIME.value: "time",
    ColumnType.DATE.value: "date",
    ColumnType.BLOB.value: "blob",
    ColumnType.TINY_BLOB.value: "blob",
    ColumnType.MEDIUM_BLOB.value: "blob",
    ColumnType.LONG_BLOB.value: "blob",
    ColumnType.BOOLEAN.value: "boolean",
    # Suffixes keep SQLite's type affinity right.
    ColumnType.UUID.value: "uuid_text",
    ColumnType.BINARY_UUID.value: "uuid_blob",
    ColumnType.JSON.value: "json_text",
}

_SEMANTIC_TYPES = {
    "varchar": ColumnType.STRING,
    "char": ColumnType.CHAR,
    "binary": ColumnType.BINARY,
    "varbinary": ColumnType.VARBINARY,
    **{
        name: ColumnType(kind)
        for kind, name in _SQL_TYPES.items()
        if not kind.endswith("blob") or kind == "blob"
    },
}

_TYPE_DEF_RE = re.compile(r"^(?P<name>[\w ]+?)\s*(?:\((?P<args>[^)]*)\))?$")
_FK_NAME_RE = re.compile(
    r"CONSTRAINT\s+[\"`\[]?(?P<name>[^\"`\]\s]+)[\"`\]]?\s+FOREIGN\s+KEY\s*\((?P<columns>[^)]*)\)",
    re.I,
)


@dataclass
class _TableState:
    """A table's definition as read back, edited before a rebuild.

    ``columns`` pairs each column with the column it is copied from in the
    old table (None for a column that is new).
    """

    columns: list[tuple[Column, str | None]]
    primary_key: list[str]
    foreign_keys: list[ForeignKey]
    indexes: list[tuple[str, list[str], bool]] = field(default_factory=list)

    def position(self, name: str) -> int:
        for i, (column, _) in enumerate(self.columns):
            if column.name.lower() == name.lower():
                return i
        return -1

    def rename_references(self, old: str, new: str) -> None:
        def swap(columns: Sequence[str]) -> list[str]:
            return [new if c.lower() == old.lower() else c for c in columns]

        self.primary_key = swap(self.primary_key)
        self.foreign_keys = [
            fk.model_copy(update={"columns": tuple(swap(fk.columns))}) for fk in self.foreign_keys
        ]
        self.indexes = [(name, swap(cols), unique) for name, cols, unique in self.indexes]

    def drop_references(self, name: str) -> None:
        lowered = name.lower()
        self.primary_key = [c for c in self.primary_key if c.lower() != lowered]
        self.foreign_keys = [
            fk for fk in self.foreign_keys if lowered not in (c.lower() for c in fk.columns)
        ]
        self.indexes = [
            ix for ix in self.indexes if lowered not in (c.lower() for c in ix[1])
        ]

    def snapshot(self) -> _TableState:
        """A copy that reads as the table now stands: every column copied from itself."""
        return _TableState(
            columns=[(column, column.name) for column, _ in self.columns],
            primary_key=list(self.primary_key),
            foreign_keys=list(self.foreign_keys),
            indexes=[(name, list(cols), unique) for name, cols, unique in self.indexes],
        )


class SqliteAdapter(SqlAdapter):
    name = "sqlite"
    label = "SQLite"
    drivername = "sqlite"
    BEGIN_SQL = "BEGIN TRANSACTION"
    DRIVER_ATTRIBUTES = {
        "timeout": "timeout",
        "detect_types": "detect_types",
        "check_same_thread": "check_same_thread",
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

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        # Definitions of tables that so far exist only in the dry-run output.
        self._dry_run_definitions: dict[str, _TableState] = {}

    def _build_url(self) -> URL:
        database = None if self._options.is_memory else self._options.name
        return URL.create(self._options.driver or self.drivername, database=database)

    def _insert_ignore_verb(self) -> str:
        return "INSERT OR IGNORE INTO"

    def truncate_table(self, table_name: str) -> None:
        self.execute(f"DELETE FROM {self.quote_table_name(table_name)}")
        if self.has_table("sqlite_sequence"):
            self.execute(
                f"DELETE FROM {self.quote_table_name('sqlite_sequence')} "
                f"WHERE {self.quote_column_name('name')} = {self.quote_value(table_name)}"
            )

    # ── Types ─────────────────────────────────────────────────────────

    def get_sql_type(self, type: str | Literal, limit: int | None = None) -> SqlType:
        if isinstance(type, Literal):
            return SqlType(str(type))
        type = getattr(type, "value", type)
        if type == ColumnType.STRING:
            return SqlType("varchar", limit or 255)
        if type == ColumnType.CHAR:
            return SqlType("char", limit or 255)
        if type in (ColumnType.BINARY, ColumnType.VARBINARY):
            return SqlType(type, limit or 255)
        if type in _SQL_TYPES:
            return SqlType(_SQL_TYPES[type])
        raise self._unsupported_type(type)

    def column_sql_definition(self, column: Column) -> str:
        if column.is_literal_type:
            definition = str(column.type)
        else:
            sql_type = self.get_sql_type(column.type, column.limit)
            definition = sql_type.name.upper()
            if column.precision and column.scale is not None and sql_type.name == "decimal":
                definition += f"({column.precision}, {column.scale})"
            elif sql_type.limit is not None:
                definition += f"({sql_type.limit})"
        definition += " NULL" if column.null else " NOT NULL"
        if column.identity:
            definition += " PRIMARY KEY AUTOINCREMENT"
        definition += self.get_default_value_definition(column.default, column.type)
        return definition

    def _parse_type(self, sql_type: str) -> dict[str, Any]:
        match = _TYPE_DEF_RE.match(sql_type.strip())
        if match is None:
            return {"type": Literal(sql_type)}
        name = match.group("name").lower()
        column_type = _SEMANTIC_TYPES.get(name)
        if column_type is None:
            return {"type": Literal(sql_type)}
        options: dict[str, Any] = {"type": column_type}
        args = [a.strip() for a in (match.group("args") or "").split(",") if a.strip()]
        if args and all(a.isdigit() for a in args):
            if column_type == ColumnType.DECIMAL and len(args) == 2:
                options.update(precision=int(args[0]), scale=int(args[1]))
            elif int(args[0]) != 255:
                options["limit"] = int(args[0])
        return options

    @staticmethod
    def _parse_default(value: Any) -> Any:
        if value is None or (isinstance(value, str) and value.upper() == "NULL"):
            return None
        if not isinstance(value, str):
            return value
        if len(value) >= 2 and value[0] == value[-1] == "'":
            return value[1:-1].replace("''", "'")
        if re.fullmatch(r"-?\d+", value):
            return int(value)
        if re.fullmatch(r"-?\d+\.\d+", value):
            return float(value)
        if value.upper().startswith("CURRENT_TIMESTAMP"):
            return value
        return Literal(value)

    # ── Introspection ─────────────────────────────────────────────────

    def _bare(self, table_name: str) -> str:
        return table_name.split(".")[-1]

    def _table_sql(self, table_name: str) -> str:
        row = self.fetch_row(
            "SELECT sql FROM sqlite_master WHERE type = 'table' AND lower(name) = lower(:name)",
            {"name": self._bare(table_name)},
        )
        return (row or {}).get("sql") or ""

    def _has_table(self, table_name: str) -> bool:
        row = self.fetch_row(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND lower(name) = lower(:name)",
            {"name": self._bare(table_name)},
        )
        return row is not None

    def _dry_run_definition(self, table_name: str) -> _TableState | None:
        if not self.is_dry_run_table(table_name):
            return None
        return self._dry_run_definitions.get(table_name)

    def get_columns(self, table_name: str) -> list[Column]:
        definition = self._dry_run_definition(table_name)
        if definition is not None:
            return [column for column, _ in definition.columns]
        rows = self.fetch_all(f"PRAGMA table_info({self.quote_table_name(self._bare(table_name))})")
        autoincrement = "AUTOINCREMENT" in self._table_sql(table_name).upper()
        columns = []
        for row in rows:
            options = self._parse_type(row["type"])
            identity = bool(
                autoincrement and row["pk"] == 1 and row["type"].upper() == "INTEGER"
            )
            columns.append(
                Column.build(
                    row["name"],
                    options.pop("type"),
                    null=not row["notnull"] and not identity,
                    default=self._parse_default(row["dflt_value"]),
                    identity=identity,
                    **options,
                )
            )
        return columns

    def _index_definitions(self, table_name: str) -> list[tuple[str, list[str], bool]]:
        definition = self._dry_run_definition(table_name)
        if definition is not None:
            return definition.snapshot().indexes
        quoted = self.quote_table_name(self._bare(table_name))
        indexes = []
        for row in self.fetch_all(f"PRAGMA index_list({quoted})"):
            info = self.fetch_all(f"PRAGMA index_info({self.quote_column_name(row['name'])})")
            columns = [r["name"] for r in sorted(info, key=lambda r: r["seqno"])]
            indexes.append((row["name"], columns, bool(row["unique"])))
        return indexes

    def get_indexes(self, table_name: str) -> dict[str, list[str]]:
        return {name: columns for name, columns, _ in self._index_definitions(table_name)}

    def get_primary_key(self, table_name: str) -> PrimaryKeyInfo:
        definition = self._dry_run_definition(table_name)
        if definition is not None:
            return PrimaryKeyInfo(None, tuple(definition.primary_key))
        rows = self.fetch_all(f"PRAGMA table_info({self.quote_table_name(self._bare(table_name))})")
        keyed = sorted((r for r in rows if r["pk"]), key=lambda r: r["pk"])
        return PrimaryKeyInfo(None, tuple(r["name"] for r in keyed))

    def _foreign_key_definitions(self, table_name: str) -> list[ForeignKey]:
        definition = self._dry_run_definition(table_name)
        if definition is not None:
            return list(definition.foreign_keys)
        rows = self.fetch_all(
            f"PRAGMA foreign_key_list({self.quote_table_name(self._bare(table_name))})"
        )
        names = {}
        for match in _FK_NAME_RE.finditer(self._table_sql(table_name)):
            columns = tuple(c.strip().strip('"`[]').lower() for c in match.group("columns").split(","))
            names[columns] = match.group("name")

        grouped: dict[int, list[dict[str, Any]]] = {}
        for row in rows:
            grouped.setdefault(row["id"], []).append(row)
        foreign_keys = []
        for parts in grouped.values():
            parts.sort(key=lambda r: r["seq"])
            local = tuple(r["from"] for r in parts)
            options = {
                "on_delete": parts[0]["on_delete"] if parts[0]["on_delete"] != "NO ACTION" else None,
                "on_update": parts[0]["on_update"] if parts[0]["on_update"] != "NO ACTION" else None,
            }
            foreign_keys.append(
                ForeignKey.build(
                    local,
                    parts[0]["table"],
                    tuple(r["to"] for r in parts),
                    table=table_name,
                    constraint=names.get(tuple(c.lower() for c in local)),
                    **options,
                )
            )
        return foreign_keys

    def get_foreign_keys(self, table_name: str) -> dict[str, list[str]]:
        return {
            fk.constraint_name(self._bare(table_name)): list(fk.columns)
            for fk in self._foreign_key_definitions(table_name)
        }

    # ── Creating and rebuilding ───────────────────────────────────────

    def _index_statement(self, table_name: str, name: str, columns: Sequence[str], unique: bool) -> str:
        return (
            f"CREATE {'UNIQUE ' if unique else ''}INDEX {self.quote_column_name(name)} "
            f"ON {self.quote_table_name(table_name)} ({self.column_list(columns)})"
        )

    def _index_definition(self, table_name: str, index: Index) -> tuple[str, list[str], bool]:
        name = index.name or f"{self._bare(table_name)}_{'_'.join(index.columns or ())}"
        return name, list(index.columns or ()), index.type == IndexType.UNIQUE

    def _create_index_statement(self, table_name: str, index: Index) -> str:
        return self._index_statement(table_name, *self._index_definition(table_name, index))

    def _create_table_sql(
        self,
        table_name: str,
        columns: Sequence[Column],
        primary_key: Sequence[str] | None,
        foreign_keys: Sequence[ForeignKey] = (),
    ) -> str:
        parts = [f"{self.quote_column_name(c.name)} {self.column_sql_definition(c)}" for c in columns]
        # An identity column already carries the key inline.
        if primary_key and not any(c.identity for c in columns):
            parts.append(f"PRIMARY KEY ({self.column_list(primary_key)})")
        parts.extend(
            self.get_foreign_key_sql_definition(fk, self._bare(table_name)).strip()
            for fk in foreign_keys
        )
        return f"CREATE TABLE {self.quote_table_name(table_name)} ({', '.join(parts)})"

    def create_table_statements(
        self, table: TableSpec, columns: Sequence[Column], indexes: Sequence[Index]
    ) -> list[str]:
        primary_key = table.options.primary_key_columns(table=table.name)
        statements = [
            self._create_table_sql(table.name, self.table_columns(table, columns), primary_key)
        ]
        statements.extend(self._create_index_statement(table.name, i) for i in indexes)
        return statements

    def create_table(
        self, table: TableSpec, columns: Sequence[Column] = (), indexes: Sequence[Index] = ()
    ) -> None:
        super().create_table(table, columns, indexes)
        if self.is_dry_run():
            # Later rebuilds read the table from here instead of sqlite_master.
            self._dry_run_definitions[table.name] = _TableState(
                columns=[(c, c.name) for c in self.table_columns(table, columns)],
                primary_key=list(table.options.primary_key_columns(table=table.name) or ()),
                foreign_keys=[],
                indexes=[self._index_definition(table.name, i) for i in indexes],
            )

    def _tracked(
        self, table_name: str, statement: str, edit: Callable[[_TableState], None]
    ) -> Callable[[], None]:
        """Run a native ALTER and apply the same edit to a dry-run definition."""

        def step() -> None:
            self.execute(statement)
            definition = self._dry_run_definition(table_name)
            if definition is not None:
                edit(definition)

        return step

    def _table_state(self, table_name: str) -> _TableState:
        return _TableState(
            columns=[(c, c.name) for c in self.get_columns(table_name)],
            primary_key=list(self.get_primary_key(table_name).columns),
            foreign_keys=self._foreign_key_definitions(table_name),
            indexes=self._index_definitions(table_name),
        )

    def _rebuild(self, table_name: str, edit: Callable[[_TableState], None]) -> Callable[[], None]:
        def step() -> None:
            state = self._table_state(table_name)
            edit(state)
            self._write_table(table_name, state)

        return step

    def _write_table(self, table_name: str, state: _TableState) -> None:
        bare = self._bare(table_name)
        temporary = f"tmp_{bare}"
        columns = [column for column, _ in state.columns]
        # Constraint names follow the final table, not the temporary one.
        foreign_keys = [
            fk.model_copy(update={"constraint": fk.constraint_name(bare)}) for fk in state.foreign_keys
        ]
        self.execute(self._create_table_sql(temporary, columns, state.primary_key, foreign_keys))
        copied = [(column.name, source) for column, source in state.columns if source is not None]
        if copied:
            self.execute(
                f"INSERT INTO {self.quote_table_name(temporary)} "
                f"({self.column_list(name for name, _ in copied)}) "
                f"SELECT {self.column_list(source for _, source in copied)} "
                f"FROM {self.quote_table_name(table_name)}"
            )
        self.execute(f"DROP TABLE {self.quote_table_name(table_name)}")
        self.execute(
            f"ALTER TABLE {self.quote_table_name(temporary)} "
            f"RENAME TO {self.quote_column_name(self._bare(table_name))}"
        )
        indexes = [ix for ix in state.indexes if not ix[0].startswith("sqlite_autoindex")]
        for name, index_columns, unique in indexes:
            self.execute(self._index_statement(table_name, name, index_columns, unique))
        if self._dry_run_definition(table_name) is not None:
            self._dry_run_definitions[table_name] = _TableState(
                columns=[(column, column.name) for column in columns],
                primary_key=list(state.primary_key),
                foreign_keys=foreign_keys,
                indexes=indexes,
            )

    def _require_column(self, state: _TableState, table_name: str, column_name: str) -> int:
        position = state.position(column_name)
        if position < 0:
            raise ColumnNotFoundError(
                f"The specified column doesn't exist: {column_name}",
                table=table_name,
                column=column_name,
            )
        return position

    # ── ALTER instructions ────────────────────────────────────────────

    def get_add_column_instructions(self, table: TableSpec, column: Column) -> AlterInstructions:
        # ADD COLUMN needs a constant default for a NOT NULL column.
        constant_default = column.default is not None and not (
            isinstance(column.default, Literal)
            or (isinstance(column.default, str) and column.default.upper().startswith("CURRENT_"))
        )
        native = constant_default or (column.null and column.default is None)
        if native and not column.after and not column.identity:
            statement = (
                f"ALTER TABLE {self.quote_table_name(table.name)} ADD COLUMN "
                f"{self.quote_column_name(column.name)} {self.column_sql_definition(column)}"
            )
            return AlterInstructions(
                post_steps=[
                    self._tracked(
                        table.name, statement, lambda state: state.columns.append((column, None))
                    )
                ]
            )

        def edit(state: _TableState) -> None:
            position = len(state.columns)
            if column.after == Column.FIRST:
                position = 0
            elif column.after:
                position = self._require_column(state, table.name, column.after) + 1
            state.columns.insert(position, (column, None))

        return AlterInstructions(post_steps=[self._rebuild(table.name, edit)])

    def get_drop_column_instructions(self, table_name: str, column_name: str) -> AlterInstructions:
        def edit(state: _TableState) -> None:
            del state.columns[self._require_column(state, table_name, column_name)]
            state.drop_references(column_name)

        return AlterInstructions(post_steps=[self._rebuild(table_name, edit)])

    def get_rename_column_instructions(
        self, table_name: str, column_name: str, new_name: str
    ) -> AlterInstructions:
        if not self.has_column(table_name, column_name):
            raise ColumnNotFoundError(
                f"The specified column doesn't exist: {column_name}",
                table=table_name,
                column=column_name,
            )
        statement = (
            f"ALTER TABLE {self.quote_table_name(table_name)} RENAME COLUMN "
            f"{self.quote_column_name(column_name)} TO {self.quote_column_name(new_name)}"
        )

        def edit(state: _TableState) -> None:
            position = state.position(column_name)
            column, source = state.columns[position]
            state.columns[position] = (column.model_copy(update={"name": new_name}), source)
            state.rename_references(column_name, new_name)

        return AlterInstructions(post_steps=[self._tracked(table_name, statement, edit)])

    def get_change_column_instructions(
        self, table_name: str, column_name: str, column: Column
    ) -> AlterInstructions:
        def edit(state: _TableState) -> None:
            position = self._require_column(state, table_name, column_name)
            _, source = state.columns[position]
            state.columns[position] = (column, source)
            if column.name != column_name:
                state.rename_references(column_name, column.name)

        return AlterInstructions(post_steps=[self._rebuild(table_name, edit)])

    def get_add_index_instructions(self, table: TableSpec, index: Index) -> AlterInstructions:
        definition = self._index_definition(table.name, index)
        statement = self._index_statement(table.name, *definition)
        return AlterInstructions(
            post_steps=[
                self._tracked(table.name, statement, lambda state: state.indexes.append(definition))
            ]
        )

    def _drop_index_step(self, table_name: str, index_name: str) -> Callable[[], None]:
        def edit(state: _TableState) -> None:
            state.indexes = [ix for ix in state.indexes if ix[0].lower() != index_name.lower()]

        return self._tracked(table_name, f"DROP INDEX {self.quote_column_name(index_name)}", edit)

    def get_drop_index_by_columns_instructions(
        self, table_name: str, columns: Sequence[str]
    ) -> AlterInstructions | None:
        name = self.find_index_name(table_name, columns)
        if name is None:
            return None
        return AlterInstructions(post_steps=[self._drop_index_step(table_name, name)])

    def get_drop_index_by_name_instructions(
        self, table_name: str, index_name: str
    ) -> AlterInstructions | None:
        if not self.has_index_by_name(table_name, index_name):
            return None
        return AlterInstructions(post_steps=[self._drop_index_step(table_name, index_name)])

    def get_add_foreign_key_instructions(
        self, table: TableSpec, foreign_key: ForeignKey
    ) -> AlterInstructions:
        named = foreign_key.model_copy(
            update={"constraint": foreign_key.constraint_name(self._bare(table.name))}
        )

        def edit(state: _TableState) -> None:
            state.foreign_keys.append(named)

        return AlterInstructions(post_steps=[self._rebuild(table.name, edit)])

    def get_drop_foreign_key_instructions(
        self, table_name: str, foreign_key: ForeignKey
    ) -> AlterInstructions:
        bare = self._bare(table_name)

        def edit(state: _TableState) -> None:
            wanted = [c.lower() for c in foreign_key.columns]
            kept = [
                fk
                for fk in state.foreign_keys
                if not (
                    fk.constraint_name(bare) == foreign_key.constraint
                    if foreign_key.constraint
                    else [c.lower() for c in fk.columns] == wanted
                )
            ]
            if len(kept) == len(state.foreign_keys):
                raise SchemaError(
                    f"No foreign key on column(s) `{', '.join(foreign_key.columns)}` exists",
                    table=table_name,
                )
            state.foreign_keys = kept

        return AlterInstructions(post_steps=[self._rebuild(table_name, edit)])

    def get_rename_table_instructions(self, table_name: str, new_name: str) -> AlterInstructions:
        def step() -> None:
            self.execute(
                f"ALTER TABLE {self.quote_table_name(table_name)} "
                f"RENAME TO {self.quote_column_name(self._bare(new_name))}"
            )
            definition = self._dry_run_definitions.pop(table_name, None)
            if definition is not None and self.is_dry_run_table(table_name):
                self._dry_run_definitions[new_name] = definition

        return AlterInstructions(post_steps=[step])

    def get_change_primary_key_instructions(
        self, table: TableSpec, new_columns: Sequence[str] | None
    ) -> AlterInstructions:
        wanted = list(new_columns or ())

        def edit(state: _TableState) -> None:
            for column_name in wanted:
                self._require_column(state, table.name, column_name)
            state.columns = [
                (column.model_copy(update={"identity": False}), source)
                if column.identity and [column.name] != wanted
                else (column, source)
                for column, source in state.columns
            ]
            state.primary_key = wanted

        return AlterInstructions(post_steps=[self._rebuild(table.name, edit)])

    def get_change_comment_instructions(
        self, table: TableSpec, comment: str | None
    ) -> AlterInstructions:
        raise UnsupportedFeatureError(
            "SQLite does not have any support for table comments", table=table.name
        )
