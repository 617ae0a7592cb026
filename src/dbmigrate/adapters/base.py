"""Adapter contract and the shared SQL adapter.

``AdapterInterface`` is the capability surface the table handle, the planner
and the manager talk to. ``SqlAdapter`` implements everything that does not
depend on a dialect on top of a single SQLAlchemy connection; dialects fill
in type mapping, column rendering, introspection and the ALTER instructions.
"""

from __future__ import annotations

import logging
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Callable, ClassVar, Iterable, Mapping, Sequence, TextIO, Union

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Connection, CursorResult, Engine
from sqlalchemy.exc import SQLAlchemyError

from dbmigrate.actions import (
    Action,
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
)
from dbmigrate.config import ATTRIBUTE_RE, ConnectionOptions
from dbmigrate.exceptions import (
    ConfigurationError,
    IndexNotFoundError,
    InvalidAttributeError,
    InvalidColumnTypeError,
    SchemaError,
)
from dbmigrate.literal import Literal
from dbmigrate.schema import Column, ColumnType, ForeignKey, Index, SizeTier, TableSpec

logger = logging.getLogger("dbmigrate")


@dataclass(frozen=True)
class SqlType:
    """A dialect type name with its length/limit."""

    name: str
    limit: int | None = None


@dataclass(frozen=True)
class PrimaryKeyInfo:
    constraint: str | None
    columns: tuple[str, ...]


PostStep = Union[str, Callable[[], None]]


@dataclass
class AlterInstructions:
    """Pieces of one ALTER TABLE plus statements that must follow it.

    ``alter_parts`` are joined into a single ``ALTER TABLE`` where the dialect
    allows it. ``post_steps`` run afterwards in order; a callable is invoked,
    a string is executed.
    """

    alter_parts: list[str] = field(default_factory=list)
    post_steps: list[PostStep] = field(default_factory=list)

    def merge(self, other: AlterInstructions) -> None:
        self.alter_parts.extend(other.alter_parts)
        self.post_steps.extend(other.post_steps)

    def __bool__(self) -> bool:
        return bool(self.alter_parts or self.post_steps)


def _as_list(columns: str | Sequence[str]) -> list[str]:
    if isinstance(columns, str):
        return [columns]
    return list(columns)


def _same_columns(left: Sequence[str], right: Sequence[str]) -> bool:
    """Order-sensitive, case-insensitive column list comparison."""
    return [c.lower() for c in left] == [c.lower() for c in right]


def _same_column_set(left: Sequence[str], right: Sequence[str]) -> bool:
    """Case-insensitive comparison ignoring column order."""
    return sorted(c.lower() for c in left) == sorted(c.lower() for c in right)


# ── Contract ─────────────────────────────────────────────────────────


class AdapterInterface(ABC):
    """Everything a migration, a table handle or the manager may ask of a database."""

    # connection
    @abstractmethod
    def connect(self) -> None: ...

    @abstractmethod
    def disconnect(self) -> None: ...

    # output
    @abstractmethod
    def set_output(self, output: TextIO | None) -> None: ...

    @abstractmethod
    def set_dry_run(self, dry_run: bool) -> None: ...

    @abstractmethod
    def is_dry_run(self) -> bool: ...

    @abstractmethod
    def is_dry_run_table(self, table_name: str) -> bool: ...

    # introspection
    @abstractmethod
    def has_table(self, table_name: str) -> bool: ...

    @abstractmethod
    def has_column(self, table_name: str, column_name: str) -> bool: ...

    @abstractmethod
    def get_columns(self, table_name: str) -> list[Column]: ...

    @abstractmethod
    def has_index(self, table_name: str, columns: str | Sequence[str]) -> bool: ...

    @abstractmethod
    def has_index_by_name(self, table_name: str, index_name: str) -> bool: ...

    @abstractmethod
    def has_primary_key(
        self, table_name: str, columns: str | Sequence[str], constraint: str | None = None
    ) -> bool: ...

    @abstractmethod
    def has_foreign_key(
        self, table_name: str, columns: str | Sequence[str], constraint: str | None = None
    ) -> bool: ...

    # types
    @abstractmethod
    def get_column_types(self) -> list[str]: ...

    @abstractmethod
    def is_valid_column_type(self, column: Column) -> bool: ...

    @abstractmethod
    def get_sql_type(self, type: str | Literal, limit: int | None = None) -> SqlType: ...

    # schema changes
    @abstractmethod
    def create_table(
        self, table: TableSpec, columns: Sequence[Column] = (), indexes: Sequence[Index] = ()
    ) -> None: ...

    @abstractmethod
    def execute_actions(self, table: TableSpec, actions: Sequence[Action]) -> None: ...

    @abstractmethod
    def drop_index(self, table_name: str, columns: str | Sequence[str]) -> bool: ...

    @abstractmethod
    def drop_index_by_name(self, table_name: str, index_name: str) -> bool: ...

    @abstractmethod
    def truncate_table(self, table_name: str) -> None: ...

    # data
    @abstractmethod
    def insert(
        self, table: TableSpec, row: Mapping[str, Any], ignore_duplicates: bool = False
    ) -> None: ...

    @abstractmethod
    def bulkinsert(
        self,
        table: TableSpec,
        rows: Sequence[Mapping[str, Any]],
        ignore_duplicates: bool = False,
    ) -> None: ...

    # statements
    @abstractmethod
    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> int: ...

    @abstractmethod
    def fetch_all(self, sql: str, params: Mapping[str, Any] | None = None) -> list[dict[str, Any]]: ...

    @abstractmethod
    def fetch_row(self, sql: str, params: Mapping[str, Any] | None = None) -> dict[str, Any] | None: ...

    # transactions
    @abstractmethod
    def has_transactions(self) -> bool: ...

    @abstractmethod
    def begin_transaction(self) -> None: ...

    @abstractmethod
    def commit_transaction(self) -> None: ...

    @abstractmethod
    def rollback_transaction(self) -> None: ...

    # quoting
    @abstractmethod
    def quote_table_name(self, table_name: str) -> str: ...

    @abstractmethod
    def quote_column_name(self, column_name: str) -> str: ...

    @abstractmethod
    def quote_value(self, value: Any) -> str: ...

    # ledger
    @property
    @abstractmethod
    def schema_table_name(self) -> str: ...

    @abstractmethod
    def has_schema_table(self) -> bool: ...

    @abstractmethod
    def create_schema_table(self) -> None: ...


# ── Shared SQL adapter ───────────────────────────────────────────────


class SqlAdapter(AdapterInterface):
    """Dialect-independent behaviour over one SQLAlchemy connection.

    The connection runs in driver autocommit mode. Transactions are framed by
    explicit ``BEGIN``/``COMMIT`` statements sent through :meth:`execute`, so
    a dry-run prints them like any other statement.
    """

    name: ClassVar[str] = ""
    label: ClassVar[str] = ""
    drivername: ClassVar[str] = ""
    IDENTIFIER_QUOTE: ClassVar[tuple[str, str]] = ('"', '"')
    BEGIN_SQL: ClassVar[str] = "START TRANSACTION"
    COMMIT_SQL: ClassVar[str] = "COMMIT"
    ROLLBACK_SQL: ClassVar[str] = "ROLLBACK"
    # Accepted attribute names mapped onto DBAPI connect() keyword arguments.
    DRIVER_ATTRIBUTES: ClassVar[dict[str, str]] = {}
    COLUMN_TYPES: ClassVar[frozenset[str]] = frozenset()
    SIZE_LIMITS: ClassVar[dict[str, dict[SizeTier, int]]] = {}

    def __init__(
        self,
        options: ConnectionOptions | Mapping[str, Any],
        *,
        output: TextIO | None = None,
        dry_run: bool = False,
    ) -> None:
        if isinstance(options, ConnectionOptions):
            self._options = options
        else:
            self._options = ConnectionOptions.build(**{"adapter": self.name, **options})
        self._output = output
        self._dry_run = dry_run
        self._engine: Engine | None = None
        self._connection: Connection | None = None
        # Tables created while in dry-run mode, so has_table agrees with the output.
        self._dry_run_tables: set[str] = set()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._options.name!r}, dry_run={self._dry_run})"

    @property
    def options(self) -> ConnectionOptions:
        return self._options

    # ── Connection ────────────────────────────────────────────────────

    def connect(self) -> None:
        if self._connection is not None:
            return
        connect_args = self._driver_attributes()
        url = self._build_url()
        try:
            engine = create_engine(url, connect_args=connect_args)
            connection = engine.connect().execution_options(isolation_level="AUTOCOMMIT")
        except (SQLAlchemyError, ImportError) as e:
            raise ConfigurationError(
                f"There was a problem connecting to the database: {e}"
            ) from e
        self._engine = engine
        self._connection = connection
        logger.debug("Connected to %s", url.render_as_string(hide_password=True))
        self._on_connect()
        if not self.has_schema_table():
            self.create_schema_table()

    def disconnect(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    @property
    def connection(self) -> Connection:
        if self._connection is None:
            self.connect()
        assert self._connection is not None
        return self._connection

    def _on_connect(self) -> None:
        """Hook for session setup statements after connecting."""

    def _build_url(self) -> URL:
        opts = self._options
        return URL.create(
            opts.driver or self.drivername,
            username=opts.user,
            password=opts.password,
            host=opts.host,
            port=opts.port,
            database=opts.name,
            query=self._url_query(),
        )

    def _url_query(self) -> dict[str, str]:
        return {}

    def _driver_attributes(self) -> dict[str, Any]:
        connect_args: dict[str, Any] = {}
        for key, value in self._options.attributes.items():
            match = ATTRIBUTE_RE.match(key)
            if match is None:
                raise InvalidAttributeError(f"Invalid driver attribute: {key}", attribute=key)
            dialect, attribute = match.group("dialect"), match.group("name")
            if dialect is not None and dialect != self.name:
                # Belongs to another dialect's connection.
                continue
            if attribute not in self.DRIVER_ATTRIBUTES:
                raise InvalidAttributeError(f"Invalid driver attribute: {key}", attribute=key)
            connect_args[self.DRIVER_ATTRIBUTES[attribute]] = value
        return connect_args

    # ── Output ────────────────────────────────────────────────────────

    def set_output(self, output: TextIO | None) -> None:
        self._output = output

    @property
    def output(self) -> TextIO:
        return self._output if self._output is not None else sys.stdout

    def set_dry_run(self, dry_run: bool) -> None:
        self._dry_run = dry_run

    def is_dry_run(self) -> bool:
        return self._dry_run

    # ── Statements ────────────────────────────────────────────────────

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> int:
        sql = sql.rstrip("; \n")
        if self._dry_run:
            self.output.write(f"{sql};\n")
            return 0
        logger.debug("Executing: %s", sql)
        if params:
            result = self.connection.execute(text(sql), dict(params))
        else:
            result = self.connection.exec_driver_sql(sql)
        return result.rowcount

    def query(self, sql: str, params: Mapping[str, Any] | None = None) -> CursorResult:
        """Run a read. Reads run even in dry-run mode."""
        if params:
            return self.connection.execute(text(sql), dict(params))
        return self.connection.exec_driver_sql(sql)

    def fetch_all(self, sql: str, params: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        return [dict(row) for row in self.query(sql, params).mappings()]

    def fetch_row(self, sql: str, params: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
        row = self.query(sql, params).mappings().first()
        return dict(row) if row is not None else None

    # ── Transactions ──────────────────────────────────────────────────

    def has_transactions(self) -> bool:
        return True

    def begin_transaction(self) -> None:
        self.execute(self.BEGIN_SQL)

    def commit_transaction(self) -> None:
        self.execute(self.COMMIT_SQL)

    def rollback_transaction(self) -> None:
        self.execute(self.ROLLBACK_SQL)

    # ── Quoting ───────────────────────────────────────────────────────

    def quote_column_name(self, column_name: str) -> str:
        opening, closing = self.IDENTIFIER_QUOTE
        return f"{opening}{column_name.replace(closing, closing * 2)}{closing}"

    def quote_table_name(self, table_name: str) -> str:
        return ".".join(self.quote_column_name(part) for part in table_name.split("."))

    def quote_string(self, value: str) -> str:
        return "'" + value.replace("'", "''") + "'"

    def quote_bytes(self, value: bytes) -> str:
        return f"X'{value.hex()}'"

    def cast_to_bool(self, value: Any) -> Any:
        """The dialect's representation of a boolean value."""
        return 1 if value else 0

    def quote_value(self, value: Any) -> str:
        if value is None:
            return "null"
        if isinstance(value, Literal):
            return str(value)
        if isinstance(value, bool):
            value = self.cast_to_bool(value)
            if isinstance(value, bool):
                return "TRUE" if value else "FALSE"
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, datetime):
            return self.quote_string(value.isoformat(sep=" "))
        if isinstance(value, (date, time)):
            return self.quote_string(value.isoformat())
        if isinstance(value, (bytes, bytearray)):
            return self.quote_bytes(bytes(value))
        return self.quote_string(str(value))

    def column_list(self, columns: Iterable[str]) -> str:
        return ", ".join(self.quote_column_name(c) for c in columns)

    # ── Types ─────────────────────────────────────────────────────────

    def get_column_types(self) -> list[str]:
        return sorted(self.COLUMN_TYPES)

    def is_valid_column_type(self, column: Column) -> bool:
        if column.is_literal_type:
            return True
        return column.type in self.COLUMN_TYPES

    def size_limit(self, family: str, tier: SizeTier) -> int | None:
        return self.SIZE_LIMITS.get(family, {}).get(tier)

    def _unsupported_type(self, type: str | Literal) -> InvalidColumnTypeError:
        return InvalidColumnTypeError(
            f'Column type "{type}" is not supported by {self.label}.'
        )

    def get_default_value_definition(self, default: Any, column_type: Any = None) -> str:
        if default is None:
            return ""
        if isinstance(default, Literal):
            value = str(default)
        elif isinstance(default, str) and default.upper().startswith("CURRENT_TIMESTAMP"):
            value = default
        elif isinstance(default, bool) or column_type == ColumnType.BOOLEAN.value:
            value = self.quote_value(bool(default))
        elif isinstance(default, (int, float)):
            value = str(default)
        else:
            value = self.quote_value(default)
        return f" DEFAULT {value}"

    @abstractmethod
    def column_sql_definition(self, column: Column) -> str:
        """The type and options part of a column definition."""

    # ── Introspection ─────────────────────────────────────────────────

    def has_table(self, table_name: str) -> bool:
        if self._dry_run and table_name in self._dry_run_tables:
            return True
        return self._has_table(table_name)

    def is_dry_run_table(self, table_name: str) -> bool:
        """True when *table_name* so far exists only in the dry-run output."""
        return self._dry_run and table_name in self._dry_run_tables

    @abstractmethod
    def _has_table(self, table_name: str) -> bool: ...

    def has_column(self, table_name: str, column_name: str) -> bool:
        return any(c.name.lower() == column_name.lower() for c in self.get_columns(table_name))

    @abstractmethod
    def get_indexes(self, table_name: str) -> dict[str, list[str]]:
        """Index name -> ordered column list."""

    def has_index(self, table_name: str, columns: str | Sequence[str]) -> bool:
        wanted = _as_list(columns)
        return any(_same_column_set(cols, wanted) for cols in self.get_indexes(table_name).values())

    def has_index_by_name(self, table_name: str, index_name: str) -> bool:
        return index_name in self.get_indexes(table_name)

    def find_index_name(self, table_name: str, columns: str | Sequence[str]) -> str | None:
        wanted = _as_list(columns)
        for name, cols in self.get_indexes(table_name).items():
            if _same_columns(cols, wanted):
                return name
        return None

    @abstractmethod
    def get_primary_key(self, table_name: str) -> PrimaryKeyInfo: ...

    def has_primary_key(
        self, table_name: str, columns: str | Sequence[str], constraint: str | None = None
    ) -> bool:
        pk = self.get_primary_key(table_name)
        if constraint:
            return pk.constraint == constraint
        wanted = {c.lower() for c in _as_list(columns)}
        return bool(wanted) and wanted <= {c.lower() for c in pk.columns}

    @abstractmethod
    def get_foreign_keys(self, table_name: str) -> dict[str, list[str]]:
        """Constraint name -> local column list."""

    def has_foreign_key(
        self, table_name: str, columns: str | Sequence[str], constraint: str | None = None
    ) -> bool:
        foreign_keys = self.get_foreign_keys(table_name)
        if constraint:
            return constraint in foreign_keys
        wanted = _as_list(columns)
        return any(_same_columns(cols, wanted) for cols in foreign_keys.values())

    # ── Schema changes ────────────────────────────────────────────────

    def table_columns(self, table: TableSpec, columns: Sequence[Column]) -> list[Column]:
        """Columns of a new table, with the automatic id column prepended."""
        result = list(columns)
        id_column = table.options.id_column()
        if id_column is not None:
            result.insert(
                0,
                Column.build(
                    id_column,
                    ColumnType.INTEGER,
                    identity=True,
                    signed=table.options.signed,
                    limit=table.options.limit,
                ),
            )
        return result

    def create_table(
        self, table: TableSpec, columns: Sequence[Column] = (), indexes: Sequence[Index] = ()
    ) -> None:
        for statement in self.create_table_statements(table, columns, indexes):
            self.execute(statement)
        if self._dry_run:
            self._dry_run_tables.add(table.name)

    @abstractmethod
    def create_table_statements(
        self, table: TableSpec, columns: Sequence[Column], indexes: Sequence[Index]
    ) -> list[str]: ...

    def execute_actions(self, table: TableSpec, actions: Sequence[Action]) -> None:
        instructions = AlterInstructions()
        for action in actions:
            instructions.merge(self._instructions_for(table, action))
        self.execute_alter_steps(table.name, instructions)

        if self._dry_run:
            for action in actions:
                if isinstance(action, DropTable):
                    self._dry_run_tables.discard(table.name)
                elif isinstance(action, RenameTable) and table.name in self._dry_run_tables:
                    self._dry_run_tables.discard(table.name)
                    self._dry_run_tables.add(action.new_name)

    def _instructions_for(self, table: TableSpec, action: Action) -> AlterInstructions:
        name = table.name
        if isinstance(action, AddColumn):
            return self.get_add_column_instructions(table, action.column)
        if isinstance(action, RemoveColumn):
            return self.get_drop_column_instructions(name, action.column_name)
        if isinstance(action, RenameColumn):
            return self.get_rename_column_instructions(name, action.column_name, action.new_name)
        if isinstance(action, ChangeColumn):
            return self.get_change_column_instructions(name, action.column_name, action.column)
        if isinstance(action, AddIndex):
            return self.get_add_index_instructions(table, action.index)
        if isinstance(action, DropIndex):
            return self._drop_index_instructions(name, action)
        if isinstance(action, AddForeignKey):
            return self.get_add_foreign_key_instructions(table, action.foreign_key)
        if isinstance(action, DropForeignKey):
            return self.get_drop_foreign_key_instructions(name, action.foreign_key)
        if isinstance(action, DropTable):
            return self.get_drop_table_instructions(name)
        if isinstance(action, RenameTable):
            return self.get_rename_table_instructions(name, action.new_name)
        if isinstance(action, ChangePrimaryKey):
            return self.get_change_primary_key_instructions(table, action.new_columns)
        if isinstance(action, ChangeComment):
            return self.get_change_comment_instructions(table, action.new_comment)
        if isinstance(action, CreateTable):
            raise TypeError("CreateTable is executed through create_table(), not as an alteration")
        raise TypeError(f"Unknown action type: {type(action).__name__}")

    def _drop_index_instructions(self, table_name: str, action: DropIndex) -> AlterInstructions:
        if action.index.name:
            instructions = self.get_drop_index_by_name_instructions(table_name, action.index.name)
            message = f"The specified index name '{action.index.name}' does not exist"
        else:
            columns = list(action.index.columns or ())
            instructions = self.get_drop_index_by_columns_instructions(table_name, columns)
            message = f"The specified index on columns '{', '.join(columns)}' does not exist"
        if instructions is None:
            if action.if_exists:
                logger.debug("Skipping drop of missing index on %s", table_name)
                return AlterInstructions()
            raise IndexNotFoundError(message, table=table_name)
        return instructions

    def execute_alter_steps(self, table_name: str, instructions: AlterInstructions) -> None:
        if instructions.alter_parts:
            self.execute(
                f"ALTER TABLE {self.quote_table_name(table_name)} "
                + ", ".join(instructions.alter_parts)
            )
        self._run_post_steps(instructions)

    def _run_post_steps(self, instructions: AlterInstructions) -> None:
        for step in instructions.post_steps:
            if callable(step):
                step()
            else:
                self.execute(step)

    def drop_index(self, table_name: str, columns: str | Sequence[str]) -> bool:
        instructions = self.get_drop_index_by_columns_instructions(table_name, _as_list(columns))
        if instructions is None:
            return False
        self.execute_alter_steps(table_name, instructions)
        return True

    def drop_index_by_name(self, table_name: str, index_name: str) -> bool:
        instructions = self.get_drop_index_by_name_instructions(table_name, index_name)
        if instructions is None:
            return False
        self.execute_alter_steps(table_name, instructions)
        return True

    def truncate_table(self, table_name: str) -> None:
        self.execute(f"TRUNCATE TABLE {self.quote_table_name(table_name)}")

    def get_drop_table_instructions(self, table_name: str) -> AlterInstructions:
        return AlterInstructions(post_steps=[f"DROP TABLE {self.quote_table_name(table_name)}"])

    def get_foreign_key_sql_definition(self, foreign_key: ForeignKey, table_name: str) -> str:
        definition = (
            f" CONSTRAINT {self.quote_column_name(foreign_key.constraint_name(table_name))}"
            f" FOREIGN KEY ({self.column_list(foreign_key.columns)})"
            f" REFERENCES {self.quote_table_name(foreign_key.referenced_table)}"
            f" ({self.column_list(foreign_key.referenced_columns)})"
        )
        if foreign_key.on_delete is not None:
            definition += f" ON DELETE {foreign_key.on_delete.value}"
        if foreign_key.on_update is not None:
            definition += f" ON UPDATE {foreign_key.on_update.value}"
        return definition

    # Dialect instruction builders

    @abstractmethod
    def get_add_column_instructions(self, table: TableSpec, column: Column) -> AlterInstructions: ...

    @abstractmethod
    def get_drop_column_instructions(self, table_name: str, column_name: str) -> AlterInstructions: ...

    @abstractmethod
    def get_rename_column_instructions(
        self, table_name: str, column_name: str, new_name: str
    ) -> AlterInstructions: ...

    @abstractmethod
    def get_change_column_instructions(
        self, table_name: str, column_name: str, column: Column
    ) -> AlterInstructions: ...

    @abstractmethod
    def get_add_index_instructions(self, table: TableSpec, index: Index) -> AlterInstructions: ...

    @abstractmethod
    def get_drop_index_by_columns_instructions(
        self, table_name: str, columns: Sequence[str]
    ) -> AlterInstructions | None: ...

    @abstractmethod
    def get_drop_index_by_name_instructions(
        self, table_name: str, index_name: str
    ) -> AlterInstructions | None: ...

    @abstractmethod
    def get_add_foreign_key_instructions(
        self, table: TableSpec, foreign_key: ForeignKey
    ) -> AlterInstructions: ...

    @abstractmethod
    def get_drop_foreign_key_instructions(
        self, table_name: str, foreign_key: ForeignKey
    ) -> AlterInstructions: ...

    @abstractmethod
    def get_rename_table_instructions(self, table_name: str, new_name: str) -> AlterInstructions: ...

    @abstractmethod
    def get_change_primary_key_instructions(
        self, table: TableSpec, new_columns: Sequence[str] | None
    ) -> AlterInstructions: ...

    @abstractmethod
    def get_change_comment_instructions(
        self, table: TableSpec, comment: str | None
    ) -> AlterInstructions: ...

    def _foreign_key_constraint(self, table_name: str, foreign_key: ForeignKey) -> str:
        """Resolve the constraint to drop, by name or by local columns."""
        if foreign_key.constraint:
            return foreign_key.constraint
        for name, columns in self.get_foreign_keys(table_name).items():
            if _same_columns(columns, foreign_key.columns):
                return name
        raise SchemaError(
            f"No foreign key on column(s) `{', '.join(foreign_key.columns)}` exists",
            table=table_name,
        )

    # ── Data ──────────────────────────────────────────────────────────

    def insert_statement(
        self, table: TableSpec, columns: Sequence[str], ignore_duplicates: bool
    ) -> tuple[str, str]:
        """Head (``INSERT ... (cols)``) and tail of an insert statement."""
        verb = self._insert_ignore_verb() if ignore_duplicates else "INSERT INTO"
        head = f"{verb} {self.quote_table_name(table.name)} ({self.column_list(columns)})"
        return head, ""

    def _insert_ignore_verb(self) -> str:
        return "INSERT IGNORE INTO"

    def _bind_value(self, value: Any) -> Any:
        if isinstance(value, bool):
            return self.cast_to_bool(value)
        return value

    def insert(
        self, table: TableSpec, row: Mapping[str, Any], ignore_duplicates: bool = False
    ) -> None:
        columns = list(row)
        head, tail = self.insert_statement(table, columns, ignore_duplicates)
        if self._dry_run:
            values = ", ".join(self.quote_value(v) for v in row.values())
            self.execute(f"{head} VALUES ({values}){tail}")
            return
        params = {f"p{i}": self._bind_value(v) for i, v in enumerate(row.values())}
        placeholders = ", ".join(f":{key}" for key in params)
        self.execute(f"{head} VALUES ({placeholders}){tail}", params)

    def bulkinsert(
        self,
        table: TableSpec,
        rows: Sequence[Mapping[str, Any]],
        ignore_duplicates: bool = False,
    ) -> None:
        if not rows:
            return
        head, tail = self.insert_statement(table, list(rows[0]), ignore_duplicates)
        if self._dry_run:
            values = ", ".join(
                "(" + ", ".join(self.quote_value(v) for v in row.values()) + ")" for row in rows
            )
            self.execute(f"{head} VALUES {values}{tail}")
            return
        params: dict[str, Any] = {}
        groups = []
        for r, row in enumerate(rows):
            keys = []
            for c, value in enumerate(row.values()):
                key = f"p{r}_{c}"
                params[key] = self._bind_value(value)
                keys.append(f":{key}")
            groups.append("(" + ", ".join(keys) + ")")
        self.execute(f"{head} VALUES {', '.join(groups)}{tail}", params)

    # ── Ledger ────────────────────────────────────────────────────────

    @property
    def schema_table_name(self) -> str:
        return self._options.migration_table

    def has_schema_table(self) -> bool:
        return self.has_table(self.schema_table_name)

    def create_schema_table(self) -> None:
        from dbmigrate.table import Table

        logger.debug("Creating migration ledger table %s", self.schema_table_name)
        (
            Table(self.schema_table_name, adapter=self, id=False, primary_key="version")
            .add_column("version", ColumnType.BIG_INTEGER)
            .add_column("migration_name", ColumnType.STRING, limit=100, null=True)
            .add_column("start_time", ColumnType.TIMESTAMP, null=True)
            .add_column("end_time", ColumnType.TIMESTAMP, null=True)
            .add_column("breakpoint", ColumnType.BOOLEAN, default=False)
            .save()
        )

