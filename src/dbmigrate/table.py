"""Table handle - the fluent API migrations use to describe schema edits.

Mutators only record actions; nothing touches the database until
``create()``, ``update()`` or ``save()`` plans and executes them::

    (
        Table("users", adapter=adapter)
        .add_column("email", "string", limit=190)
        .add_index("email", unique=True)
        .add_timestamps()
        .save()
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from dbmigrate.actions import (
    AddColumn,
    AddForeignKey,
    AddIndex,
    ChangeColumn,
    ChangeComment,
    ChangePrimaryKey,
    DropForeignKey,
    DropIndex,
    DropTable,
    RemoveColumn,
    RenameColumn,
    RenameTable,
)
from dbmigrate.exceptions import (
    ColumnNotFoundError,
    ConfigurationError,
    InvalidColumnTypeError,
    SchemaError,
)
from dbmigrate.literal import Literal
from dbmigrate.plan import Intent, Plan
from dbmigrate.schema import Column, ColumnType, ForeignKey, TableOptions, TableSpec

if TYPE_CHECKING:
    from dbmigrate.adapters.base import AdapterInterface

logger = logging.getLogger("dbmigrate")


class Table:
    """A named table plus the edits and rows pending for it."""

    def __init__(self, name: str, *, adapter: AdapterInterface | None = None, **options: Any) -> None:
        self._table = TableSpec(name, TableOptions.build(table=name, **options))
        self._adapter = adapter
        self._intent = Intent()
        self._data: list[dict[str, Any]] = []
        self._ignore_duplicates = False
        self._saved = False

    def __repr__(self) -> str:
        return f"Table({self._table.name!r}, pending={len(self._intent)})"

    # ── Identity ──────────────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self._table.name

    @property
    def table(self) -> TableSpec:
        return self._table

    @property
    def options(self) -> TableOptions:
        return self._table.options

    @property
    def adapter(self) -> AdapterInterface:
        if self._adapter is None:
            raise ConfigurationError("There is no database adapter set yet, cannot proceed")
        return self._adapter

    def set_adapter(self, adapter: AdapterInterface) -> Table:
        self._adapter = adapter
        return self

    @property
    def intent(self) -> Intent:
        return self._intent

    @property
    def data(self) -> list[dict[str, Any]]:
        return list(self._data)

    def _record(self, action: Any) -> Table:
        self._intent.add_action(action)
        self._saved = False
        return self

    # ── Introspection ─────────────────────────────────────────────────

    def exists(self) -> bool:
        return self.adapter.has_table(self.name)

    def has_column(self, column_name: str) -> bool:
        return self.adapter.has_column(self.name, column_name)

    def get_columns(self) -> list[Column]:
        return self.adapter.get_columns(self.name)

    def get_column(self, column_name: str) -> Column | None:
        for column in self.get_columns():
            if column.name == column_name:
                return column
        return None

    def has_index(self, columns: str | Sequence[str]) -> bool:
        return self.adapter.has_index(self.name, columns)

    def has_index_by_name(self, index_name: str) -> bool:
        return self.adapter.has_index_by_name(self.name, index_name)

    def has_foreign_key(self, columns: str | Sequence[str], constraint: str | None = None) -> bool:
        return self.adapter.has_foreign_key(self.name, columns, constraint)

    def has_primary_key(self, columns: str | Sequence[str], constraint: str | None = None) -> bool:
        return self.adapter.has_primary_key(self.name, columns, constraint)

    def has_pending_actions(self) -> bool:
        return bool(self._intent) or bool(self._data)

    # ── Columns ───────────────────────────────────────────────────────

    def add_column(self, name: str, type: str | ColumnType | Literal, **options: Any) -> Table:
        """Add a column built from a name, a type and its options."""
        return self.add_column_instance(Column.build(name, type, **options))

    def add_column_instance(self, column: Column) -> Table:
        """Add an already-built column."""
        if not self.adapter.is_valid_column_type(column):
            raise InvalidColumnTypeError(
                f'An invalid column type "{column.type}" was specified for column "{column.name}".',
                table=self.name,
                column=column.name,
            )
        return self._record(AddColumn(self._table, column))

    def remove_column(self, name: str) -> Table:
        return self._record(RemoveColumn(self._table, name))

    def rename_column(self, old_name: str, new_name: str) -> Table:
        return self._record(RenameColumn(self._table, old_name, new_name))

    def change_column(self, name: str, type: str | ColumnType | Literal, **options: Any) -> Table:
        return self.change_column_instance(name, Column.build(name, type, **options))

    def change_column_instance(self, name: str, column: Column) -> Table:
        if not self.adapter.is_valid_column_type(column):
            raise InvalidColumnTypeError(
                f'An invalid column type "{column.type}" was specified for column "{column.name}".',
                table=self.name,
                column=column.name,
            )
        return self._record(ChangeColumn(self._table, name, column))

    def add_timestamps(
        self,
        created_at: str | None = "created_at",
        updated_at: str | None = "updated_at",
        with_timezone: bool = False,
    ) -> Table:
        """Add ``created_at``/``updated_at`` timestamp columns."""
        if not created_at and not updated_at:
            raise SchemaError(
                "Cannot set both created_at and updated_at columns to false",
                table=self.name,
            )
        if created_at:
            self.add_column(
                created_at,
                ColumnType.TIMESTAMP,
                default="CURRENT_TIMESTAMP",
                timezone=with_timezone,
            )
        if updated_at:
            self.add_column(
                updated_at,
                ColumnType.TIMESTAMP,
                null=True,
                default=None,
                update="CURRENT_TIMESTAMP",
                timezone=with_timezone,
            )
        return self

    def add_timestamps_with_timezone(
        self,
        created_at: str | None = "created_at",
        updated_at: str | None = "updated_at",
    ) -> Table:
        return self.add_timestamps(created_at, updated_at, with_timezone=True)

    # ── Indexes and keys ──────────────────────────────────────────────

    def add_index(self, columns: str | Sequence[str], **options: Any) -> Table:
        return self._record(AddIndex.build(self._table, columns, **options))

    def remove_index(self, columns: str | Sequence[str], *, if_exists: bool = False) -> Table:
        return self._record(DropIndex.build(self._table, columns, if_exists=if_exists))

    def remove_index_by_name(self, name: str, *, if_exists: bool = False) -> Table:
        return self._record(DropIndex.build_by_name(self._table, name, if_exists=if_exists))

    def add_foreign_key(
        self,
        columns: str | Sequence[str],
        referenced_table: str,
        referenced_columns: str | Sequence[str] = ("id",),
        **options: Any,
    ) -> Table:
        return self._record(
            AddForeignKey.build(self._table, columns, referenced_table, referenced_columns, **options)
        )

    def add_foreign_key_with_name(
        self,
        name: str,
        columns: str | Sequence[str],
        referenced_table: str,
        referenced_columns: str | Sequence[str] = ("id",),
        **options: Any,
    ) -> Table:
        return self.add_foreign_key(
            columns, referenced_table, referenced_columns, constraint=name, **options
        )

    def add_foreign_key_instance(self, foreign_key: ForeignKey) -> Table:
        return self._record(AddForeignKey(self._table, foreign_key))

    def drop_foreign_key(self, columns: str | Sequence[str], constraint: str | None = None) -> Table:
        return self._record(DropForeignKey.build(self._table, columns, constraint))

    def change_primary_key(self, columns: str | Sequence[str] | None) -> Table:
        if isinstance(columns, str):
            columns = (columns,)
        return self._record(
            ChangePrimaryKey(self._table, tuple(columns) if columns is not None else None)
        )

    # ── Table-level ───────────────────────────────────────────────────

    def rename(self, new_name: str) -> Table:
        return self._record(RenameTable(self._table, new_name))

    def change_comment(self, comment: str | None) -> Table:
        return self._record(ChangeComment(self._table, comment))

    def drop(self) -> Table:
        return self._record(DropTable(self._table))

    # ── Data ──────────────────────────────────────────────────────────

    def insert(self, rows: Mapping[str, Any] | Sequence[Mapping[str, Any]]) -> Table:
        """Buffer one row (a mapping) or several (a sequence of mappings)."""
        if isinstance(rows, Mapping):
            rows = [rows]
        for row in rows:
            if row:
                self._data.append(dict(row))
        self._saved = False
        return self

    def insert_or_ignore(self, rows: Mapping[str, Any] | Sequence[Mapping[str, Any]]) -> Table:
        """Buffer rows that are skipped when they collide with a unique key."""
        self._ignore_duplicates = True
        return self.insert(rows)

    def reset_data(self) -> None:
        self._data = []
        self._ignore_duplicates = False

    def reset(self) -> None:
        self._intent = Intent()
        self.reset_data()

    def truncate(self) -> None:
        self.adapter.truncate_table(self.name)

    # ── Execution ─────────────────────────────────────────────────────

    def create(self) -> None:
        self._execute(exists=False)

    def update(self) -> None:
        self._check_renames()
        self._execute(exists=True)

    def save(self) -> None:
        """Create the table if it does not exist, otherwise update it."""
        if self._saved and not self.has_pending_actions():
            return
        if self.exists():
            self.update()
        else:
            self.create()

    def save_data(self) -> None:
        rows = self._data
        if not rows:
            return
        # Key sequences must match exactly, order included.
        keys = list(rows[0])
        if all(list(row) == keys for row in rows):
            self.adapter.bulkinsert(self._table, rows, self._ignore_duplicates)
        else:
            for row in rows:
                self.adapter.insert(self._table, row, self._ignore_duplicates)
        self.reset_data()

    def _execute(self, *, exists: bool) -> None:
        plan = Plan(self._intent, target=self._table, target_exists=exists)
        plan.execute(self.adapter)

        renamed_to = None
        for action in self._intent:
            if isinstance(action, RenameTable) and action.table.name in (self.name, renamed_to):
                renamed_to = action.new_name

        if renamed_to is not None:
            logger.debug("Table %s is now %s", self.name, renamed_to)
            self._table = self._table.with_name(renamed_to)
        self.save_data()
        self.reset()
        self._saved = True

    def _check_renames(self) -> None:
        known: set[str] = set()
        for action in self._intent:
            if isinstance(action, AddColumn):
                known.add(action.column.name)
            elif isinstance(action, RenameColumn):
                if action.column_name not in known and not self.has_column(action.column_name):
                    raise ColumnNotFoundError(
                        f"The specified column doesn't exist: {action.column_name}",
                        table=self.name,
                        column=action.column_name,
                    )
                known.add(action.new_name)
