"""Actions - immutable descriptions of one schema edit each.

A migration's table handle records actions into an Intent; the Plan orders
them and the adapter turns each one into SQL. ``invert()`` gives the action
that undoes it, which is how ``change()`` migrations are rolled back.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Sequence, Union

from dbmigrate.exceptions import IrreversibleActionError
from dbmigrate.literal import Literal
from dbmigrate.schema import Column, ColumnType, ForeignKey, Index, TableSpec


def _irreversible(action: Action) -> IrreversibleActionError:
    return IrreversibleActionError(
        f"{action.describe()} cannot be reversed automatically",
        table=action.table.name,
    )


@dataclass(frozen=True)
class CreateTable:
    """Create a table (its columns and indexes are folded in by the Plan)."""

    table: TableSpec

    def describe(self) -> str:
        return f"Create table {self.table.name}"

    def invert(self) -> Action:
        return DropTable(self.table)


@dataclass(frozen=True)
class DropTable:
    table: TableSpec

    def describe(self) -> str:
        return f"Drop table {self.table.name}"

    def invert(self) -> Action:
        raise _irreversible(self)


@dataclass(frozen=True)
class RenameTable:
    table: TableSpec
    new_name: str

    def describe(self) -> str:
        return f"Rename table {self.table.name} to {self.new_name}"

    def invert(self) -> Action:
        return RenameTable(self.table.with_name(self.new_name), self.table.name)


@dataclass(frozen=True)
class AddColumn:
    table: TableSpec
    column: Column

    @classmethod
    def build(
        cls,
        table: TableSpec,
        name: str,
        type: str | ColumnType | Literal,
        **options: Any,
    ) -> AddColumn:
        return cls(table, Column.build(name, type, **options))

    def describe(self) -> str:
        return f"Add column {self.column.name} to {self.table.name}"

    def invert(self) -> Action:
        return RemoveColumn(self.table, self.column.name)


@dataclass(frozen=True)
class RemoveColumn:
    table: TableSpec
    column_name: str

    def describe(self) -> str:
        return f"Remove column {self.column_name} from {self.table.name}"

    def invert(self) -> Action:
        raise _irreversible(self)


@dataclass(frozen=True)
class RenameColumn:
    table: TableSpec
    column_name: str
    new_name: str

    def describe(self) -> str:
        return f"Rename column {self.column_name} to {self.new_name} on {self.table.name}"

    def invert(self) -> Action:
        return RenameColumn(self.table, self.new_name, self.column_name)


@dataclass(frozen=True)
class ChangeColumn:
    """Replace a column's definition (and possibly its name)."""

    table: TableSpec
    column_name: str
    column: Column

    @classmethod
    def build(
        cls,
        table: TableSpec,
        column_name: str,
        type: str | ColumnType | Literal,
        **options: Any,
    ) -> ChangeColumn:
        return cls(table, column_name, Column.build(column_name, type, **options))

    def describe(self) -> str:
        return f"Change column {self.column_name} on {self.table.name}"

    def invert(self) -> Action:
        raise _irreversible(self)


@dataclass(frozen=True)
class AddIndex:
    table: TableSpec
    index: Index

    @classmethod
    def build(cls, table: TableSpec, columns: str | Sequence[str], **options: Any) -> AddIndex:
        return cls(table, Index.build(_column_list(columns), **options))

    def describe(self) -> str:
        label = self.index.name or ", ".join(self.index.columns or ())
        return f"Add index {label} to {self.table.name}"

    def invert(self) -> Action:
        if self.index.name:
            return DropIndex.build_by_name(self.table, self.index.name)
        return DropIndex.build(self.table, self.index.columns or ())


@dataclass(frozen=True)
class DropIndex:
    """Drop an index by its full column list or by name.

    When ``if_exists`` is false, finding no matching index is an error.
    """

    table: TableSpec
    index: Index
    if_exists: bool = False

    @classmethod
    def build(
        cls,
        table: TableSpec,
        columns: str | Sequence[str],
        *,
        if_exists: bool = False,
    ) -> DropIndex:
        return cls(table, Index.build(_column_list(columns)), if_exists)

    @classmethod
    def build_by_name(cls, table: TableSpec, name: str, *, if_exists: bool = False) -> DropIndex:
        return cls(table, Index.build(None, name=name), if_exists)

    def describe(self) -> str:
        if self.index.name:
            return f"Drop index {self.index.name} from {self.table.name}"
        return f"Drop index on ({', '.join(self.index.columns or ())}) from {self.table.name}"

    def invert(self) -> Action:
        raise _irreversible(self)


@dataclass(frozen=True)
class AddForeignKey:
    table: TableSpec
    foreign_key: ForeignKey

    @classmethod
    def build(
        cls,
        table: TableSpec,
        columns: str | Sequence[str],
        referenced_table: str,
        referenced_columns: str | Sequence[str] = ("id",),
        **options: Any,
    ) -> AddForeignKey:
        fk = ForeignKey.build(
            _column_list(columns),
            referenced_table,
            _column_list(referenced_columns),
            table=table.name,
            **options,
        )
        return cls(table, fk)

    def describe(self) -> str:
        return (
            f"Add foreign key ({', '.join(self.foreign_key.columns)}) on {self.table.name} "
            f"referencing {self.foreign_key.referenced_table}"
        )

    def invert(self) -> Action:
        return DropForeignKey(self.table, self.foreign_key)


@dataclass(frozen=True)
class DropForeignKey:
    table: TableSpec
    foreign_key: ForeignKey

    @classmethod
    def build(
        cls,
        table: TableSpec,
        columns: str | Sequence[str],
        constraint: str | None = None,
    ) -> DropForeignKey:
        local = _column_list(columns)
        # Only the local side matters when dropping.
        fk = ForeignKey.build(
            local,
            "",
            local,
            table=table.name,
            constraint=constraint,
        )
        return cls(table, fk)

    def describe(self) -> str:
        label = self.foreign_key.constraint or ", ".join(self.foreign_key.columns)
        return f"Drop foreign key {label} from {self.table.name}"

    def invert(self) -> Action:
        raise _irreversible(self)


@dataclass(frozen=True)
class ChangePrimaryKey:
    table: TableSpec
    new_columns: tuple[str, ...] | None

    def describe(self) -> str:
        cols = ", ".join(self.new_columns) if self.new_columns else "none"
        return f"Change primary key of {self.table.name} to ({cols})"

    def invert(self) -> Action:
        raise _irreversible(self)


@dataclass(frozen=True)
class ChangeComment:
    table: TableSpec
    new_comment: str | None

    def describe(self) -> str:
        return f"Change comment of {self.table.name}"

    def invert(self) -> Action:
        raise _irreversible(self)


def _column_list(columns: str | Sequence[str]) -> tuple[str, ...]:
    if isinstance(columns, str):
        return (columns,)
    return tuple(columns)


Action = Union[
    CreateTable,
    DropTable,
    RenameTable,
    AddColumn,
    RemoveColumn,
    RenameColumn,
    ChangeColumn,
    AddIndex,
    DropIndex,
    AddForeignKey,
    DropForeignKey,
    ChangePrimaryKey,
    ChangeComment,
]


def retarget(action: Action, table: TableSpec) -> Action:
    """Return *action* pointed at another table (used after a rename)."""
    return replace(action, table=table)
