"""Plan - turns an Intent into an execution-safe sequence of table steps.

Actions are sorted into fixed stages. Within a stage they are grouped per
table so a dialect can fold them into a single ALTER statement. The stage
order puts drops before the additions they might conflict with, and puts
foreign keys after every table and column they could reference.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING, Iterable, Iterator, Union

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
    retarget,
)
from dbmigrate.plan.intent import Intent
from dbmigrate.schema import Column, ForeignKey, Index, TableSpec

if TYPE_CHECKING:
    from dbmigrate.adapters.base import AdapterInterface

logger = logging.getLogger("dbmigrate")


class Stage(IntEnum):
    FOREIGN_KEY_DROPS = 1
    TABLE_DROPS = 2
    TABLE_CREATES = 3
    TABLE_RENAMES = 4
    INDEX_DROPS = 5
    COLUMN_REMOVES = 6
    COLUMN_UPDATES = 7
    COLUMN_CHANGES = 8
    INDEX_ADDS = 9
    TABLE_PROPERTIES = 10
    FOREIGN_KEY_ADDS = 11


_STAGE_OF: dict[type, Stage] = {
    DropForeignKey: Stage.FOREIGN_KEY_DROPS,
    DropTable: Stage.TABLE_DROPS,
    RenameTable: Stage.TABLE_RENAMES,
    DropIndex: Stage.INDEX_DROPS,
    RemoveColumn: Stage.COLUMN_REMOVES,
    AddColumn: Stage.COLUMN_UPDATES,
    RenameColumn: Stage.COLUMN_UPDATES,
    ChangeColumn: Stage.COLUMN_CHANGES,
    AddIndex: Stage.INDEX_ADDS,
    ChangePrimaryKey: Stage.TABLE_PROPERTIES,
    ChangeComment: Stage.TABLE_PROPERTIES,
    AddForeignKey: Stage.FOREIGN_KEY_ADDS,
}


@dataclass
class NewTable:
    """A table to create, with the columns and indexes folded into it."""

    table: TableSpec
    columns: list[Column] = field(default_factory=list)
    indexes: list[Index] = field(default_factory=list)


@dataclass
class AlterTable:
    """Actions against one existing table, executed together."""

    table: TableSpec
    actions: list[Action] = field(default_factory=list)


Step = Union[NewTable, AlterTable]


class Plan:
    """An ordered, deduplicated arrangement of an Intent.

    When *target* is given and does not exist yet, a ``CreateTable`` for it
    is appended unless the Intent already creates, renames or drops it.
    """

    def __init__(
        self,
        intent: Intent,
        *,
        target: TableSpec | None = None,
        target_exists: bool = True,
    ) -> None:
        actions = list(intent)
        if target is not None and not target_exists and not _manages_lifecycle(actions, target.name):
            actions.append(CreateTable(target))

        self._creates: dict[str, NewTable] = {}
        self._pending: list[tuple[Stage, Action]] = []
        self._gather(_forget_dropped(actions))
        self._steps = self._arrange()

    # ── Public API ────────────────────────────────────────────────────

    @property
    def steps(self) -> list[Step]:
        return list(self._steps)

    @property
    def actions(self) -> list[Action]:
        """The flattened execution sequence."""
        return list(self._flatten())

    @property
    def tables_created(self) -> list[str]:
        return list(self._creates)

    def __len__(self) -> int:
        return len(self._steps)

    def execute(self, adapter: AdapterInterface) -> None:
        for step in self._steps:
            if isinstance(step, NewTable):
                logger.debug("Plan: create %s", step.table.name)
                adapter.create_table(step.table, step.columns, step.indexes)
            else:
                logger.debug(
                    "Plan: %d action(s) on %s", len(step.actions), step.table.name
                )
                adapter.execute_actions(step.table, step.actions)

    # ── Gathering ─────────────────────────────────────────────────────

    def _gather(self, actions: list[Action]) -> None:
        for action in actions:
            if isinstance(action, CreateTable):
                # Resolve the key now so conflicts fail before any SQL runs.
                action.table.options.primary_key_columns(table=action.table.name)
                self._creates.setdefault(action.table.name, NewTable(action.table))

        for action in actions:
            if isinstance(action, CreateTable):
                continue
            new = self._creates.get(action.table.name)
            if new is not None and isinstance(action, AddColumn):
                if action.column not in new.columns:
                    new.columns.append(action.column)
                continue
            if new is not None and isinstance(action, AddIndex):
                if action.index not in new.indexes:
                    new.indexes.append(action.index)
                continue
            if isinstance(action, RenameColumn) and self._coalesce_rename(action, new):
                continue
            if isinstance(action, ChangeColumn) and self._coalesce_change(action, new):
                continue
            self._pending.append((_STAGE_OF[type(action)], action))

    def _coalesce_rename(self, action: RenameColumn, new: NewTable | None) -> bool:
        """Fold a rename of a column added in this Intent into its addition."""
        old, renamed = action.column_name, action.new_name
        if new is not None:
            for i, column in enumerate(new.columns):
                if column.name == old:
                    new.columns[i] = column.with_name(renamed)
                    self._rewrite_column_refs(action.table.name, old, renamed)
                    return True
            return False
        for i, (stage, pending) in enumerate(self._pending):
            if (
                isinstance(pending, AddColumn)
                and pending.table.name == action.table.name
                and pending.column.name == old
            ):
                self._pending[i] = (stage, AddColumn(pending.table, pending.column.with_name(renamed)))
                self._rewrite_column_refs(action.table.name, old, renamed)
                return True
        return False

    def _coalesce_change(self, action: ChangeColumn, new: NewTable | None) -> bool:
        """Replace the definition of a column added in this Intent."""
        old, replacement = action.column_name, action.column
        if new is not None:
            for i, column in enumerate(new.columns):
                if column.name == old:
                    new.columns[i] = replacement
                    self._rewrite_column_refs(action.table.name, old, replacement.name)
                    return True
            return False
        for i, (stage, pending) in enumerate(self._pending):
            if (
                isinstance(pending, AddColumn)
                and pending.table.name == action.table.name
                and pending.column.name == old
            ):
                self._pending[i] = (stage, AddColumn(pending.table, replacement))
                self._rewrite_column_refs(action.table.name, old, replacement.name)
                return True
        return False

    def _rewrite_column_refs(self, table_name: str, old: str, new_name: str) -> None:
        if old == new_name:
            return
        created = self._creates.get(table_name)
        if created is not None:
            created.indexes = [_rename_in_index(ix, old, new_name) for ix in created.indexes]
        for i, (stage, pending) in enumerate(self._pending):
            if pending.table.name != table_name:
                continue
            if isinstance(pending, AddIndex):
                self._pending[i] = (stage, AddIndex(pending.table, _rename_in_index(pending.index, old, new_name)))
            elif isinstance(pending, AddForeignKey):
                self._pending[i] = (stage, AddForeignKey(pending.table, _rename_in_fk(pending.foreign_key, old, new_name)))

    # ── Arrangement ───────────────────────────────────────────────────

    def _arrange(self) -> list[Step]:
        renames = _rename_map(action for _, action in self._pending)
        buckets: dict[Stage, dict[str, AlterTable]] = {}

        for stage, action in self._pending:
            if stage > Stage.TABLE_RENAMES and action.table.name in renames:
                action = retarget(action, action.table.with_name(renames[action.table.name]))
            groups = buckets.setdefault(stage, {})
            group = groups.get(action.table.name)
            if group is None:
                group = groups[action.table.name] = AlterTable(action.table)
            if action not in group.actions:
                group.actions.append(action)

        steps: list[Step] = []
        for stage in Stage:
            if stage == Stage.TABLE_CREATES:
                steps.extend(self._creates.values())
            else:
                steps.extend(buckets.get(stage, {}).values())
        return steps

    def _flatten(self) -> Iterator[Action]:
        for step in self._steps:
            if isinstance(step, NewTable):
                yield CreateTable(step.table)
                for column in step.columns:
                    yield AddColumn(step.table, column)
                for index in step.indexes:
                    yield AddIndex(step.table, index)
            else:
                yield from step.actions


# ── Helpers ──────────────────────────────────────────────────────────


def _manages_lifecycle(actions: list[Action], table_name: str) -> bool:
    return any(
        isinstance(a, (CreateTable, RenameTable, DropTable)) and a.table.name == table_name
        for a in actions
    )


def _forget_dropped(actions: list[Action]) -> list[Action]:
    """Discard actions on a table that come before that table's DropTable."""
    forgotten: set[int] = set()
    for i, action in enumerate(actions):
        if not isinstance(action, DropTable):
            continue
        for j in range(i):
            earlier = actions[j]
            if earlier.table.name == action.table.name and not isinstance(earlier, DropTable):
                forgotten.add(j)
    return [a for j, a in enumerate(actions) if j not in forgotten]


def _rename_map(actions: Iterable[Action]) -> dict[str, str]:
    """Map each renamed table to its final name, following chains."""
    direct: dict[str, str] = {}
    for action in actions:
        if isinstance(action, RenameTable):
            direct[action.table.name] = action.new_name
    resolved: dict[str, str] = {}
    for old in direct:
        name, seen = old, {old}
        while name in direct and direct[name] not in seen:
            name = direct[name]
            seen.add(name)
        resolved[old] = name
    return resolved


def _rename_in_index(index: Index, old: str, new: str) -> Index:
    if not index.columns or old not in index.columns:
        return index
    update: dict = {"columns": tuple(new if c == old else c for c in index.columns)}
    if isinstance(index.limit, dict):
        update["limit"] = {(new if k == old else k): v for k, v in index.limit.items()}
    if index.order:
        update["order"] = {(new if k == old else k): v for k, v in index.order.items()}
    return index.model_copy(update=update)


def _rename_in_fk(fk: ForeignKey, old: str, new: str) -> ForeignKey:
    if old not in fk.columns:
        return fk
    return fk.model_copy(update={"columns": tuple(new if c == old else c for c in fk.columns)})
