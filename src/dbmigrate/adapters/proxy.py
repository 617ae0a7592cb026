"""Recording adapter used to reverse ``change()`` migrations.

Running a ``change()`` body against a :class:`ProxyAdapter` records every
schema action instead of executing it; :meth:`ProxyAdapter.get_inverted_commands`
then yields the actions that undo them, newest first. Reads pass through to
the real adapter so table handles can still introspect.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence, TextIO

from dbmigrate.actions import Action, CreateTable, DropIndex
from dbmigrate.adapters.base import AdapterInterface, SqlType
from dbmigrate.exceptions import IrreversibleActionError
from dbmigrate.literal import Literal
from dbmigrate.plan import Intent
from dbmigrate.schema import Column, Index, TableSpec

logger = logging.getLogger("dbmigrate")


class ProxyAdapter(AdapterInterface):
    """Wraps an adapter: reads are delegated, schema writes are recorded."""

    def __init__(self, adapter: AdapterInterface) -> None:
        self._adapter = adapter
        self._recorded: list[Action] = []

    @property
    def adapter(self) -> AdapterInterface:
        return self._adapter

    @property
    def recorded(self) -> list[Action]:
        return list(self._recorded)

    def get_inverted_commands(self) -> Intent:
        """The inverse of every recorded action, in reverse order.

        Raises IrreversibleActionError for the first action with no inverse.
        """
        return Intent(action.invert() for action in reversed(self._recorded))

    # ── Recording ─────────────────────────────────────────────────────

    def create_table(
        self, table: TableSpec, columns: Sequence[Column] = (), indexes: Sequence[Index] = ()
    ) -> None:
        # Dropping the table undoes its columns and indexes too.
        self._recorded.append(CreateTable(table))

    def execute_actions(self, table: TableSpec, actions: Sequence[Action]) -> None:
        self._recorded.extend(actions)

    def drop_index(self, table_name: str, columns: str | Sequence[str]) -> bool:
        self._recorded.append(DropIndex.build(TableSpec(table_name), columns))
        return True

    def drop_index_by_name(self, table_name: str, index_name: str) -> bool:
        self._recorded.append(DropIndex.build_by_name(TableSpec(table_name), index_name))
        return True

    def insert(
        self, table: TableSpec, row: Mapping[str, Any], ignore_duplicates: bool = False
    ) -> None:
        logger.warning("Ignoring insert into %s while reversing a change() migration", table.name)

    def bulkinsert(
        self,
        table: TableSpec,
        rows: Sequence[Mapping[str, Any]],
        ignore_duplicates: bool = False,
    ) -> None:
        logger.warning(
            "Ignoring %d row(s) for %s while reversing a change() migration", len(rows), table.name
        )

    def truncate_table(self, table_name: str) -> None:
        raise IrreversibleActionError(
            f"Truncating {table_name} cannot be reversed automatically", table=table_name
        )

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> int:
        raise IrreversibleActionError("Raw SQL cannot be reversed automatically")

    # ── Delegation ────────────────────────────────────────────────────

    def connect(self) -> None:
        self._adapter.connect()

    def disconnect(self) -> None:
        self._adapter.disconnect()

    def set_output(self, output: TextIO | None) -> None:
        self._adapter.set_output(output)

    def set_dry_run(self, dry_run: bool) -> None:
        self._adapter.set_dry_run(dry_run)

    def is_dry_run(self) -> bool:
        return self._adapter.is_dry_run()

    def is_dry_run_table(self, table_name: str) -> bool:
        return self._adapter.is_dry_run_table(table_name)

    def has_table(self, table_name: str) -> bool:
        return self._adapter.has_table(table_name)

    def has_column(self, table_name: str, column_name: str) -> bool:
        return self._adapter.has_column(table_name, column_name)

    def get_columns(self, table_name: str) -> list[Column]:
        return self._adapter.get_columns(table_name)

    def has_index(self, table_name: str, columns: str | Sequence[str]) -> bool:
        return self._adapter.has_index(table_name, columns)

    def has_index_by_name(self, table_name: str, index_name: str) -> bool:
        return self._adapter.has_index_by_name(table_name, index_name)

    def has_primary_key(
        self, table_name: str, columns: str | Sequence[str], constraint: str | None = None
    ) -> bool:
        return self._adapter.has_primary_key(table_name, columns, constraint)

    def has_foreign_key(
        self, table_name: str, columns: str | Sequence[str], constraint: str | None = None
    ) -> bool:
        return self._adapter.has_foreign_key(table_name, columns, constraint)

    def get_column_types(self) -> list[str]:
        return self._adapter.get_column_types()

    def is_valid_column_type(self, column: Column) -> bool:
        return self._adapter.is_valid_column_type(column)

    def get_sql_type(self, type: str | Literal, limit: int | None = None) -> SqlType:
        return self._adapter.get_sql_type(type, limit)

    def fetch_all(self, sql: str, params: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        return self._adapter.fetch_all(sql, params)

    def fetch_row(self, sql: str, params: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
        return self._adapter.fetch_row(sql, params)

    def has_transactions(self) -> bool:
        return self._adapter.has_transactions()

    def begin_transaction(self) -> None:
        self._adapter.begin_transaction()

    def commit_transaction(self) -> None:
        self._adapter.commit_transaction()

    def rollback_transaction(self) -> None:
        self._adapter.rollback_transaction()

    def quote_table_name(self, table_name: str) -> str:
        return self._adapter.quote_table_name(table_name)

    def quote_column_name(self, column_name: str) -> str:
        return self._adapter.quote_column_name(column_name)

    def quote_value(self, value: Any) -> str:
        return self._adapter.quote_value(value)

    @property
    def schema_table_name(self) -> str:
        return self._adapter.schema_table_name

    def has_schema_table(self) -> bool:
        return self._adapter.has_schema_table()

    def create_schema_table(self) -> None:
        self._adapter.create_schema_table()
