"""Base class for migration scripts.

A migration subclasses :class:`AbstractMigration` and overrides either
``change()`` (reversed automatically) or the ``up()``/``down()`` pair::

    class CreateUsers(AbstractMigration):
        def change(self):
            (self.table("users")
                .add_column("email", "string", limit=190)
                .add_index("email", unique=True)
                .create())
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from dbmigrate.adapters.base import AdapterInterface
from dbmigrate.exceptions import ConfigurationError, PendingActionsError
from dbmigrate.table import Table

logger = logging.getLogger("dbmigrate")


class AbstractMigration:
    """One versioned schema change.

    The manager binds an adapter before calling ``up``/``down``/``change``
    and then runs :meth:`post_flight_check`.
    """

    def __init__(self, version: int, adapter: AdapterInterface | None = None) -> None:
        self.version = int(version)
        self._adapter = adapter
        self._tables: list[Table] = []
        self._migrating_up = True

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def adapter(self) -> AdapterInterface:
        if self._adapter is None:
            raise ConfigurationError("There is no database adapter set yet, cannot proceed")
        return self._adapter

    def set_adapter(self, adapter: AdapterInterface) -> AbstractMigration:
        self._adapter = adapter
        return self

    def set_migrating_up(self, up: bool) -> AbstractMigration:
        self._migrating_up = up
        return self

    def is_migrating_up(self) -> bool:
        """True while applying, False while reverting."""
        return self._migrating_up

    # ── Bodies ────────────────────────────────────────────────────────

    def change(self) -> None:
        """Reversible body. Override instead of ``up``/``down``."""

    def up(self) -> None:
        pass

    def down(self) -> None:
        pass

    @classmethod
    def has_change(cls) -> bool:
        return cls.change is not AbstractMigration.change

    # ── Helpers for migration bodies ──────────────────────────────────

    def table(self, name: str, **options: Any) -> Table:
        """A table handle bound to this migration's adapter."""
        table = Table(name, adapter=self.adapter, **options)
        self._tables.append(table)
        return table

    def has_table(self, name: str) -> bool:
        return self.adapter.has_table(name)

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> int:
        return self.adapter.execute(sql, params)

    def fetch_all(self, sql: str, params: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        return self.adapter.fetch_all(sql, params)

    def fetch_row(self, sql: str, params: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
        return self.adapter.fetch_row(sql, params)

    def insert(self, table_name: str, rows: Mapping[str, Any] | Sequence[Mapping[str, Any]]) -> None:
        """Insert one row or many into an existing table right away."""
        table = Table(table_name, adapter=self.adapter)
        table.insert(rows).save()

    # ── Checks ────────────────────────────────────────────────────────

    def pre_flight_check(self) -> None:
        cls = type(self)
        if cls.has_change() and (
            cls.up is not AbstractMigration.up or cls.down is not AbstractMigration.down
        ):
            logger.warning(
                "Migration %s_%s defines change() and up()/down(); up()/down() are ignored",
                self.version,
                self.name,
            )

    def post_flight_check(self) -> None:
        """Refuse to finish while a table handle still holds unsaved changes."""
        for table in self._tables:
            if table.has_pending_actions():
                raise PendingActionsError(
                    f"Migration {self.version}_{self.name} has pending actions after execution!",
                    version=self.version,
                )

    def __repr__(self) -> str:
        return f"<{self.name} version={self.version}>"
