"""Migration recorder - track applied versions in the ledger table."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from dbmigrate.adapters.base import AdapterInterface
from dbmigrate.schema import TableSpec

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def now_timestamp() -> str:
    """Current UTC time in the format written to the ledger."""
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


@dataclass
class MigrationRecord:
    """One ledger row."""

    version: int
    migration_name: str | None
    start_time: Any
    end_time: Any
    breakpoint: bool


class MigrationRecorder:
    """Read and write the ledger through an adapter.

    Every write goes through the adapter's ``execute``/``insert``, so in
    dry-run mode the statements are printed instead of run.
    """

    def __init__(self, adapter: AdapterInterface) -> None:
        self._adapter = adapter

    @property
    def table_name(self) -> str:
        return self._adapter.schema_table_name

    def _quoted(self) -> tuple[str, str, str, str]:
        q = self._adapter.quote_column_name
        return self._adapter.quote_table_name(self.table_name), q("version"), q("breakpoint"), q("start_time")

    def ensure_schema(self) -> None:
        """Create the ledger table if it doesn't exist."""
        if not self._adapter.has_schema_table():
            self._adapter.create_schema_table()

    # ── Reads ─────────────────────────────────────────────────────────

    def get_version_log(self) -> dict[int, MigrationRecord]:
        """Every ledger row keyed by version, ascending."""
        if self._adapter.is_dry_run_table(self.table_name):
            return {}
        table, version, _, _ = self._quoted()
        rows = self._adapter.fetch_all(f"SELECT * FROM {table} ORDER BY {version} ASC")
        log: dict[int, MigrationRecord] = {}
        for row in rows:
            record = MigrationRecord(
                version=int(row["version"]),
                migration_name=row.get("migration_name"),
                start_time=row.get("start_time"),
                end_time=row.get("end_time"),
                breakpoint=bool(row.get("breakpoint")),
            )
            log[record.version] = record
        return log

    def get_applied(self) -> list[int]:
        """Return sorted list of applied versions."""
        return sorted(self.get_version_log())

    # ── Writes ────────────────────────────────────────────────────────

    def record_applied(
        self, version: int, name: str, start_time: str, end_time: str
    ) -> None:
        """Record that a migration has been applied."""
        self._adapter.insert(
            TableSpec(self.table_name),
            {
                "version": version,
                "migration_name": name[:100],
                "start_time": start_time,
                "end_time": end_time,
                "breakpoint": False,
            },
        )

    def record_reverted(self, version: int) -> None:
        """Remove the record for a reverted migration."""
        table, version_col, _, _ = self._quoted()
        self._adapter.execute(
            f"DELETE FROM {table} WHERE {version_col} = {self._adapter.quote_value(int(version))}"
        )

    # ── Breakpoints ───────────────────────────────────────────────────
    # ``start_time = start_time`` keeps MySQL from bumping an auto-updated
    # timestamp column.

    def toggle_breakpoint(self, version: int) -> None:
        table, version_col, bp, start = self._quoted()
        on, off = self._adapter.quote_value(True), self._adapter.quote_value(False)
        self._adapter.execute(
            f"UPDATE {table} SET {bp} = CASE {bp} WHEN {on} THEN {off} ELSE {on} END, "
            f"{start} = {start} WHERE {version_col} = {self._adapter.quote_value(int(version))}"
        )

    def set_breakpoint(self, version: int, value: bool = True) -> None:
        table, version_col, bp, start = self._quoted()
        self._adapter.execute(
            f"UPDATE {table} SET {bp} = {self._adapter.quote_value(value)}, {start} = {start} "
            f"WHERE {version_col} = {self._adapter.quote_value(int(version))}"
        )

    def reset_all_breakpoints(self) -> int:
        """Clear every breakpoint; returns the number of rows changed."""
        table, _, bp, start = self._quoted()
        off = self._adapter.quote_value(False)
        return self._adapter.execute(
            f"UPDATE {table} SET {bp} = {off}, {start} = {start} WHERE {bp} <> {off}"
        )
