"""Migration manager - apply, revert and report migrations against the ledger."""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from dbmigrate.adapters.base import AdapterInterface
from dbmigrate.adapters.proxy import ProxyAdapter
from dbmigrate.exceptions import (
    BreakpointReachedError,
    IrreversibleActionError,
    IrreversibleMigrationError,
    MigrationNotFoundError,
    MissingMigrationError,
)
from dbmigrate.migrations.loader import MigrationInfo, index_migrations, load_migrations
from dbmigrate.migrations.migration import AbstractMigration
from dbmigrate.migrations.recorder import MigrationRecord, MigrationRecorder, now_timestamp
from dbmigrate.plan import Plan

logger = logging.getLogger("dbmigrate")


class Direction(str, enum.Enum):
    UP = "up"
    DOWN = "down"


class MigrationState(str, enum.Enum):
    UP = "up"
    DOWN = "down"
    MISSING = "missing"


@dataclass
class MigrationStatus:
    version: int
    name: str | None
    state: MigrationState
    breakpoint: bool = False
    out_of_order: bool = False
    start_time: Any = None
    end_time: Any = None


@dataclass
class StatusReport:
    """Scripts and ledger rows merged into one list, sorted by version."""

    entries: list[MigrationStatus] = field(default_factory=list)

    @property
    def pending(self) -> list[MigrationStatus]:
        return [e for e in self.entries if e.state is MigrationState.DOWN]

    @property
    def missing(self) -> list[MigrationStatus]:
        return [e for e in self.entries if e.state is MigrationState.MISSING]

    @property
    def out_of_order(self) -> list[MigrationStatus]:
        return [e for e in self.entries if e.out_of_order]

    @property
    def has_pending(self) -> bool:
        return bool(self.pending)

    @property
    def has_missing(self) -> bool:
        return bool(self.missing)


class Manager:
    """Drives migrations for one adapter.

    Migrations come from *paths* (loaded lazily) or are passed in directly
    as ``MigrationInfo`` objects.
    """

    def __init__(
        self,
        adapter: AdapterInterface,
        paths: str | Path | Iterable[str | Path] | None = None,
        *,
        migrations: Iterable[MigrationInfo] | None = None,
    ) -> None:
        self._adapter = adapter
        self._paths = paths
        self._migrations: dict[int, MigrationInfo] | None = None
        if migrations is not None:
            self._migrations = index_migrations(migrations)
        self.recorder = MigrationRecorder(adapter)

    @property
    def adapter(self) -> AdapterInterface:
        return self._adapter

    def get_migrations(self) -> dict[int, MigrationInfo]:
        """Known migration scripts keyed by version, ascending."""
        if self._migrations is None:
            found = load_migrations(self._paths) if self._paths is not None else []
            self._migrations = {m.version: m for m in found}
        return self._migrations

    # ── Status ────────────────────────────────────────────────────────

    def status(self) -> StatusReport:
        self.recorder.ensure_schema()
        log = self.recorder.get_version_log()
        migrations = self.get_migrations()
        highest_applied = max(log, default=0)

        report = StatusReport()
        for version in sorted(set(log) | set(migrations)):
            record = log.get(version)
            info = migrations.get(version)
            if record is None:
                entry = MigrationStatus(
                    version=version,
                    name=info.name if info else None,
                    state=MigrationState.DOWN,
                    out_of_order=version < highest_applied,
                )
            else:
                entry = MigrationStatus(
                    version=version,
                    name=info.name if info else record.migration_name,
                    state=MigrationState.UP if info else MigrationState.MISSING,
                    breakpoint=record.breakpoint,
                    start_time=record.start_time,
                    end_time=record.end_time,
                )
            report.entries.append(entry)

        for entry in report.missing:
            logger.warning("Applied migration %s (%s) has no script", entry.version, entry.name)
        for entry in report.out_of_order:
            logger.warning("Migration %s (%s) is pending out of order", entry.version, entry.name)
        return report

    # ── Migrate / rollback ────────────────────────────────────────────

    def migrate(self, target: int | None = None, *, fake: bool = False) -> list[MigrationInfo]:
        """Apply pending migrations up to and including *target*.

        Returns the migrations that were applied.
        """
        self.recorder.ensure_schema()
        migrations = self.get_migrations()
        log = self.recorder.get_version_log()

        if target is not None and target != 0 and target not in migrations and target not in log:
            raise MigrationNotFoundError(f"Migration {target} was not found", version=target)

        applied: list[MigrationInfo] = []
        for version, info in migrations.items():
            if target is not None and version > target:
                break
            if version in log:
                continue
            self.execute_migration(info, Direction.UP, fake=fake)
            applied.append(info)

        if not applied:
            logger.info("No migrations to apply")
        return applied

    def rollback(
        self, target: int | None = None, *, force: bool = False, fake: bool = False
    ) -> list[MigrationInfo]:
        """Revert applied versions newer than *target*.

        With no target only the latest applied version is reverted; a target
        of 0 reverts everything. Returns the migrations that were reverted.
        A breakpoint stops the walk at its version and raises
        BreakpointReachedError unless *force* is set.
        """
        self.recorder.ensure_schema()
        migrations = self.get_migrations()
        log = self.recorder.get_version_log()
        applied = sorted(log, reverse=True)

        if not applied:
            logger.info("No migrations to rollback")
            return []
        if target is None:
            versions = applied[:1]
        elif target == 0:
            versions = applied
        elif target not in log:
            raise MigrationNotFoundError(f"Target version ({target}) not found", version=target)
        else:
            versions = [v for v in applied if v > target]

        for version in versions:
            if version not in migrations:
                raise MissingMigrationError(
                    f"Applied migration {version} ({log[version].migration_name}) has no script",
                    version=version,
                )

        reverted: list[MigrationInfo] = []
        for version in versions:
            # Newer versions are reverted; the breakpointed one stays applied.
            if log[version].breakpoint and not force:
                raise BreakpointReachedError(
                    f"Breakpoint reached at version {version}; use force to roll back past it",
                    version=version,
                    reverted=reverted,
                )
            info = migrations[version]
            self.execute_migration(info, Direction.DOWN, fake=fake)
            reverted.append(info)
        return reverted

    def execute_migration(
        self, info: MigrationInfo, direction: Direction, *, fake: bool = False
    ) -> None:
        """Run one migration and update the ledger, inside one transaction."""
        migration = info.instantiate()
        migration.set_adapter(self._adapter)
        migration.set_migrating_up(direction is Direction.UP)

        verb = "migrating" if direction is Direction.UP else "reverting"
        logger.info("== %s %s: %s%s", info.version, info.name, verb, " (fake)" if fake else "")
        started = time.monotonic()
        start_time = now_timestamp()

        use_transaction = self._adapter.has_transactions()
        if use_transaction:
            self._adapter.begin_transaction()
        try:
            if not fake:
                self._run(migration, direction)
            if direction is Direction.UP:
                self.recorder.record_applied(info.version, info.name, start_time, now_timestamp())
            else:
                self.recorder.record_reverted(info.version)
            if use_transaction:
                self._adapter.commit_transaction()
        except Exception:
            if use_transaction:
                self._adapter.rollback_transaction()
            raise

        done = "migrated" if direction is Direction.UP else "reverted"
        logger.info("== %s %s: %s %.4fs", info.version, info.name, done, time.monotonic() - started)

    def _run(self, migration: AbstractMigration, direction: Direction) -> None:
        migration.pre_flight_check()
        if direction is Direction.UP:
            if migration.has_change():
                migration.change()
            else:
                migration.up()
        elif migration.has_change():
            self._revert_change(migration)
        else:
            migration.down()
        migration.post_flight_check()

    def _revert_change(self, migration: AbstractMigration) -> None:
        proxy = ProxyAdapter(self._adapter)
        migration.set_adapter(proxy)
        try:
            migration.change()
            commands = proxy.get_inverted_commands()
        except IrreversibleActionError as e:
            raise IrreversibleMigrationError(
                f"Migration {migration.version}_{migration.name} cannot be reverted: {e}",
                version=migration.version,
            ) from e
        finally:
            migration.set_adapter(self._adapter)

        logger.debug("Reverting %s with %d inverted action(s)", migration.name, len(commands))
        Plan(commands).execute(self._adapter)

    # ── Breakpoints ───────────────────────────────────────────────────

    def _breakpoint_record(self, version: int | None) -> MigrationRecord:
        self.recorder.ensure_schema()
        log = self.recorder.get_version_log()
        if not log:
            raise MigrationNotFoundError("No migrations have been applied yet")
        if version is None:
            version = max(log)
        if version not in log:
            raise MigrationNotFoundError(f"{version} is not a valid version", version=version)
        return log[version]

    def toggle_breakpoint(self, version: int | None = None) -> int:
        record = self._breakpoint_record(version)
        self.recorder.toggle_breakpoint(record.version)
        state = "removed" if record.breakpoint else "set"
        logger.info("Breakpoint %s for %s", state, record.version)
        return record.version

    def set_breakpoint(self, version: int | None = None) -> int:
        record = self._breakpoint_record(version)
        self.recorder.set_breakpoint(record.version, True)
        logger.info("Breakpoint set for %s", record.version)
        return record.version

    def unset_breakpoint(self, version: int | None = None) -> int:
        record = self._breakpoint_record(version)
        self.recorder.set_breakpoint(record.version, False)
        logger.info("Breakpoint removed for %s", record.version)
        return record.version

    def remove_breakpoints(self) -> int:
        self.recorder.ensure_schema()
        count = self.recorder.reset_all_breakpoints()
        logger.info("%d breakpoint(s) removed", count)
        return count
