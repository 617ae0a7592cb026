"""Tests for dbmigrate.migrations.manager - migrate, rollback, status, breakpoints."""

from __future__ import annotations

import logging
import textwrap
from pathlib import Path

import pytest

from dbmigrate.exceptions import (
    BreakpointReachedError,
    DuplicateMigrationNameError,
    DuplicateVersionError,
    IrreversibleMigrationError,
    MigrationNotFoundError,
    MissingMigrationError,
    PendingActionsError,
)
from dbmigrate.migrations import AbstractMigration, Manager, MigrationInfo, MigrationState


# ── Migrations used throughout ───────────────────────────────────────


class CreateUsers(AbstractMigration):
    def change(self):
        (self.table("users")
            .add_column("email", "string")
            .add_index("email", unique=True)
            .create())


class AddAge(AbstractMigration):
    def change(self):
        self.table("users").add_column("age", "integer", null=True).update()


class SeedUsers(AbstractMigration):
    def up(self):
        self.insert("users", [{"email": "a@example.com"}, {"email": "b@example.com"}])

    def down(self):
        self.execute("DELETE FROM users")


class DropEmail(AbstractMigration):
    def change(self):
        self.table("users").remove_column("email").update()


class CreateWidgetsThenFail(AbstractMigration):
    def up(self):
        self.table("widgets").add_column("name", "string").create()
        raise RuntimeError("boom")


class ForgetsToSave(AbstractMigration):
    def up(self):
        self.table("users").add_column("nickname", "string", null=True)


class ChangeAndUp(AbstractMigration):
    def change(self):
        self.table("groups").add_column("name", "string").create()

    def up(self):
        raise AssertionError("up() must not run when change() is defined")


def _info(version: int, cls: type[AbstractMigration]) -> MigrationInfo:
    return MigrationInfo(version, cls.__name__, Path(f"{version}_migration.py"), cls)


def _manager(adapter, *classes: type[AbstractMigration]) -> Manager:
    return Manager(adapter, migrations=[_info(v, cls) for v, cls in enumerate(classes, start=1)])


def _count(adapter, table: str) -> int:
    return adapter.fetch_row(f"SELECT COUNT(*) AS n FROM {table}")["n"]


# ── Construction ─────────────────────────────────────────────────────


class TestGivenMigrations:
    def test_sorted_by_version(self, sqlite):
        manager = Manager(sqlite, migrations=[_info(2, AddAge), _info(1, CreateUsers)])
        assert list(manager.get_migrations()) == [1, 2]

    def test_duplicate_version_rejected(self, sqlite):
        with pytest.raises(DuplicateVersionError, match="has the same version as") as excinfo:
            Manager(sqlite, migrations=[_info(1, CreateUsers), _info(1, AddAge)])
        assert excinfo.value.version == 1

    def test_duplicate_name_rejected(self, sqlite):
        with pytest.raises(DuplicateMigrationNameError, match="has the same name as"):
            Manager(sqlite, migrations=[_info(1, CreateUsers), _info(2, CreateUsers)])


# ── Migrate ──────────────────────────────────────────────────────────


class TestMigrate:
    def test_applies_all_pending(self, sqlite):
        manager = _manager(sqlite, CreateUsers, AddAge, SeedUsers)
        applied = manager.migrate()
        assert [m.version for m in applied] == [1, 2, 3]
        assert sqlite.has_column("users", "age")
        assert _count(sqlite, "users") == 2
        assert manager.recorder.get_applied() == [1, 2, 3]

    def test_ledger_names_and_times(self, sqlite):
        manager = _manager(sqlite, CreateUsers)
        manager.migrate()
        record = manager.recorder.get_version_log()[1]
        assert record.migration_name == "CreateUsers"
        assert record.start_time is not None
        assert record.end_time >= record.start_time

    def test_target_is_inclusive(self, sqlite):
        manager = _manager(sqlite, CreateUsers, AddAge, SeedUsers)
        assert [m.version for m in manager.migrate(2)] == [1, 2]
        assert manager.recorder.get_applied() == [1, 2]

    def test_second_run_is_noop(self, sqlite, caplog):
        manager = _manager(sqlite, CreateUsers)
        manager.migrate()
        with caplog.at_level(logging.INFO, logger="dbmigrate"):
            assert manager.migrate() == []
        assert "No migrations to apply" in caplog.text

    def test_unknown_target(self, sqlite):
        with pytest.raises(MigrationNotFoundError, match="Migration 99 was not found"):
            _manager(sqlite, CreateUsers).migrate(99)

    def test_fake_only_records(self, sqlite):
        manager = _manager(sqlite, CreateUsers)
        manager.migrate(fake=True)
        assert manager.recorder.get_applied() == [1]
        assert not sqlite.has_table("users")

    def test_fills_gap_out_of_order(self, sqlite):
        Manager(sqlite, migrations=[_info(1, CreateUsers), _info(3, SeedUsers)]).migrate()
        manager = Manager(
            sqlite, migrations=[_info(1, CreateUsers), _info(2, AddAge), _info(3, SeedUsers)]
        )
        assert [m.version for m in manager.migrate()] == [2]

    def test_failure_rolls_back(self, sqlite):
        manager = _manager(sqlite, CreateUsers, CreateWidgetsThenFail)
        with pytest.raises(RuntimeError, match="boom"):
            manager.migrate()
        assert not sqlite.has_table("widgets")
        assert manager.recorder.get_applied() == [1]

    def test_pending_actions(self, sqlite):
        manager = _manager(sqlite, CreateUsers, ForgetsToSave)
        with pytest.raises(PendingActionsError, match="2_ForgetsToSave has pending actions"):
            manager.migrate()
        assert manager.recorder.get_applied() == [1]

    def test_change_wins_over_up(self, sqlite, caplog):
        with caplog.at_level(logging.WARNING, logger="dbmigrate"):
            _manager(sqlite, ChangeAndUp).migrate()
        assert sqlite.has_table("groups")
        assert "defines change() and up()/down()" in caplog.text

    def test_dry_run_prints(self, sqlite_dry, output):
        manager = _manager(sqlite_dry, CreateUsers)
        manager.migrate()
        lines = output.getvalue().splitlines()
        assert lines[0] == "BEGIN TRANSACTION;"
        assert lines[1].startswith('CREATE TABLE "users"')
        assert lines[-2].startswith('INSERT INTO "phinxlog"')
        assert lines[-1] == "COMMIT;"
        sqlite_dry.set_dry_run(False)
        assert not sqlite_dry.has_table("users")
        assert manager.recorder.get_applied() == []

    def test_loads_from_paths(self, sqlite, tmp_path):
        (tmp_path / "20240101120000_create_posts.py").write_text(textwrap.dedent("""\
            from dbmigrate.migrations import AbstractMigration

            class CreatePosts(AbstractMigration):
                def change(self):
                    self.table("posts").add_column("title", "string").create()
        """))
        manager = Manager(sqlite, tmp_path)
        assert list(manager.get_migrations()) == [20240101120000]
        manager.migrate()
        assert sqlite.has_table("posts")


# ── Rollback ─────────────────────────────────────────────────────────


class TestRollback:
    @pytest.fixture
    def manager(self, sqlite) -> Manager:
        manager = _manager(sqlite, CreateUsers, AddAge, SeedUsers)
        manager.migrate()
        return manager

    def test_latest_only(self, sqlite, manager):
        assert [m.version for m in manager.rollback()] == [3]
        assert _count(sqlite, "users") == 0
        assert manager.recorder.get_applied() == [1, 2]

    def test_to_target(self, sqlite, manager):
        assert [m.version for m in manager.rollback(1)] == [3, 2]
        assert not sqlite.has_column("users", "age")
        assert manager.recorder.get_applied() == [1]

    def test_all(self, sqlite, manager):
        assert [m.version for m in manager.rollback(0)] == [3, 2, 1]
        assert not sqlite.has_table("users")
        assert manager.recorder.get_applied() == []

    def test_nothing_applied(self, sqlite):
        assert _manager(sqlite, CreateUsers).rollback() == []

    def test_unknown_target(self, manager):
        with pytest.raises(MigrationNotFoundError, match=r"Target version \(99\) not found"):
            manager.rollback(99)

    def test_fake(self, sqlite, manager):
        manager.rollback(0, fake=True)
        assert sqlite.has_table("users")
        assert manager.recorder.get_applied() == []

    def test_breakpoint_stops_after_newer_versions(self, sqlite, manager):
        manager.set_breakpoint(2)
        with pytest.raises(BreakpointReachedError, match="Breakpoint reached at version 2") as excinfo:
            manager.rollback(0)
        assert [m.version for m in excinfo.value.reverted] == [3]
        assert _count(sqlite, "users") == 0
        assert manager.recorder.get_applied() == [1, 2]

    def test_breakpoint_on_latest_reverts_nothing(self, manager):
        manager.set_breakpoint(3)
        with pytest.raises(BreakpointReachedError) as excinfo:
            manager.rollback()
        assert excinfo.value.reverted == []
        assert manager.recorder.get_applied() == [1, 2, 3]

    def test_breakpoint_below_target_is_fine(self, manager):
        manager.set_breakpoint(1)
        assert [m.version for m in manager.rollback(1)] == [3, 2]

    def test_force_ignores_breakpoint(self, manager):
        manager.set_breakpoint(3)
        assert [m.version for m in manager.rollback(force=True)] == [3]

    def test_missing_script(self, sqlite, manager):
        partial = Manager(sqlite, migrations=[_info(1, CreateUsers), _info(2, AddAge)])
        with pytest.raises(MissingMigrationError, match=r"Applied migration 3 \(SeedUsers\) has no script"):
            partial.rollback()
        assert partial.recorder.get_applied() == [1, 2, 3]

    def test_irreversible(self, sqlite):
        manager = _manager(sqlite, CreateUsers, DropEmail)
        manager.migrate()
        assert not sqlite.has_column("users", "email")
        with pytest.raises(IrreversibleMigrationError, match="2_DropEmail cannot be reverted"):
            manager.rollback()
        assert manager.recorder.get_applied() == [1, 2]


# ── Status ───────────────────────────────────────────────────────────


class TestStatus:
    def test_up_and_down(self, sqlite):
        manager = _manager(sqlite, CreateUsers, AddAge)
        manager.migrate(1)
        report = manager.status()
        assert [(e.version, e.name, e.state) for e in report.entries] == [
            (1, "CreateUsers", MigrationState.UP),
            (2, "AddAge", MigrationState.DOWN),
        ]
        assert report.has_pending
        assert not report.has_missing
        assert report.entries[0].start_time is not None

    def test_missing(self, sqlite, caplog):
        _manager(sqlite, CreateUsers, AddAge).migrate()
        with caplog.at_level(logging.WARNING, logger="dbmigrate"):
            report = _manager(sqlite, CreateUsers).status()
        (missing,) = report.missing
        assert (missing.version, missing.name) == (2, "AddAge")
        assert "Applied migration 2 (AddAge) has no script" in caplog.text

    def test_out_of_order(self, sqlite, caplog):
        Manager(sqlite, migrations=[_info(1, CreateUsers), _info(3, SeedUsers)]).migrate()
        manager = Manager(
            sqlite, migrations=[_info(1, CreateUsers), _info(2, AddAge), _info(3, SeedUsers)]
        )
        with caplog.at_level(logging.WARNING, logger="dbmigrate"):
            report = manager.status()
        assert [e.version for e in report.out_of_order] == [2]
        assert "Migration 2 (AddAge) is pending out of order" in caplog.text

    def test_breakpoint_reported(self, sqlite):
        manager = _manager(sqlite, CreateUsers)
        manager.migrate()
        manager.toggle_breakpoint()
        assert manager.status().entries[0].breakpoint


# ── Breakpoints ──────────────────────────────────────────────────────


class TestBreakpoints:
    def test_nothing_applied(self, sqlite):
        with pytest.raises(MigrationNotFoundError, match="No migrations have been applied yet"):
            _manager(sqlite, CreateUsers).toggle_breakpoint()

    def test_invalid_version(self, sqlite):
        manager = _manager(sqlite, CreateUsers)
        manager.migrate()
        with pytest.raises(MigrationNotFoundError, match="42 is not a valid version"):
            manager.set_breakpoint(42)

    def test_toggle_defaults_to_latest(self, sqlite):
        manager = _manager(sqlite, CreateUsers, AddAge)
        manager.migrate()
        assert manager.toggle_breakpoint() == 2
        assert manager.recorder.get_version_log()[2].breakpoint
        manager.toggle_breakpoint(2)
        assert not manager.recorder.get_version_log()[2].breakpoint

    def test_unset(self, sqlite):
        manager = _manager(sqlite, CreateUsers)
        manager.migrate()
        manager.set_breakpoint(1)
        assert manager.unset_breakpoint(1) == 1
        assert not manager.recorder.get_version_log()[1].breakpoint

    def test_remove_all(self, sqlite):
        manager = _manager(sqlite, CreateUsers, AddAge, SeedUsers)
        manager.migrate()
        manager.set_breakpoint(1)
        manager.set_breakpoint(3)
        assert manager.remove_breakpoints() == 2
        assert manager.remove_breakpoints() == 0
