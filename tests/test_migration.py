"""Tests for dbmigrate.migrations.migration - the AbstractMigration base class."""

from __future__ import annotations

import logging

import pytest

from dbmigrate.exceptions import ConfigurationError, PendingActionsError
from dbmigrate.migrations import AbstractMigration


class CreateUsers(AbstractMigration):
    def change(self):
        self.table("users").add_column("email", "string").create()


class UpDown(AbstractMigration):
    def up(self):
        pass

    def down(self):
        pass


class Both(AbstractMigration):
    def change(self):
        pass

    def down(self):
        pass


class TestBasics:
    def test_name_and_version(self):
        migration = CreateUsers("20240101120000")
        assert migration.version == 20240101120000
        assert migration.name == "CreateUsers"
        assert repr(migration) == "<CreateUsers version=20240101120000>"

    def test_adapter_required(self):
        with pytest.raises(ConfigurationError, match="no database adapter"):
            CreateUsers(1).adapter

    def test_direction_flag(self, sqlite):
        migration = CreateUsers(1, sqlite)
        assert migration.is_migrating_up()
        assert not migration.set_migrating_up(False).is_migrating_up()

    def test_has_change(self):
        assert CreateUsers.has_change()
        assert not UpDown.has_change()
        assert Both.has_change()


class TestHelpers:
    def test_table_bound_to_adapter(self, sqlite):
        migration = CreateUsers(1, sqlite)
        migration.change()
        assert migration.has_table("users")
        assert migration.table("users").adapter is sqlite

    def test_insert_and_fetch(self, sqlite):
        migration = CreateUsers(1, sqlite)
        migration.change()
        migration.insert("users", {"email": "a@example.com"})
        migration.insert("users", [{"email": "b@example.com"}, {"email": "c@example.com"}])
        rows = migration.fetch_all("SELECT email FROM users ORDER BY id")
        assert [r["email"] for r in rows] == ["a@example.com", "b@example.com", "c@example.com"]
        assert migration.fetch_row("SELECT COUNT(*) AS n FROM users") == {"n": 3}

    def test_execute_with_params(self, sqlite):
        migration = CreateUsers(1, sqlite)
        migration.change()
        migration.insert("users", {"email": "a@example.com"})
        assert migration.execute("DELETE FROM users WHERE email = :email", {"email": "a@example.com"}) == 1


class TestChecks:
    def test_pre_flight_warns_on_both(self, caplog):
        with caplog.at_level(logging.WARNING, logger="dbmigrate"):
            Both(1).pre_flight_check()
        assert "Migration 1_Both defines change() and up()/down()" in caplog.text

    def test_pre_flight_quiet(self, caplog):
        with caplog.at_level(logging.WARNING, logger="dbmigrate"):
            UpDown(1).pre_flight_check()
        assert caplog.text == ""

    def test_post_flight_pending(self, sqlite):
        migration = UpDown(7, sqlite)
        migration.table("users").add_column("email", "string")
        with pytest.raises(PendingActionsError, match="Migration 7_UpDown has pending actions") as exc_info:
            migration.post_flight_check()
        assert exc_info.value.version == 7

    def test_post_flight_clean(self, sqlite):
        migration = CreateUsers(1, sqlite)
        migration.change()
        migration.post_flight_check()
