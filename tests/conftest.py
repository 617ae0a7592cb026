"""Shared test fixtures."""

from __future__ import annotations

import io
from typing import Iterator

import pytest

from dbmigrate.adapters import MysqlAdapter, PostgresAdapter, SqliteAdapter


@pytest.fixture
def sqlite() -> Iterator[SqliteAdapter]:
    """A connected in-memory SQLite adapter."""
    adapter = SqliteAdapter({"name": ":memory:"})
    adapter.connect()
    yield adapter
    adapter.disconnect()


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def sqlite_dry(sqlite: SqliteAdapter, output: io.StringIO) -> SqliteAdapter:
    """The connected SQLite adapter switched to dry-run, printing into ``output``."""
    sqlite.set_output(output)
    sqlite.set_dry_run(True)
    return sqlite


def _stub_introspection(monkeypatch: pytest.MonkeyPatch, adapter, tables: set[str]) -> None:
    """Answer table lookups from *tables* and every query with no rows."""
    monkeypatch.setattr(adapter, "_has_table", lambda name: name in tables)
    monkeypatch.setattr(adapter, "fetch_all", lambda sql, params=None: [])
    monkeypatch.setattr(adapter, "fetch_row", lambda sql, params=None: None)


@pytest.fixture
def mysql_dry(monkeypatch: pytest.MonkeyPatch, output: io.StringIO) -> MysqlAdapter:
    """A never-connected MySQL adapter in dry-run mode."""
    adapter = MysqlAdapter({"name": "dbmigrate_test"}, output=output, dry_run=True)
    _stub_introspection(monkeypatch, adapter, set())
    return adapter


@pytest.fixture
def pgsql_dry(monkeypatch: pytest.MonkeyPatch, output: io.StringIO) -> PostgresAdapter:
    """A never-connected PostgreSQL adapter in dry-run mode."""
    adapter = PostgresAdapter({"name": "dbmigrate_test"}, output=output, dry_run=True)
    _stub_introspection(monkeypatch, adapter, set())
    return adapter
