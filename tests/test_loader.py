"""Tests for dbmigrate.migrations.loader - migration discovery and import."""

import textwrap
from pathlib import Path

import pytest

from dbmigrate.exceptions import (
    DuplicateMigrationNameError,
    DuplicateVersionError,
    InvalidMigrationError,
)
from dbmigrate.migrations import AbstractMigration
from dbmigrate.migrations.loader import (
    get_next_version,
    iter_migration_files,
    load_migrations,
    parse_filename,
)


# ── Helpers ──────────────────────────────────────────────────────────


def _write_migration(directory: Path, filename: str, content: str) -> Path:
    f = directory / filename
    f.write_text(textwrap.dedent(content))
    return f


def _simple(directory: Path, version: int, snake: str, camel: str) -> Path:
    return _write_migration(directory, f"{version}_{snake}.py", f"""\
        from dbmigrate.migrations import AbstractMigration

        class {camel}(AbstractMigration):
            def change(self):
                pass
    """)


# ── parse_filename ───────────────────────────────────────────────────


class TestParseFilename:
    def test_valid(self):
        assert parse_filename("20240101120000_create_users.py") == (20240101120000, "CreateUsers")

    def test_digits_in_name(self):
        assert parse_filename("1_add_v2_column.py") == (1, "AddV2Column")

    @pytest.mark.parametrize(
        "filename",
        [
            "create_users.py",
            "20240101_CreateUsers.py",
            "20240101_create_users.txt",
            "20240101_create__users.py",
            "__init__.py",
        ],
    )
    def test_rejected(self, filename):
        assert parse_filename(filename) is None


# ── load_migrations ──────────────────────────────────────────────────


class TestLoadMigrations:
    def test_empty_directory(self, tmp_path):
        assert load_migrations(tmp_path) == []

    def test_nonexistent_directory(self, tmp_path):
        assert load_migrations(tmp_path / "nope") == []

    def test_loads_single_migration(self, tmp_path):
        path = _simple(tmp_path, 20240101120000, "create_users", "CreateUsers")
        (info,) = load_migrations(tmp_path)
        assert info.version == 20240101120000
        assert info.name == "CreateUsers"
        assert info.path == path
        assert info.filename == "20240101120000_create_users.py"
        assert issubclass(info.migration_class, AbstractMigration)

    def test_instantiate(self, tmp_path):
        _simple(tmp_path, 3, "create_users", "CreateUsers")
        (info,) = load_migrations(tmp_path)
        migration = info.instantiate()
        assert migration.version == 3
        assert migration.name == "CreateUsers"

    def test_sorted_by_version_across_directories(self, tmp_path):
        first, second = tmp_path / "a", tmp_path / "b"
        first.mkdir()
        second.mkdir()
        _simple(first, 30, "third", "Third")
        _simple(second, 10, "first", "First")
        _simple(first, 20, "second", "Second")
        assert [m.version for m in load_migrations([first, second])] == [10, 20, 30]

    def test_ignores_other_files(self, tmp_path):
        _simple(tmp_path, 1, "initial", "Initial")
        (tmp_path / "README.md").write_text("notes")
        (tmp_path / "helpers.py").write_text("X = 1\n")
        (tmp_path / "2_sub").mkdir()
        assert [m.name for m in load_migrations(tmp_path)] == ["Initial"]

    def test_duplicate_version(self, tmp_path):
        _simple(tmp_path, 1, "initial", "Initial")
        _simple(tmp_path, 1, "other", "Other")
        with pytest.raises(DuplicateVersionError, match="has the same version as") as exc_info:
            load_migrations(tmp_path)
        assert exc_info.value.version == 1

    def test_duplicate_name(self, tmp_path):
        _simple(tmp_path, 1, "initial", "Initial")
        _simple(tmp_path, 2, "initial", "Initial")
        with pytest.raises(DuplicateMigrationNameError, match="has the same name as"):
            load_migrations(tmp_path)

    def test_missing_class(self, tmp_path):
        _write_migration(tmp_path, "1_initial.py", """\
            from dbmigrate.migrations import AbstractMigration

            class Setup(AbstractMigration):
                pass
        """)
        with pytest.raises(InvalidMigrationError, match='Could not find class "Initial"'):
            load_migrations(tmp_path)

    def test_wrong_base_class(self, tmp_path):
        _write_migration(tmp_path, "1_initial.py", """\
            class Initial:
                pass
        """)
        with pytest.raises(InvalidMigrationError, match="must extend dbmigrate.migrations.AbstractMigration"):
            load_migrations(tmp_path)

    def test_syntax_error_propagates(self, tmp_path):
        _write_migration(tmp_path, "1_initial.py", "class Initial(:\n")
        with pytest.raises(SyntaxError):
            load_migrations(tmp_path)


# ── iter_migration_files / get_next_version ──────────────────────────


class TestHelpers:
    def test_iter_accepts_single_path(self, tmp_path):
        path = _simple(tmp_path, 1, "initial", "Initial")
        assert iter_migration_files(str(tmp_path)) == [path]

    def test_next_version_from_timestamp(self):
        assert get_next_version("20240102030405") == 20240102030405

    def test_next_version_is_utc_timestamp(self):
        version = str(get_next_version())
        assert len(version) == 14
        assert version.startswith("20")
