"""Migration loader - discover and import migration scripts from directories."""

from __future__ import annotations

import importlib.util
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from dbmigrate._naming import snake_to_camel
from dbmigrate.exceptions import (
    DuplicateMigrationNameError,
    DuplicateVersionError,
    InvalidMigrationError,
)
from dbmigrate.migrations.migration import AbstractMigration


@dataclass
class MigrationInfo:
    """Metadata about a loaded migration script."""

    version: int                    # e.g. 20240101120000
    name: str                       # class name, e.g. "CreateUsers"
    path: Path
    migration_class: type[AbstractMigration]

    @property
    def filename(self) -> str:
        return self.path.name

    def instantiate(self) -> AbstractMigration:
        return self.migration_class(self.version)


MIGRATION_FILE_RE = re.compile(r"^(\d+)_([a-z][a-z\d]*(?:_[a-z\d]+)*)\.py$")


def parse_filename(filename: str) -> tuple[int, str] | None:
    """``(version, ClassName)`` for a migration file name, else None."""
    match = MIGRATION_FILE_RE.match(filename)
    if not match:
        return None
    return int(match.group(1)), snake_to_camel(match.group(2))


def iter_migration_files(paths: str | Path | Iterable[str | Path]) -> list[Path]:
    """Every file in *paths* whose name looks like a migration script."""
    if isinstance(paths, (str, Path)):
        paths = [paths]
    found: list[Path] = []
    for directory in map(Path, paths):
        if not directory.is_dir():
            continue
        for entry in sorted(directory.iterdir()):
            if entry.is_file() and MIGRATION_FILE_RE.match(entry.name):
                found.append(entry)
    return found


def load_migrations(paths: str | Path | Iterable[str | Path]) -> list[MigrationInfo]:
    """Discover and load all migration scripts under *paths*.

    Returns migrations sorted by version.
    """
    by_version: dict[int, MigrationInfo] = {}
    by_name: dict[str, MigrationInfo] = {}

    for entry in iter_migration_files(paths):
        version, class_name = parse_filename(entry.name)  # type: ignore[misc]
        _check_unique(entry, version, class_name, by_version, by_name)

        info = MigrationInfo(
            version=version,
            name=class_name,
            path=entry,
            migration_class=_import_class(entry, version, class_name),
        )
        by_version[version] = info
        by_name[class_name] = info

    return sorted(by_version.values(), key=lambda m: m.version)


def index_migrations(migrations: Iterable[MigrationInfo]) -> dict[int, MigrationInfo]:
    """Key already loaded *migrations* by version, ascending.

    Clashing versions or class names are rejected the same way as on disk.
    """
    by_version: dict[int, MigrationInfo] = {}
    by_name: dict[str, MigrationInfo] = {}
    for info in sorted(migrations, key=lambda m: m.version):
        _check_unique(info.path, info.version, info.name, by_version, by_name)
        by_version[info.version] = info
        by_name[info.name] = info
    return by_version


def _check_unique(
    path: Path,
    version: int,
    class_name: str,
    by_version: dict[int, MigrationInfo],
    by_name: dict[str, MigrationInfo],
) -> None:
    if version in by_version:
        raise DuplicateVersionError(
            f'Duplicate migration - "{path}" has the same version as '
            f'"{by_version[version].path}"',
            version=version,
        )
    if class_name in by_name:
        raise DuplicateMigrationNameError(
            f'Migration "{path}" has the same name as "{by_name[class_name].path}"',
            version=version,
        )


def _import_class(path: Path, version: int, class_name: str) -> type[AbstractMigration]:
    spec = importlib.util.spec_from_file_location(f"dbmigrate_migrations.{path.stem}", path)
    if spec is None or spec.loader is None:
        raise InvalidMigrationError(f'Could not load migration file "{path}"', version=version)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    migration_class = getattr(module, class_name, None)
    if migration_class is None:
        raise InvalidMigrationError(
            f'Could not find class "{class_name}" in file "{path}"', version=version
        )
    if not (isinstance(migration_class, type) and issubclass(migration_class, AbstractMigration)):
        raise InvalidMigrationError(
            f'The class "{class_name}" in file "{path}" must extend '
            f"dbmigrate.migrations.AbstractMigration",
            version=version,
        )
    return migration_class


def get_next_version(now: str | None = None) -> int:
    """The version for a new script: a UTC ``YYYYMMDDHHMMSS`` timestamp."""
    if now is None:
        now = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return int(now)
