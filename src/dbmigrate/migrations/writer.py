"""Migration file writer - generates Python source for new migration scripts."""

from __future__ import annotations

from pathlib import Path

from dbmigrate._naming import camel_to_snake, is_valid_class_name
from dbmigrate.exceptions import (
    DuplicateMigrationNameError,
    DuplicateVersionError,
    InvalidMigrationError,
)
from dbmigrate.migrations.loader import get_next_version, iter_migration_files, parse_filename

_CHANGE_BODY = [
    "    def change(self):",
    '        """Reversible changes; run in reverse on rollback."""',
    "        pass",
]

_UP_DOWN_BODY = [
    "    def up(self):",
    "        pass",
    "",
    "    def down(self):",
    "        pass",
]


def generate_migration(class_name: str, version: int, *, style: str = "change") -> tuple[str, str]:
    """Generate a migration script.

    *style* is ``"change"`` for a reversible ``change()`` body or
    ``"up_down"`` for an explicit pair.

    Returns (filename, content).
    """
    if not is_valid_class_name(class_name):
        raise InvalidMigrationError(
            f'The migration class name "{class_name}" is invalid. Please use CamelCase format.'
        )
    if style not in ("change", "up_down"):
        raise ValueError(f"Unknown migration style: {style!r}")

    filename = f"{version}_{camel_to_snake(class_name)}.py"
    lines = [
        f"# Migration: {filename}",
        "# Generated by dbmigrate",
        "",
        "from dbmigrate.migrations import AbstractMigration",
        "",
        "",
        f"class {class_name}(AbstractMigration):",
    ]
    lines.extend(_CHANGE_BODY if style == "change" else _UP_DOWN_BODY)
    lines.append("")
    return filename, "\n".join(lines)


def create_migration(
    directory: str | Path,
    class_name: str,
    *,
    version: int | None = None,
    style: str = "change",
) -> Path:
    """Write a new migration script into *directory* and return its path.

    Refuses a class name or version that an existing script already uses.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    if version is None:
        version = get_next_version()

    for existing in iter_migration_files(directory):
        existing_version, existing_name = parse_filename(existing.name)  # type: ignore[misc]
        if existing_name == class_name:
            raise DuplicateMigrationNameError(
                f'The migration class name "{class_name}" already exists in "{existing}"',
                version=existing_version,
            )
        if existing_version == version:
            raise DuplicateVersionError(
                f'Duplicate migration - version {version} is already used by "{existing}"',
                version=version,
            )

    filename, content = generate_migration(class_name, version, style=style)
    path = directory / filename
    path.write_text(content)
    return path
