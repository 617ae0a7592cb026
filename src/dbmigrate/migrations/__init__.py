"""dbmigrate migration system - versioned, reversible schema changes."""

from __future__ import annotations

from dbmigrate.migrations.loader import MigrationInfo, load_migrations
from dbmigrate.migrations.manager import (
    Direction,
    Manager,
    MigrationState,
    MigrationStatus,
    StatusReport,
)
from dbmigrate.migrations.migration import AbstractMigration
from dbmigrate.migrations.recorder import MigrationRecord, MigrationRecorder

__all__ = [
    "AbstractMigration",
    "Direction",
    "Manager",
    "MigrationInfo",
    "MigrationRecord",
    "MigrationRecorder",
    "MigrationState",
    "MigrationStatus",
    "StatusReport",
    "load_migrations",
]
