"""Exception hierarchy for dbmigrate."""

from __future__ import annotations

from typing import Any


class DbMigrateError(Exception):
    """Base exception for all dbmigrate errors."""


# ── Configuration ────────────────────────────────────────────────────


class ConfigurationError(DbMigrateError):
    """Bad connection parameters or a missing required option."""


class InvalidAttributeError(ConfigurationError, ValueError):
    """An unknown driver attribute was passed in the connection options."""

    def __init__(self, message: str, *, attribute: str | None = None) -> None:
        super().__init__(message)
        self.attribute = attribute


class AdapterNotFoundError(ConfigurationError):
    """No adapter is registered under the requested name."""


# ── Schema consistency ───────────────────────────────────────────────


class SchemaError(DbMigrateError, ValueError):
    """A schema edit is invalid before it ever reaches the database."""

    def __init__(
        self,
        message: str,
        *,
        table: str | None = None,
        column: str | None = None,
    ) -> None:
        super().__init__(message)
        self.table = table
        self.column = column


class InvalidOptionError(SchemaError):
    """Option validation failed (unknown key, wrong type)."""

    def __init__(
        self,
        message: str,
        *,
        details: list[dict] | None = None,
        table: str | None = None,
        column: str | None = None,
    ) -> None:
        super().__init__(message, table=table, column=column)
        self.details = details or []


class InvalidColumnTypeError(SchemaError):
    """The adapter does not support the requested column type."""


class ColumnNotFoundError(SchemaError):
    """The referenced column does not exist."""


class IndexNotFoundError(SchemaError):
    """No index matches the requested columns or name."""


class UnsupportedFeatureError(SchemaError):
    """The dialect cannot express the requested change."""


class IrreversibleActionError(SchemaError):
    """The action has no mechanical inverse."""


# ── Migration state ──────────────────────────────────────────────────


class MigrationStateError(DbMigrateError):
    """The set of migrations and the ledger disagree."""

    def __init__(self, message: str, *, version: int | None = None) -> None:
        super().__init__(message)
        self.version = version


class DuplicateVersionError(MigrationStateError):
    """Two migration scripts share a version."""


class DuplicateMigrationNameError(MigrationStateError):
    """Two migration scripts share a class name."""


class InvalidMigrationError(MigrationStateError):
    """A migration file does not define the expected class."""


class MissingMigrationError(MigrationStateError):
    """An applied ledger row has no migration script."""


class MigrationNotFoundError(MigrationStateError):
    """The requested target version is not known."""


class BreakpointReachedError(MigrationStateError):
    """A breakpoint prevents rolling back past this version.

    ``reverted`` holds the newer migrations reverted before the breakpoint.
    """

    def __init__(
        self, message: str, *, version: int | None = None, reverted: list[Any] | None = None
    ) -> None:
        super().__init__(message, version=version)
        self.reverted = list(reverted or ())


class IrreversibleMigrationError(MigrationStateError):
    """A change() migration contains an action that cannot be inverted."""


class PendingActionsError(MigrationStateError):
    """A migration finished with unsaved table changes."""
