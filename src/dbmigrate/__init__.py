"""dbmigrate - versioned, reversible database schema migrations."""

# Values
from dbmigrate.literal import Literal
from dbmigrate.schema import (
    Column,
    ColumnType,
    ForeignKey,
    ForeignKeyAction,
    Index,
    IndexType,
    SizeTier,
    TableOptions,
    TableSpec,
)

# Table handle
from dbmigrate.table import Table

# Configuration and adapters
from dbmigrate.config import ConnectionOptions
from dbmigrate.adapters import get_adapter, register_adapter

# Exceptions
from dbmigrate.exceptions import (
    AdapterNotFoundError,
    BreakpointReachedError,
    ColumnNotFoundError,
    ConfigurationError,
    DbMigrateError,
    DuplicateMigrationNameError,
    DuplicateVersionError,
    IndexNotFoundError,
    InvalidAttributeError,
    InvalidColumnTypeError,
    InvalidMigrationError,
    InvalidOptionError,
    IrreversibleActionError,
    IrreversibleMigrationError,
    MigrationNotFoundError,
    MigrationStateError,
    MissingMigrationError,
    PendingActionsError,
    SchemaError,
    UnsupportedFeatureError,
)

# Migrations
from dbmigrate.migrations import AbstractMigration, Manager

__version__ = "0.1.0"

__all__ = [
    # Values
    "Literal",
    "Column",
    "ColumnType",
    "ForeignKey",
    "ForeignKeyAction",
    "Index",
    "IndexType",
    "SizeTier",
    "TableOptions",
    "TableSpec",
    # Table
    "Table",
    # Configuration
    "ConnectionOptions",
    "get_adapter",
    "register_adapter",
    # Exceptions
    "DbMigrateError",
    "ConfigurationError",
    "InvalidAttributeError",
    "AdapterNotFoundError",
    "SchemaError",
    "InvalidOptionError",
    "InvalidColumnTypeError",
    "ColumnNotFoundError",
    "IndexNotFoundError",
    "UnsupportedFeatureError",
    "IrreversibleActionError",
    "MigrationStateError",
    "DuplicateVersionError",
    "DuplicateMigrationNameError",
    "InvalidMigrationError",
    "MissingMigrationError",
    "MigrationNotFoundError",
    "BreakpointReachedError",
    "IrreversibleMigrationError",
    "PendingActionsError",
    # Migrations
    "AbstractMigration",
    "Manager",
]
