"""CLI entry point for the migration system."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Any

from dbmigrate.adapters import get_adapter
from dbmigrate.adapters.base import AdapterInterface
from dbmigrate.exceptions import BreakpointReachedError, DbMigrateError
from dbmigrate.migrations.loader import MigrationInfo
from dbmigrate.migrations.manager import Manager, MigrationState
from dbmigrate.migrations.writer import create_migration

PASSWORD_ENV = "DBMIGRATE_PASSWORD"

EXIT_STATUS_MISSING = 2
EXIT_STATUS_DOWN = 3


def _connection_options(args: argparse.Namespace) -> dict[str, Any]:
    options: dict[str, Any] = {"adapter": args.adapter}
    for key in ("host", "port", "name", "user", "charset", "schema", "migration_table"):
        value = getattr(args, key, None)
        if value is not None:
            options[key] = value
    password = args.password if args.password is not None else os.environ.get(PASSWORD_ENV)
    if password is not None:
        options["password"] = password
    for item in args.attr or []:
        key, _, value = item.partition("=")
        options[key] = value
    return options


def _open_manager(args: argparse.Namespace) -> tuple[Manager, AdapterInterface]:
    adapter = get_adapter(
        _connection_options(args),
        dry_run=getattr(args, "dry_run", False),
        output=sys.stdout,
    )
    return Manager(adapter, args.migrations_dir), adapter


def _cmd_create(args: argparse.Namespace) -> int:
    """Write a new, empty migration script."""
    path = create_migration(args.migrations_dir[0], args.name, style=args.style)
    print(f"Created migration: {path}")
    return 0


def _cmd_migrate(args: argparse.Namespace) -> int:
    """Apply pending migrations."""
    manager, adapter = _open_manager(args)
    try:
        applied = manager.migrate(args.target, fake=args.fake)
    finally:
        adapter.disconnect()

    if applied:
        print(f"Applied {len(applied)} migration(s):")
        for m in applied:
            print(f"  [X] {m.version} {m.name}")
    else:
        print("No migrations to apply.")
    return 0


def _cmd_rollback(args: argparse.Namespace) -> int:
    """Revert applied migrations."""
    manager, adapter = _open_manager(args)
    try:
        reverted = manager.rollback(args.target, force=args.force, fake=args.fake)
    except BreakpointReachedError as e:
        _print_reverted(e.reverted)
        raise
    finally:
        adapter.disconnect()

    if reverted:
        _print_reverted(reverted)
    else:
        print("Nothing to revert.")
    return 0


def _print_reverted(reverted: list[MigrationInfo]) -> None:
    if not reverted:
        return
    print(f"Reverted {len(reverted)} migration(s):")
    for m in reverted:
        print(f"  [ ] {m.version} {m.name}")


def _cmd_status(args: argparse.Namespace) -> int:
    """Show migration status."""
    manager, adapter = _open_manager(args)
    try:
        report = manager.status()
    finally:
        adapter.disconnect()

    if not report.entries:
        print("No migrations found.")
        return 0

    print(" Status  Migration ID    Started              Finished             Migration Name")
    print("-" * 90)
    for entry in report.entries:
        state = {
            MigrationState.UP: "    up",
            MigrationState.DOWN: "  down",
            MigrationState.MISSING: "  ** MISSING **",
        }[entry.state]
        started = str(entry.start_time or "").ljust(19)
        finished = str(entry.end_time or "").ljust(19)
        line = f"{state}  {entry.version:<14}  {started}  {finished}  {entry.name or ''}"
        if entry.breakpoint:
            line += "  BREAKPOINT SET"
        if entry.out_of_order:
            line += "  (out of order)"
        print(line)

    if report.has_missing:
        return EXIT_STATUS_MISSING
    if report.has_pending:
        return EXIT_STATUS_DOWN
    return 0


def _cmd_breakpoint(args: argparse.Namespace) -> int:
    """Set, unset, toggle or clear breakpoints."""
    manager, adapter = _open_manager(args)
    try:
        if args.remove_all:
            count = manager.remove_breakpoints()
            print(f"Removed {count} breakpoint(s).")
        elif args.set:
            print(f"Breakpoint set for {manager.set_breakpoint(args.target)}.")
        elif args.unset:
            print(f"Breakpoint removed for {manager.unset_breakpoint(args.target)}.")
        else:
            print(f"Breakpoint toggled for {manager.toggle_breakpoint(args.target)}.")
    finally:
        adapter.disconnect()
    return 0


def _add_connection_args(parser: argparse.ArgumentParser) -> None:
    """Add common connection arguments to a subparser."""
    parser.add_argument("--adapter", default="sqlite", help="mysql, pgsql, sqlite or sqlsrv (default: sqlite)")
    parser.add_argument("--host", default=None, help="Database host")
    parser.add_argument("--port", type=int, default=None, help="Database port")
    parser.add_argument("--name", default=None, help="Database name (SQLite: file path)")
    parser.add_argument("--user", default=None, help="Username")
    parser.add_argument(
        "--password", default=None, help=f"Password (default: ${PASSWORD_ENV})"
    )
    parser.add_argument("--charset", default=None, help="Connection character set")
    parser.add_argument("--schema", default=None, help="Schema to migrate (PostgreSQL, SQL Server)")
    parser.add_argument(
        "--migration-table", dest="migration_table", default=None,
        help="Ledger table name (default: phinxlog)",
    )
    parser.add_argument(
        "--attr", action="append", metavar="KEY=VALUE",
        help="Driver attribute such as attr_timeout=5 (repeatable)",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="dbmigrate",
        description="Database schema migration tool",
    )
    parser.add_argument(
        "--migrations-dir",
        action="append",
        default=None,
        help="Directory for migration files, repeatable (default: ./migrations)",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Log progress (-vv for SQL)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # create
    create = subparsers.add_parser("create", help="Create a new migration script")
    create.add_argument("name", help="CamelCase class name (e.g. CreateUsersTable)")
    create.add_argument(
        "--style", choices=("change", "up_down"), default="change",
        help="Generate a change() body or an up()/down() pair",
    )
    create.set_defaults(func=_cmd_create)

    # migrate
    mig = subparsers.add_parser("migrate", help="Apply pending migrations")
    _add_connection_args(mig)
    mig.add_argument("-t", "--target", type=int, default=None, help="Migrate up to this version")
    mig.add_argument("--fake", action="store_true", help="Only record the migrations in the ledger")
    mig.add_argument("--dry-run", action="store_true", help="Print SQL instead of running it")
    mig.set_defaults(func=_cmd_migrate)

    # rollback
    rb = subparsers.add_parser("rollback", help="Revert migrations")
    _add_connection_args(rb)
    rb.add_argument("-t", "--target", type=int, default=None, help="Roll back to this version (0 for all)")
    rb.add_argument("-f", "--force", action="store_true", help="Ignore breakpoints")
    rb.add_argument("--fake", action="store_true", help="Only remove the migrations from the ledger")
    rb.add_argument("--dry-run", action="store_true", help="Print SQL instead of running it")
    rb.set_defaults(func=_cmd_rollback)

    # status
    st = subparsers.add_parser("status", help="Show migration status")
    _add_connection_args(st)
    st.set_defaults(func=_cmd_status)

    # breakpoint
    bp = subparsers.add_parser("breakpoint", help="Manage rollback breakpoints")
    _add_connection_args(bp)
    bp.add_argument("-t", "--target", type=int, default=None, help="Version (default: latest applied)")
    mode = bp.add_mutually_exclusive_group()
    mode.add_argument("--set", action="store_true", help="Set the breakpoint")
    mode.add_argument("--unset", action="store_true", help="Remove the breakpoint")
    mode.add_argument("-r", "--remove-all", dest="remove_all", action="store_true", help="Remove all breakpoints")
    bp.set_defaults(func=_cmd_breakpoint)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG if args.verbose > 1 else logging.INFO,
            format="%(levelname)s %(name)s: %(message)s",
        )
    if args.migrations_dir is None:
        args.migrations_dir = ["migrations"]

    try:
        return args.func(args)
    except DbMigrateError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
