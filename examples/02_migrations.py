"""Example: versioned migrations against a SQLite file.

The scripts in ``examples/migrations`` are applied in version order and
recorded in the ``phinxlog`` table.

Usage (CLI):
    # 1. Write a new script:
    dbmigrate --migrations-dir examples/migrations create AddPostsSlug
    # 2. Apply pending scripts (add --dry-run to print the SQL instead):
    dbmigrate --migrations-dir examples/migrations migrate --name blog.db
    # 3. Show status:
    dbmigrate --migrations-dir examples/migrations status --name blog.db
    # 4. Protect a version, then roll back everything above it:
    dbmigrate --migrations-dir examples/migrations breakpoint --name blog.db -t 20240101120000
    dbmigrate --migrations-dir examples/migrations rollback --name blog.db -t 0
"""

import logging
from pathlib import Path

from dbmigrate import Manager, get_adapter


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    adapter = get_adapter({"adapter": "sqlite", "name": "blog.db"})
    manager = Manager(adapter, Path(__file__).parent / "migrations")

    applied = manager.migrate()
    print(f"Applied: {[m.name for m in applied]}")

    for entry in manager.status().entries:
        print(f"  {entry.state.value:>7}  {entry.version}  {entry.name}")

    # Undo the most recent script
    reverted = manager.rollback()
    print(f"Reverted: {[m.name for m in reverted]}")

    adapter.disconnect()
