"""Database adapters and the registry that picks one from connection options."""

from __future__ import annotations

from typing import Any, Mapping

from dbmigrate.adapters.base import AdapterInterface, AlterInstructions, SqlAdapter, SqlType
from dbmigrate.adapters.mysql import MysqlAdapter
from dbmigrate.adapters.postgres import PostgresAdapter
from dbmigrate.adapters.proxy import ProxyAdapter
from dbmigrate.adapters.sqlite import SqliteAdapter
from dbmigrate.adapters.sqlserver import SqlServerAdapter
from dbmigrate.config import ConnectionOptions
from dbmigrate.exceptions import AdapterNotFoundError

_ADAPTERS: dict[str, type[SqlAdapter]] = {
    "mysql": MysqlAdapter,
    "pgsql": PostgresAdapter,
    "sqlite": SqliteAdapter,
    "sqlsrv": SqlServerAdapter,
}


def register_adapter(name: str, adapter_class: type[SqlAdapter]) -> None:
    """Make *adapter_class* available under *name*."""
    _ADAPTERS[name] = adapter_class


def get_adapter(options: ConnectionOptions | Mapping[str, Any], **kwargs: Any) -> SqlAdapter:
    """Instantiate the adapter named by ``options.adapter``.

    Extra keyword arguments (``output``, ``dry_run``) go to the adapter.
    """
    if not isinstance(options, ConnectionOptions):
        options = ConnectionOptions.build(**options)
    try:
        adapter_class = _ADAPTERS[options.adapter]
    except KeyError:
        raise AdapterNotFoundError(
            f'Adapter "{options.adapter}" has not been registered'
        ) from None
    return adapter_class(options, **kwargs)


__all__ = [
    "AdapterInterface",
    "AlterInstructions",
    "MysqlAdapter",
    "PostgresAdapter",
    "ProxyAdapter",
    "SqlAdapter",
    "SqlServerAdapter",
    "SqlType",
    "SqliteAdapter",
    "get_adapter",
    "register_adapter",
]
