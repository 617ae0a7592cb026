"""MySQL / MariaDB adapter (PyMySQL driver)."""

from __future__ import annotations

import re
from typing import Any, Sequence

from dbmigrate.adapters.base import AlterInstructions, PrimaryKeyInfo, SqlAdapter, SqlType
from dbmigrate.exceptions import ColumnNotFoundError
from dbmigrate.literal import Literal
from dbmigrate.schema import Column, ColumnType, ForeignKey, Index, IndexType, SizeTier, TableSpec

TEXT_LIMITS = {
    SizeTier.TINY: 255,
    SizeTier.SMALL: 255,
    SizeTier.REGULAR: 65535,
    SizeTier.MEDIUM: 16777215,
    SizeTier.LONG: 4294967295,
}

INT_LIMITS = {
    SizeTier.TINY: 255,
    SizeTier.SMALL: 65535,
    SizeTier.MEDIUM: 16777215,
    SizeTier.REGULAR: 4294967295,
    SizeTier.BIG: 18446744073709551615,
}

# Integer tiers from the largest down, with their display widths.
_INT_TIERS = (
    ("bigint", SizeTier.BIG, 20),
    ("int", SizeTier.REGULAR, 11),
    ("mediumint", SizeTier.MEDIUM, 8),
    ("smallint", SizeTier.SMALL, 6),
    ("tinyint", SizeTier.TINY, 4),
)

_TEXT_TIERS = (
    ("longtext", SizeTier.LONG),
    ("mediumtext", SizeTier.MEDIUM),
    ("text", SizeTier.REGULAR),
    ("tinytext", SizeTier.TINY),
)

_BLOB_TIER_OF = {
    ColumnType.TINY_BLOB.value: SizeTier.SMALL,
    ColumnType.MEDIUM_BLOB.value: SizeTier.MEDIUM,
    ColumnType.LONG_BLOB.value: SizeTier.LONG,
}

# Types whose size is implied by the name; never rendered with a length.
_UNSIZED = frozenset(
    {"tinyblob", "blob", "mediumblob", "longblob", "tinytext", "text", "mediumtext", "longtext"}
)

_SIGNED_TYPES = frozenset(
    {
        ColumnType.INTEGER.value,
        ColumnType.TINY_INTEGER.value,
        ColumnType.SMALL_INTEGER.value,
        ColumnType.BIG_INTEGER.value,
        ColumnType.FLOAT.value,
        ColumnType.DOUBLE.value,
        ColumnType.DECIMAL.value,
        ColumnType.BOOLEAN.value,
    }
)

_PASSTHROUGH = frozenset(
    {
        ColumnType.FLOAT.value,
        ColumnType.DOUBLE.value,
        ColumnType.DECIMAL.value,
        ColumnType.DATE.value,
        ColumnType.JSON.value,
        ColumnType.ENUM.value,
        ColumnType.SET.value,
        ColumnType.GEOMETRY.value,
        ColumnType.POINT.value,
        ColumnType.LINESTRING.value,
        ColumnType.POLYGON.value,
    }
)

_TYPE_DEF_RE = re.compile(r"^(?P<name>\w+)(?:\((?P<args>[^)]*)\))?(?P<rest>.*)$")
_ENUM_VALUE_RE = re.compile(r"'((?:[^']|'')*)'")


class MysqlAdapter(SqlAdapter):
    name = "mysql"
    label = "MySQL"
    drivername = "mysql+pymysql"
    IDENTIFIER_QUOTE = ("`", "`")
    BEGIN_SQL = "START TRANSACTION"
    DRIVER_ATTRIBUTES = {
        "init_command": "init_command",
        "timeout": "connect_timeout",
        "connect_timeout": "connect_timeout",
        "read_timeout": "read_timeout",
        "write_timeout": "write_timeout",
        "local_infile": "local_infile",
        "ssl_ca": "ssl_ca",
        "ssl_cert": "ssl_cert",
        "ssl_key": "ssl_key",
        "sql_mode": "sql_mode",
    }
    COLUMN_TYPES = frozenset(
        t.value
        for t in ColumnType
        if t
        not in (
            ColumnType.JSONB,
            ColumnType.INTERVAL,
            ColumnType.CIDR,
            ColumnType.INET,
            ColumnType.MACADDR,
        )
    )
    SIZE_LIMITS = {
        "text": TEXT_LIMITS,
        "blob": TEXT_LIMITS,
        "int": INT_LIMITS,
    }

    def _url_query(self) -> dict[str, str]:
        query = {"charset": self._options.charset or "utf8"}
        if self._options.unix_socket:
            query["unix_socket"] = self._options.unix_socket
        return query

    def quote_string(self, value: str) -> str:
        return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"

    # ── Types ─────────────────────────────────────────────────────────

    def get_sql_type(self, type: str | Literal, limit: int | None = None) -> SqlType:
        if isinstance(type, Literal):
            return SqlType(str(type))
        type = getattr(type, "value", type)

        if type == ColumnType.STRING:
            return SqlType("varchar", limit or 255)
        if type == ColumnType.CHAR:
            return SqlType("char", limit or 255)
        if type == ColumnType.TEXT:
            if limit:
                for name, tier in _TEXT_TIERS:
                    if limit >= TEXT_LIMITS[tier]:
                        return SqlType(name)
            return SqlType("text")
        if type in (ColumnType.BINARY, ColumnType.VARBINARY):
            if limit is None:
                limit = 255
            if limit > 255:
                return self.get_sql_type(ColumnType.BLOB, limit)
            return SqlType(type, limit)
        if type == ColumnType.BLOB:
            if limit is not None:
                if limit <= TEXT_LIMITS[SizeTier.SMALL]:
                    return SqlType("tinyblob", TEXT_LIMITS[SizeTier.SMALL])
                if limit <= TEXT_LIMITS[SizeTier.REGULAR]:
                    return SqlType("blob", TEXT_LIMITS[SizeTier.REGULAR])
                if limit <= TEXT_LIMITS[SizeTier.MEDIUM]:
                    return SqlType("mediumblob", TEXT_LIMITS[SizeTier.MEDIUM])
                return SqlType("longblob", TEXT_LIMITS[SizeTier.LONG])
            return SqlType("blob", TEXT_LIMITS[SizeTier.REGULAR])
        if type in _BLOB_TIER_OF:
            return self.get_sql_type(ColumnType.BLOB, limit or TEXT_LIMITS[_BLOB_TIER_OF[type]])
        if type == ColumnType.INTEGER:
            if limit and limit >= INT_LIMITS[SizeTier.TINY]:
                for name, tier, width in _INT_TIERS:
                    if limit >= INT_LIMITS[tier]:
                        return SqlType(name, width)
            return SqlType("int", limit or 11)
        if type == ColumnType.TINY_INTEGER:
            return SqlType("tinyint", limit or 4)
        if type == ColumnType.SMALL_INTEGER:
            return SqlType("smallint", limit or 6)
        if type == ColumnType.BIG_INTEGER:
            return SqlType("bigint", limit or 20)
        if type == ColumnType.BOOLEAN:
            return SqlType("tinyint", 1)
        if type == ColumnType.UUID:
            return SqlType("char", 36)
        if type == ColumnType.BINARY_UUID:
            return SqlType("binary", 16)
        if type == ColumnType.YEAR:
            return SqlType("year", limit if limit in (2, 4) else 4)
        if type == ColumnType.BIT:
            return SqlType("bit", limit or 1)
        if type in (ColumnType.DATETIME, ColumnType.TIMESTAMP, ColumnType.TIME):
            return SqlType(type, limit)
        if type in _PASSTHROUGH:
            return SqlType(type)
        raise self._unsupported_type(type)

    def get_semantic_type(self, sql_type_def: str) -> dict[str, Any]:
        """Column options for a type as MySQL reports it, e.g. ``int(10) unsigned``."""
        match = _TYPE_DEF_RE.match(sql_type_def.strip())
        if match is None:
            return {"type": Literal(sql_type_def)}
        name = match.group("name").lower()
        args = match.group("args")
        rest = match.group("rest").lower()
        limit = precision = scale = None
        if args and name not in ("enum", "set"):
            parts = [p.strip() for p in args.split(",")]
            if all(p.isdigit() for p in parts):
                limit = int(parts[0])
                if len(parts) > 1:
                    precision, scale, limit = int(parts[0]), int(parts[1]), None
        options: dict[str, Any] = {}
        if "unsigned" in rest:
            options["signed"] = False

        if name == "int":
            options.update(type=ColumnType.INTEGER, limit=None if limit in (None, 10, 11) else limit)
        elif name == "tinyint":
            if limit == 1:
                options.update(type=ColumnType.BOOLEAN)
            else:
                options.update(type=ColumnType.TINY_INTEGER, limit=None if limit in (None, 3, 4) else limit)
        elif name == "smallint":
            options.update(type=ColumnType.SMALL_INTEGER, limit=None if limit in (None, 5, 6) else limit)
        elif name == "mediumint":
            options.update(type=ColumnType.INTEGER, limit=INT_LIMITS[SizeTier.MEDIUM])
        elif name == "bigint":
            options.update(type=ColumnType.BIG_INTEGER, limit=None if limit in (None, 20) else limit)
        elif name == "varchar":
            options.update(type=ColumnType.STRING, limit=None if limit == 255 else limit)
        elif name == "char":
            if limit == 36:
                options.update(type=ColumnType.UUID)
            else:
                options.update(type=ColumnType.CHAR, limit=None if limit == 255 else limit)
        elif name in ("tinytext", "text", "mediumtext", "longtext"):
            tiers = {
                "tinytext": TEXT_LIMITS[SizeTier.TINY],
                "text": None,
                "mediumtext": TEXT_LIMITS[SizeTier.MEDIUM],
                "longtext": TEXT_LIMITS[SizeTier.LONG],
            }
            options.update(type=ColumnType.TEXT, limit=tiers[name])
        elif name == "binary":
            if limit == 16:
                options.update(type=ColumnType.BINARY_UUID)
            else:
                options.update(type=ColumnType.BINARY, limit=None if limit == 255 else limit)
        elif name == "varbinary":
            options.update(type=ColumnType.VARBINARY, limit=None if limit == 255 else limit)
        elif name in ("tinyblob", "blob", "mediumblob", "longblob"):
            tiers = {
                "tinyblob": TEXT_LIMITS[SizeTier.TINY],
                "blob": None,
                "mediumblob": TEXT_LIMITS[SizeTier.MEDIUM],
                "longblob": TEXT_LIMITS[SizeTier.LONG],
            }
            options.update(type=ColumnType.BLOB, limit=tiers[name])
        elif name in ("float", "double", "decimal"):
            options.update(type=name, precision=precision, scale=scale)
            if precision is None and limit is not None:
                options["precision"] = limit
        elif name in ("enum", "set"):
            values = tuple(v.replace("''", "'") for v in _ENUM_VALUE_RE.findall(args or ""))
            options.update(type=name, values=values)
        elif name == "year":
            options.update(type=ColumnType.YEAR, limit=None if limit in (None, 4) else limit)
        elif name == "bit":
            options.update(type=ColumnType.BIT, limit=limit)
        elif name in ("date", "time", "datetime", "timestamp", "json", "geometry", "point", "linestring", "polygon"):
            options.update(type=name, limit=limit)
        else:
            return {"type": Literal(sql_type_def)}
        return options

    # ── Column and index rendering ────────────────────────────────────

    def column_sql_definition(self, column: Column) -> str:
        sql_type: SqlType | None = None
        if column.is_literal_type:
            definition = str(column.type)
        else:
            sql_type = self.get_sql_type(column.type, column.limit)
            definition = sql_type.name.upper()

        if column.precision and column.scale:
            definition += f"({column.precision},{column.scale})"
        elif sql_type is not None and sql_type.limit is not None and sql_type.name not in _UNSIZED:
            definition += f"({sql_type.limit})"

        if column.values:
            definition += "(" + ", ".join(self.quote_string(v) for v in column.values) + ")"

        if column.encoding:
            definition += f" CHARACTER SET {column.encoding}"
        if column.collation:
            definition += f" COLLATE {column.collation}"
        if not column.signed and column.type in _SIGNED_TYPES:
            definition += " unsigned"
        definition += " NULL" if column.null else " NOT NULL"
        if column.identity:
            definition += " AUTO_INCREMENT"
        definition += self.get_default_value_definition(column.default, column.type)
        if column.comment:
            definition += f" COMMENT {self.quote_string(column.comment)}"
        if column.update:
            definition += f" ON UPDATE {column.update}"
        return definition

    def index_sql_definition(self, index: Index) -> str:
        definition = ""
        if index.type == IndexType.UNIQUE:
            definition += "UNIQUE "
        elif index.type == IndexType.FULLTEXT:
            definition += "FULLTEXT "
        elif index.type == IndexType.SPATIAL:
            definition += "SPATIAL "
        definition += "KEY"
        if index.name:
            definition += f" {self.quote_column_name(index.name)}"

        rendered = []
        for column in index.columns or ():
            part = self.quote_column_name(column)
            limit = index.column_limit(column)
            if limit:
                part += f"({limit})"
            order = index.column_order(column)
            if order:
                part += f" {order}"
            rendered.append(part)
        prefix = f"({index.limit})" if isinstance(index.limit, int) and index.limit > 0 else ""
        return f"{definition} ({','.join(rendered)}{prefix})"

    def create_table_statements(
        self, table: TableSpec, columns: Sequence[Column], indexes: Sequence[Index]
    ) -> list[str]:
        options = table.options
        primary_key = options.primary_key_columns(table=table.name)
        columns = self.table_columns(table, columns)

        sql = f"CREATE TABLE {self.quote_table_name(table.name)} ("
        for column in columns:
            sql += f"{self.quote_column_name(column.name)} {self.column_sql_definition(column)}, "
        if primary_key:
            sql = sql.rstrip()
            sql += " PRIMARY KEY (" + ",".join(self.quote_column_name(c) for c in primary_key) + ")"
        else:
            sql = sql.rstrip()[:-1]
        for index in indexes:
            sql += f", {self.index_sql_definition(index)}"

        table_options = [f"ENGINE = {options.engine or self._options.engine or 'InnoDB'}"]
        collation = options.collation or self._options.collation or "utf8_general_ci"
        table_options.append(f"CHARACTER SET {collation.split('_')[0]}")
        table_options.append(f"COLLATE {collation}")
        if options.comment:
            table_options.append(f"COMMENT = {self.quote_string(options.comment)}")
        if options.row_format:
            table_options.append(f"ROW_FORMAT = {options.row_format}")
        sql += ") " + " ".join(table_options)
        return [sql.rstrip()]

    # ── Introspection ─────────────────────────────────────────────────

    def _split_name(self, table_name: str) -> tuple[str | None, str]:
        if "." in table_name:
            schema, name = table_name.split(".", 1)
            return schema, name
        return self._options.name, table_name

    def _has_table(self, table_name: str) -> bool:
        schema, name = self._split_name(table_name)
        row = self.fetch_row(
            "SELECT TABLE_NAME FROM INFORMATION_SCHEMA.TABLES "
            "WHERE TABLE_SCHEMA = COALESCE(:schema, DATABASE()) AND TABLE_NAME = :name",
            {"schema": schema, "name": name},
        )
        return row is not None

    def get_columns(self, table_name: str) -> list[Column]:
        rows = self.fetch_all(f"SHOW FULL COLUMNS FROM {self.quote_table_name(table_name)}")
        columns = []
        for row in rows:
            options = self.get_semantic_type(row["Type"])
            extra = (row.get("Extra") or "").lower()
            if "auto_increment" in extra:
                options["identity"] = True
            if "on update" in extra:
                options["update"] = row["Extra"][extra.index("on update") + len("on update "):].strip()
            columns.append(
                Column.build(
                    row["Field"],
                    options.pop("type"),
                    null=row["Null"] != "NO",
                    default=row.get("Default"),
                    comment=row.get("Comment") or None,
                    collation=row.get("Collation") or None,
                    **options,
                )
            )
        return columns

    def get_indexes(self, table_name: str) -> dict[str, list[str]]:
        indexes: dict[str, list[str]] = {}
        for row in self.fetch_all(f"SHOW INDEXES FROM {self.quote_table_name(table_name)}"):
            indexes.setdefault(row["Key_name"], []).append(row["Column_name"])
        return indexes

    def get_primary_key(self, table_name: str) -> PrimaryKeyInfo:
        columns = self.get_indexes(table_name).get("PRIMARY", [])
        return PrimaryKeyInfo("PRIMARY" if columns else None, tuple(columns))

    def get_foreign_keys(self, table_name: str) -> dict[str, list[str]]:
        schema, name = self._split_name(table_name)
        rows = self.fetch_all(
            "SELECT CONSTRAINT_NAME, COLUMN_NAME FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE "
            "WHERE REFERENCED_TABLE_NAME IS NOT NULL "
            "AND TABLE_SCHEMA = COALESCE(:schema, DATABASE()) AND TABLE_NAME = :name "
            "ORDER BY POSITION_IN_UNIQUE_CONSTRAINT",
            {"schema": schema, "name": name},
        )
        foreign_keys: dict[str, list[str]] = {}
        for row in rows:
            foreign_keys.setdefault(row["CONSTRAINT_NAME"], []).append(row["COLUMN_NAME"])
        return foreign_keys

    # ── ALTER instructions ────────────────────────────────────────────

    def _placement(self, column: Column) -> str:
        if column.after == Column.FIRST:
            return " FIRST"
        if column.after:
            return f" AFTER {self.quote_column_name(column.after)}"
        return ""

    def get_add_column_instructions(self, table: TableSpec, column: Column) -> AlterInstructions:
        return AlterInstructions(
            [
                f"ADD {self.quote_column_name(column.name)} "
                f"{self.column_sql_definition(column)}{self._placement(column)}"
            ]
        )

    def get_drop_column_instructions(self, table_name: str, column_name: str) -> AlterInstructions:
        return AlterInstructions([f"DROP COLUMN {self.quote_column_name(column_name)}"])

    def get_rename_column_instructions(
        self, table_name: str, column_name: str, new_name: str
    ) -> AlterInstructions:
        for row in self.fetch_all(f"SHOW FULL COLUMNS FROM {self.quote_table_name(table_name)}"):
            if row["Field"].lower() != column_name.lower():
                continue
            parts = [row["Type"], "NOT NULL" if row["Null"] == "NO" else "NULL"]
            if row.get("Extra"):
                parts.append(row["Extra"].upper())
            definition = " ".join(parts)
            if row.get("Default") is not None:
                definition += self.get_default_value_definition(row["Default"])
            if row.get("Comment"):
                definition += f" COMMENT {self.quote_string(row['Comment'])}"
            return AlterInstructions(
                [
                    f"CHANGE COLUMN {self.quote_column_name(column_name)} "
                    f"{self.quote_column_name(new_name)} {definition}"
                ]
            )
        raise ColumnNotFoundError(
            f"The specified column doesn't exist: {column_name}",
            table=table_name,
            column=column_name,
        )

    def get_change_column_instructions(
        self, table_name: str, column_name: str, column: Column
    ) -> AlterInstructions:
        return AlterInstructions(
            [
                f"CHANGE {self.quote_column_name(column_name)} {self.quote_column_name(column.name)} "
                f"{self.column_sql_definition(column)}{self._placement(column)}"
            ]
        )

    def get_add_index_instructions(self, table: TableSpec, index: Index) -> AlterInstructions:
        return AlterInstructions([f"ADD {self.index_sql_definition(index)}"])

    def get_drop_index_by_columns_instructions(
        self, table_name: str, columns: Sequence[str]
    ) -> AlterInstructions | None:
        name = self.find_index_name(table_name, columns)
        if name is None:
            return None
        return AlterInstructions([f"DROP INDEX {self.quote_column_name(name)}"])

    def get_drop_index_by_name_instructions(
        self, table_name: str, index_name: str
    ) -> AlterInstructions | None:
        if not self.has_index_by_name(table_name, index_name):
            return None
        return AlterInstructions([f"DROP INDEX {self.quote_column_name(index_name)}"])

    def get_add_foreign_key_instructions(
        self, table: TableSpec, foreign_key: ForeignKey
    ) -> AlterInstructions:
        return AlterInstructions([f"ADD{self.get_foreign_key_sql_definition(foreign_key, table.name)}"])

    def get_drop_foreign_key_instructions(
        self, table_name: str, foreign_key: ForeignKey
    ) -> AlterInstructions:
        constraint = self._foreign_key_constraint(table_name, foreign_key)
        return AlterInstructions([f"DROP FOREIGN KEY {self.quote_column_name(constraint)}"])

    def get_rename_table_instructions(self, table_name: str, new_name: str) -> AlterInstructions:
        return AlterInstructions(
            post_steps=[
                f"RENAME TABLE {self.quote_table_name(table_name)} TO {self.quote_table_name(new_name)}"
            ]
        )

    def get_change_primary_key_instructions(
        self, table: TableSpec, new_columns: Sequence[str] | None
    ) -> AlterInstructions:
        instructions = AlterInstructions()
        if self.get_primary_key(table.name).columns:
            instructions.alter_parts.append("DROP PRIMARY KEY")
        if new_columns:
            instructions.alter_parts.append(
                "ADD PRIMARY KEY (" + ",".join(self.quote_column_name(c) for c in new_columns) + ")"
            )
        return instructions

    def get_change_comment_instructions(
        self, table: TableSpec, comment: str | None
    ) -> AlterInstructions:
        return AlterInstructions([f"COMMENT={self.quote_string(comment or '')}"])
