"""Schema value objects: columns, indexes, foreign keys and table definitions.

Every option bag is a closed pydantic model. Unknown keys are rejected at
construction instead of being silently ignored; engine-specific escapes go
through :class:`~dbmigrate.literal.Literal`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from dbmigrate.exceptions import InvalidOptionError, SchemaError
from dbmigrate.literal import Literal


class ColumnType(str, Enum):
    """Semantic column types understood by the adapters."""

    STRING = "string"
    CHAR = "char"
    TEXT = "text"
    INTEGER = "integer"
    TINY_INTEGER = "tinyinteger"
    SMALL_INTEGER = "smallinteger"
    BIG_INTEGER = "biginteger"
    FLOAT = "float"
    DOUBLE = "double"
    DECIMAL = "decimal"
    DATETIME = "datetime"
    TIMESTAMP = "timestamp"
    TIME = "time"
    DATE = "date"
    YEAR = "year"
    BINARY = "binary"
    VARBINARY = "varbinary"
    BLOB = "blob"
    TINY_BLOB = "tinyblob"
    MEDIUM_BLOB = "mediumblob"
    LONG_BLOB = "longblob"
    BOOLEAN = "boolean"
    UUID = "uuid"
    BINARY_UUID = "binaryuuid"
    ENUM = "enum"
    SET = "set"
    JSON = "json"
    JSONB = "jsonb"
    GEOMETRY = "geometry"
    POINT = "point"
    LINESTRING = "linestring"
    POLYGON = "polygon"
    BIT = "bit"
    INTERVAL = "interval"
    CIDR = "cidr"
    INET = "inet"
    MACADDR = "macaddr"


class SizeTier(str, Enum):
    """Capacity tiers for sized types (text, blob, integer)."""

    TINY = "tiny"
    SMALL = "small"
    MEDIUM = "medium"
    REGULAR = "regular"
    LONG = "long"
    BIG = "big"


class IndexType(str, Enum):
    INDEX = "index"
    UNIQUE = "unique"
    FULLTEXT = "fulltext"
    SPATIAL = "spatial"


class ForeignKeyAction(str, Enum):
    CASCADE = "CASCADE"
    NO_ACTION = "NO ACTION"
    SET_NULL = "SET NULL"
    RESTRICT = "RESTRICT"

    @classmethod
    def parse(cls, value: Any) -> ForeignKeyAction:
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().upper().replace("_", " ")
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(
                f"Unknown foreign key action {value!r}; expected one of "
                f"cascade, no_action, set_null, restrict"
            ) from None


_M = TypeVar("_M", bound=BaseModel)


def _build(model: type[_M], label: str, data: dict[str, Any], **context: Any) -> _M:
    """Validate *data* into *model*, translating pydantic errors."""
    try:
        return model(**data)
    except ValidationError as e:
        problems = []
        for err in e.errors():
            loc = ".".join(str(part) for part in err.get("loc", ()))
            if err.get("type") == "extra_forbidden":
                problems.append(f'"{loc}" is not a valid {label} option')
            else:
                problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        raise InvalidOptionError(
            "; ".join(problems),
            details=e.errors(include_url=False),
            **context,
        ) from e


def _as_tuple(value: Any) -> Any:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list):
        return tuple(value)
    return value


# ── Column ───────────────────────────────────────────────────────────


class Column(BaseModel):
    """A column definition: name, semantic type and its options."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    # Placement marker for after=Column.FIRST
    FIRST: ClassVar[str] = "__first__"

    name: str
    type: str | Literal
    limit: int | None = Field(default=None, validation_alias=AliasChoices("limit", "length"))
    null: bool = False
    default: Any = None
    identity: bool = False
    precision: int | None = None
    scale: int | None = None
    after: str | None = None
    update: str | None = None
    comment: str | None = None
    signed: bool = True
    timezone: bool = False
    values: tuple[str, ...] | None = None
    collation: str | None = None
    encoding: str | None = None
    srid: int | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _unwrap_enum(cls, v: Any) -> Any:
        if isinstance(v, Enum):
            return v.value
        return v

    @field_validator("values", mode="before")
    @classmethod
    def _split_values(cls, v: Any) -> Any:
        if isinstance(v, str):
            return tuple(part.strip() for part in v.split(","))
        return _as_tuple(v)

    @classmethod
    def build(cls, name: str, type: str | ColumnType | Literal, **options: Any) -> Column:
        """Build a column from a name, a type and keyword options."""
        return _build(cls, "column", {"name": name, "type": type, **options}, column=name)

    @property
    def is_literal_type(self) -> bool:
        return isinstance(self.type, Literal)

    def with_name(self, name: str) -> Column:
        return self.model_copy(update={"name": name})


# ── Index ────────────────────────────────────────────────────────────


class Index(BaseModel):
    """An index over one or more columns, optionally named."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    columns: tuple[str, ...] | None = None
    name: str | None = None
    type: IndexType = IndexType.INDEX
    limit: int | dict[str, int] | None = None
    order: dict[str, str] | None = None

    @model_validator(mode="before")
    @classmethod
    def _unique_shorthand(cls, data: Any) -> Any:
        if isinstance(data, dict) and "unique" in data:
            data = dict(data)
            if data.pop("unique"):
                data["type"] = IndexType.UNIQUE
        return data

    @field_validator("columns", mode="before")
    @classmethod
    def _columns_tuple(cls, v: Any) -> Any:
        return _as_tuple(v)

    @field_validator("order")
    @classmethod
    def _check_order(cls, v: dict[str, str] | None) -> dict[str, str] | None:
        if v is None:
            return v
        normalized = {}
        for column, direction in v.items():
            direction = direction.upper()
            if direction not in ("ASC", "DESC"):
                raise ValueError(f"Index order for {column!r} must be ASC or DESC, got {direction!r}")
            normalized[column] = direction
        return normalized

    @model_validator(mode="after")
    def _columns_or_name(self) -> Index:
        if not self.columns and not self.name:
            raise ValueError("An index needs columns or a name")
        return self

    @classmethod
    def build(cls, columns: str | list[str] | tuple[str, ...] | None, **options: Any) -> Index:
        return _build(cls, "index", {"columns": columns, **options})

    @property
    def is_unique(self) -> bool:
        return self.type == IndexType.UNIQUE

    def column_limit(self, column: str) -> int | None:
        """Prefix length for *column*, if any."""
        if isinstance(self.limit, dict):
            limit = self.limit.get(column)
            return limit if limit and limit > 0 else None
        return None

    def column_order(self, column: str) -> str | None:
        return (self.order or {}).get(column)


# ── Foreign key ──────────────────────────────────────────────────────


class ForeignKey(BaseModel):
    """A foreign key from local columns to a referenced table."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    columns: tuple[str, ...]
    referenced_table: str
    referenced_columns: tuple[str, ...] = ("id",)
    on_delete: ForeignKeyAction | None = Field(
        default=None, validation_alias=AliasChoices("on_delete", "delete")
    )
    on_update: ForeignKeyAction | None = Field(
        default=None, validation_alias=AliasChoices("on_update", "update")
    )
    constraint: str | None = None

    @field_validator("columns", "referenced_columns", mode="before")
    @classmethod
    def _columns_tuple(cls, v: Any) -> Any:
        return _as_tuple(v)

    @field_validator("on_delete", "on_update", mode="before")
    @classmethod
    def _parse_action(cls, v: Any) -> Any:
        if v is None:
            return v
        return ForeignKeyAction.parse(v)

    @model_validator(mode="after")
    def _same_arity(self) -> ForeignKey:
        if len(self.columns) != len(self.referenced_columns):
            raise ValueError(
                f"Foreign key columns {list(self.columns)} and referenced columns "
                f"{list(self.referenced_columns)} must have the same length"
            )
        return self

    @classmethod
    def build(
        cls,
        columns: str | list[str] | tuple[str, ...],
        referenced_table: str,
        referenced_columns: str | list[str] | tuple[str, ...] = ("id",),
        *,
        table: str | None = None,
        **options: Any,
    ) -> ForeignKey:
        local = _as_tuple(columns)
        remote = _as_tuple(referenced_columns)
        if len(local) != len(remote):
            raise SchemaError(
                f"Foreign key on {table or '?'} has {len(local)} column(s) but "
                f"references {len(remote)} column(s) of {referenced_table}",
                table=table,
            )
        return _build(
            cls,
            "foreign key",
            {
                "columns": local,
                "referenced_table": referenced_table,
                "referenced_columns": remote,
                **options,
            },
            table=table,
        )

    def constraint_name(self, table_name: str) -> str:
        """Explicit constraint name, or the deterministic default."""
        if self.constraint:
            return self.constraint
        return f"{table_name}_{'_'.join(self.columns)}_fkey"


# ── Table ────────────────────────────────────────────────────────────


class TableOptions(BaseModel):
    """Table-level options: primary key strategy, engine, collation, comment."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: bool | str = True
    primary_key: str | tuple[str, ...] | None = None
    signed: bool = True
    engine: str | None = None
    collation: str | None = None
    comment: str | None = None
    row_format: str | None = None
    limit: int | None = None

    @field_validator("primary_key", mode="before")
    @classmethod
    def _pk_tuple(cls, v: Any) -> Any:
        if isinstance(v, list):
            return tuple(v)
        return v

    @classmethod
    def build(cls, table: str | None = None, **options: Any) -> TableOptions:
        return _build(cls, "table", options, table=table)

    def id_column(self) -> str | None:
        """Name of the auto-increment id column, or None when disabled."""
        if self.id is True:
            return "id"
        if self.id is False or self.id == "":
            return None
        return str(self.id)

    def primary_key_columns(self, table: str | None = None) -> tuple[str, ...] | None:
        """Resolve the primary key, rejecting an id column plus a different key."""
        pk = (self.primary_key,) if isinstance(self.primary_key, str) else self.primary_key
        id_col = self.id_column()
        if id_col is not None:
            if pk is not None and pk != (id_col,):
                raise SchemaError(
                    "You cannot enable an auto incrementing ID field and a primary key",
                    table=table,
                )
            return (id_col,)
        return pk


@dataclass(frozen=True)
class TableSpec:
    """Identity of a table: its (optionally schema qualified) name and options."""

    name: str
    options: TableOptions = field(default_factory=TableOptions)

    @property
    def schema(self) -> str | None:
        if "." in self.name:
            return self.name.split(".", 1)[0]
        return None

    @property
    def table_name(self) -> str:
        return self.name.split(".", 1)[-1]

    def with_name(self, name: str) -> TableSpec:
        return TableSpec(name, self.options)
