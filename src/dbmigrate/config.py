"""Connection options for an adapter."""

from __future__ import annotations

import re
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from dbmigrate.exceptions import ConfigurationError

DEFAULT_MIGRATION_TABLE = "phinxlog"

# attr_<name> applies to every dialect, <dialect>_attr_<name> to one.
ATTRIBUTE_RE = re.compile(r"^(?:(?P<dialect>[a-z]+)_)?attr_(?P<name>\w+)$")


class ConnectionOptions(BaseModel):
    """Where and how to connect, plus the ledger table name."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    adapter: str
    driver: str | None = None
    host: str | None = None
    port: int | None = None
    name: str | None = None
    user: str | None = None
    password: str | None = Field(default=None, validation_alias=AliasChoices("password", "pass"))
    charset: str | None = None
    collation: str | None = None
    unix_socket: str | None = None
    schema_name: str | None = Field(default=None, validation_alias=AliasChoices("schema_name", "schema"))
    migration_table: str = DEFAULT_MIGRATION_TABLE
    engine: str | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_attributes(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        attributes = dict(data.pop("attributes", None) or {})
        for key in [k for k in data if isinstance(k, str) and ATTRIBUTE_RE.match(k)]:
            attributes[key] = data.pop(key)
        data["attributes"] = attributes
        return data

    @classmethod
    def build(cls, **options: Any) -> ConnectionOptions:
        """Validate raw options, reporting problems as a ConfigurationError."""
        try:
            return cls(**options)
        except ValidationError as e:
            problems = []
            for err in e.errors():
                loc = ".".join(str(part) for part in err.get("loc", ()))
                if err.get("type") == "missing":
                    problems.append(f'missing required option "{loc}"')
                elif err.get("type") == "extra_forbidden":
                    problems.append(f'"{loc}" is not a valid connection option')
                else:
                    problems.append(f"{loc}: {err.get('msg')}")
            raise ConfigurationError(
                f"Invalid connection options: {'; '.join(problems)}"
            ) from e

    @property
    def is_memory(self) -> bool:
        return self.name in (None, "", ":memory:")
