"""Literal: a raw SQL fragment that bypasses type validation and quoting."""

from __future__ import annotations

from typing import Any

from pydantic import GetCoreSchemaHandler
from pydantic_core import CoreSchema, core_schema


class Literal:
    """Raw, dialect-specific SQL text.

    Used as a column type (``Literal("CHAR(3) BINARY")``) or a default
    value (``Literal("CURRENT_TIMESTAMP(3)")``). Adapters emit it verbatim.
    """

    __slots__ = ("_value",)

    def __init__(self, value: str) -> None:
        self._value = str(value)

    @classmethod
    def from_(cls, value: str) -> Literal:
        return cls(value)

    @property
    def value(self) -> str:
        return self._value

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"Literal({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Literal):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(("Literal", self._value))

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> CoreSchema:
        return core_schema.is_instance_schema(
            cls,
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda v: str(v), info_arg=False
            ),
        )
