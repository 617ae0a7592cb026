"""Naming convention utilities: CamelCase ↔ snake_case for migration classes and files."""

from __future__ import annotations

import re

_CAMEL_RE = re.compile(r"^(?:[A-Z][a-z\d]*)+$")


def camel_to_snake(name: str) -> str:
    """Convert a CamelCase migration class name to its snake_case file stem.

    Examples:
        CreateUsers -> create_users
        AddIndexToPosts -> add_index_to_posts
        HTTPLogs -> http_logs
        AddV2Column -> add_v2_column
    """
    # Insert underscore between sequences of uppercase and a following lower/digit
    s = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    # Insert underscore between lowercase/digit and uppercase
    s = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s)
    return s.lower()


def snake_to_camel(name: str) -> str:
    """Convert a snake_case file stem to the expected migration class name.

    Examples:
        create_users -> CreateUsers
        add_index_to_posts -> AddIndexToPosts
    """
    return "".join(part.capitalize() for part in name.split("_"))


def is_valid_class_name(name: str) -> bool:
    """True for CamelCase names such as ``CreateUsers`` or ``V2Upgrade``."""
    return bool(_CAMEL_RE.match(name))
