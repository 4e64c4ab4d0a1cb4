"""Validation for dynamically named tables.

Table names cannot be bound as query parameters, so every statement that
interpolates a crew table name goes through one of the checks below first:

  sanitize_table_name     strict crew-table format; required before any DDL
  validate_identifier     loose [a-z0-9_] check; required before any query
  droppable_table_name    multi-stage guard used by drop_table, returns a reason
"""
import re
from typing import Any, Optional

from errors import TableNameError

# PostgreSQL truncates identifiers longer than NAMEDATALEN - 1
MAX_IDENTIFIER_LENGTH = 63

CREW_TABLE_NAME_PATTERN = (
    r"^__[a-z0-9]+_[0-9]+_(support|leadgen)_(vector|histories)_[0-9]{3}$"
)
CREW_TABLE_NAME_RE = re.compile(CREW_TABLE_NAME_PATTERN)

_PREFIXED_RE = re.compile(r"^__[a-z0-9_]+$")
_IDENTIFIER_RE = re.compile(r"^[a-z0-9_]+$")
# Accepts legacy names without the double-underscore prefix
_DROPPABLE_RE = re.compile(r"^_?_?[a-z0-9_]+$")
_CREW_TABLE_MARKERS = ("vector", "histories")


def sanitize_table_name(table_name: str) -> str:
    """Return table_name unchanged if it is a well-formed crew table name.

    Raises TableNameError when the name is too long, has characters outside
    [a-z0-9_], lacks the "__" prefix, or does not follow
    __{client_code}_{crew_type}_{table_type}_{sequence}.
    """
    if not isinstance(table_name, str):
        raise TableNameError(f"Table name must be a string, got {type(table_name).__name__}")
    if len(table_name) > MAX_IDENTIFIER_LENGTH:
        raise TableNameError(
            f"Table name exceeds PostgreSQL limit of {MAX_IDENTIFIER_LENGTH} characters: {table_name}"
        )
    if not _PREFIXED_RE.match(table_name):
        raise TableNameError(
            f"Invalid table name format: {table_name}. Must start with __ and contain "
            f"only lowercase letters, numbers, and underscores."
        )
    if not CREW_TABLE_NAME_RE.match(table_name):
        raise TableNameError(
            f"Table name doesn't match expected format: {table_name}. "
            f"Expected: __{{client_code}}_{{crew_type}}_{{table_type}}_{{sequence}}"
        )
    return table_name


def validate_identifier(table_name: Any) -> str:
    """Loose check applied before querying a table named in a crew config."""
    if (
        not isinstance(table_name, str)
        or len(table_name) > MAX_IDENTIFIER_LENGTH
        or not _IDENTIFIER_RE.match(table_name)
    ):
        raise TableNameError(f"Invalid table name: {table_name!r}")
    return table_name


def crew_table_type(table_name: str) -> str:
    """Return "vector" or "histories" for a crew table name."""
    return "vector" if "_vector_" in table_name else "histories"


def droppable_table_name(table_name: Any) -> Optional[str]:
    """Return None if table_name may be dropped, else the reason it may not."""
    if not table_name or not isinstance(table_name, str):
        return f"Invalid table name: {table_name!r}"
    if len(table_name) > MAX_IDENTIFIER_LENGTH:
        return f"Table name exceeds PostgreSQL limit: {table_name}"
    if not _DROPPABLE_RE.match(table_name):
        return f"Invalid characters in table name: {table_name}"
    if not any(marker in table_name for marker in _CREW_TABLE_MARKERS):
        return f"Refusing to drop non-crew table: {table_name}"
    return None


def quote_identifier(table_name: str) -> str:
    """Double-quote a name that has already passed validation."""
    return '"' + table_name + '"'
