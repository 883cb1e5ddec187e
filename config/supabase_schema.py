"""Centralised Supabase table and column configuration.

The tracker reads and writes three Supabase/PostgREST tables: stoppages,
machines and user credentials.  Each table name and column identifier used by
the code base is defined here so that a deployment can point the application
at differently named tables without touching application logic.  When a
mapping for a table or column is missing the helpers fall back to the
identifier supplied by the caller.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping


@dataclass(frozen=True)
class SupabaseTable:
    """Configuration for a Supabase table."""

    name: str
    columns: Mapping[str, str] = field(default_factory=dict)


# Default table and column mappings, used unless SUPABASE_SCHEMA_JSON
# overrides them.
_DEFAULT_SUPABASE_SCHEMA: Dict[str, SupabaseTable] = {
    "downtimes": SupabaseTable(
        name="downtimes",
        columns={
            "id": "id",
            "machine_id": "machine_id",
            "operator_id": "operator_id",
            "start_time": "start_time",
            "end_time": "end_time",
            "duration": "duration",
            "comment": "comment",
            "post_number": "post_number",
            "photo_url": "photo_url",
            "date": "date",
        },
    ),
    "machines": SupabaseTable(
        name="machines",
        columns={
            "id": "id",
            "name": "name",
            "color": "color",
            "created_at": "created_at",
        },
    ),
    "app_users": SupabaseTable(
        name="user_passwords",
        columns={
            "user_id": "user_id",
            "password_hash": "password_hash",
            "role": "role",
            "display_name": "display_name",
        },
    ),
}


def _normalise_columns(columns: Any) -> Dict[str, str]:
    """Return a string-to-string column mapping from ``columns``."""

    if not isinstance(columns, Mapping):
        return {}
    return {
        str(logical): str(actual)
        for logical, actual in columns.items()
        if isinstance(logical, str) and isinstance(actual, str)
    }


def _load_schema_from_env() -> Dict[str, SupabaseTable]:
    """Build the Supabase schema from environment overrides."""

    schema = dict(_DEFAULT_SUPABASE_SCHEMA)

    raw_schema = os.getenv("SUPABASE_SCHEMA_JSON")
    if not raw_schema:
        return schema

    try:
        parsed = json.loads(raw_schema)
    except json.JSONDecodeError:
        return schema

    if not isinstance(parsed, Mapping):
        return schema

    for identifier, entry in parsed.items():
        if not isinstance(identifier, str) or not isinstance(entry, Mapping):
            continue

        name = entry.get("name")
        if not isinstance(name, str) or not name:
            continue

        # Columns that are not overridden keep their default mapping.
        default = _DEFAULT_SUPABASE_SCHEMA.get(identifier)
        columns = dict(default.columns) if default else {}
        columns.update(_normalise_columns(entry.get("columns", {})))
        schema[identifier] = SupabaseTable(name=name, columns=columns)

    return schema


SUPABASE_SCHEMA: Dict[str, SupabaseTable] = _load_schema_from_env()


def table_name(identifier: str) -> str:
    """Return the configured Supabase table name for ``identifier``."""

    table = SUPABASE_SCHEMA.get(identifier)
    if table:
        return table.name
    return identifier


def column_name(table_identifier: str, column_identifier: str) -> str:
    """Return the configured column name for ``table_identifier``."""

    table = SUPABASE_SCHEMA.get(table_identifier)
    if table and column_identifier in table.columns:
        return table.columns[column_identifier]
    return column_identifier


def table_columns(table_identifier: str) -> Mapping[str, str]:
    """Return the configured column mapping for ``table_identifier``."""

    table = SUPABASE_SCHEMA.get(table_identifier)
    if table:
        return table.columns
    return {}


def to_supabase_payload(
    table_identifier: str, payload: Mapping[str, Any]
) -> Dict[str, Any]:
    """Return ``payload`` with keys mapped to Supabase column names."""

    columns = table_columns(table_identifier)
    if not columns:
        return dict(payload)
    return {columns.get(key, key): value for key, value in payload.items()}


def from_supabase_row(
    table_identifier: str, row: Mapping[str, Any]
) -> Dict[str, Any]:
    """Return ``row`` with Supabase column names mapped back to logical keys."""

    columns = table_columns(table_identifier)
    if not columns:
        return dict(row)
    reverse = {actual: logical for logical, actual in columns.items()}
    return {reverse.get(key, key): value for key, value in row.items()}
