from typing import Any, Tuple

from flask import current_app

from config.supabase_schema import (
    column_name,
    from_supabase_row,
    table_name,
    to_supabase_payload,
)


def _ensure_supabase_client() -> Tuple[Any, str | None]:
    """Return the configured Supabase client or an explanatory error.

    Returns:
        tuple: (client, error). When Supabase is unavailable the client will be
        ``None`` and ``error`` will contain a message explaining the failure.
    """

    supabase = current_app.config.get("SUPABASE")
    if not supabase or not hasattr(supabase, "table"):
        return None, (
            "Supabase client is not configured. Set SUPABASE_URL and SUPABASE_"
            "SERVICE_KEY to enable the downtime store."
        )
    return supabase, None


def _logical_rows(identifier: str, rows: list[dict] | None) -> list[dict]:
    return [from_supabase_row(identifier, row) for row in rows or []]


def fetch_downtimes() -> tuple[list[dict] | None, str | None]:
    """Return every stoppage ordered by start time.

    The store offers no server-side filtering; callers slice the full list.
    """

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        response = (
            supabase.table(table_name("downtimes"))
            .select("*")
            .order(column_name("downtimes", "start_time"))
            .execute()
        )
        return _logical_rows("downtimes", response.data), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch downtimes: {exc}"


def insert_downtime(record: dict) -> tuple[dict | None, str | None]:
    """Insert a stoppage and return the stored row."""

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        payload = to_supabase_payload("downtimes", record)
        response = supabase.table(table_name("downtimes")).insert(payload).execute()
        rows = _logical_rows("downtimes", response.data)
        return (rows[0] if rows else None), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to save downtime: {exc}"


def update_downtime(downtime_id: Any, updates: dict) -> tuple[dict | None, str | None]:
    """Apply ``updates`` to the stoppage identified by ``downtime_id``."""

    if not updates:
        return None, "No updates supplied"

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        payload = to_supabase_payload("downtimes", updates)
        response = (
            supabase.table(table_name("downtimes"))
            .update(payload)
            .eq(column_name("downtimes", "id"), downtime_id)
            .execute()
        )
        rows = _logical_rows("downtimes", response.data)
        return (rows[0] if rows else None), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to update downtime: {exc}"


def delete_downtime(downtime_id: Any) -> tuple[list[dict] | None, str | None]:
    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        response = (
            supabase.table(table_name("downtimes"))
            .delete()
            .eq(column_name("downtimes", "id"), downtime_id)
            .execute()
        )
        return _logical_rows("downtimes", response.data), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to delete downtime: {exc}"


def fetch_machines() -> tuple[list[dict] | None, str | None]:
    """Return machines in the order they were created."""

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        response = (
            supabase.table(table_name("machines"))
            .select("*")
            .order(column_name("machines", "created_at"))
            .execute()
        )
        return _logical_rows("machines", response.data), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch machines: {exc}"


def insert_machine(record: dict) -> tuple[list[dict] | None, str | None]:
    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        payload = to_supabase_payload("machines", record)
        response = supabase.table(table_name("machines")).insert(payload).execute()
        return _logical_rows("machines", response.data), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to create machine: {exc}"


def update_machine(machine_id: str, updates: dict) -> tuple[list[dict] | None, str | None]:
    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        payload = to_supabase_payload("machines", updates)
        response = (
            supabase.table(table_name("machines"))
            .update(payload)
            .eq(column_name("machines", "id"), machine_id)
            .execute()
        )
        return _logical_rows("machines", response.data), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to update machine: {exc}"


def delete_machine(machine_id: str) -> tuple[list[dict] | None, str | None]:
    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        response = (
            supabase.table(table_name("machines"))
            .delete()
            .eq(column_name("machines", "id"), machine_id)
            .execute()
        )
        return _logical_rows("machines", response.data), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to delete machine: {exc}"


def fetch_app_users(include_sensitive: bool = False) -> tuple[list[dict] | None, str | None]:
    """Return the rows of the credential table.

    Args:
        include_sensitive: When ``True`` the returned records include the
            ``password_hash`` column.  Callers must take care not to expose
            these values.

    Returns:
        tuple[list | None, str | None]: The list of user dictionaries or an
        error message if the query failed.
    """

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        response = supabase.table(table_name("app_users")).select("*").execute()
        data = _logical_rows("app_users", response.data)
        if not include_sensitive:
            data = [
                {key: value for key, value in row.items() if key != "password_hash"}
                for row in data
            ]
        return data, None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch users: {exc}"


def fetch_app_user_credentials(user_id: str) -> tuple[dict | None, str | None]:
    """Return the credential row for ``user_id`` if it exists."""

    records, error = fetch_app_users(include_sensitive=True)
    if error:
        return None, error

    wanted = (user_id or "").strip()
    for record in records or []:
        if str(record.get("user_id") or "") == wanted:
            return record, None
    return None, None


def insert_app_user(record: dict) -> tuple[list[dict] | None, str | None]:
    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        payload = to_supabase_payload("app_users", record)
        response = supabase.table(table_name("app_users")).insert(payload).execute()
        return _logical_rows("app_users", response.data), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to create user: {exc}"


def update_app_user_password(
    user_id: str, password_hash: str
) -> tuple[list[dict] | None, str | None]:
    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        payload = to_supabase_payload("app_users", {"password_hash": password_hash})
        response = (
            supabase.table(table_name("app_users"))
            .update(payload)
            .eq(column_name("app_users", "user_id"), user_id)
            .execute()
        )
        return _logical_rows("app_users", response.data), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to update password: {exc}"


def delete_app_user(user_id: str) -> tuple[list[dict] | None, str | None]:
    """Delete the credential row identified by ``user_id``."""

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        response = (
            supabase.table(table_name("app_users"))
            .delete()
            .eq(column_name("app_users", "user_id"), user_id)
            .execute()
        )
        return _logical_rows("app_users", response.data), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to delete user: {exc}"
