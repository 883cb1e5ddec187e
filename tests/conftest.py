import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

os.environ.setdefault("SECRET_KEY", "test")
os.environ.setdefault("SUPABASE_URL", "http://localhost")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "service")
os.environ.setdefault("ADMIN_PASSWORD", "pw")

import downtime_app as app_module
from downtime_app import create_app
from downtime_app.main import routes as routes_module
from downtime_app.models import DowntimeEvent, to_millis
from config.supabase_schema import table_name


MARKER = "Omposting/Korigering"


def ms(year, month, day, hour=0, minute=0):
    """Epoch milliseconds of a UTC wall-clock time."""
    return to_millis(datetime(year, month, day, hour, minute, tzinfo=timezone.utc))


def iso(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc).isoformat()


def make_event(
    event_id,
    machine_name,
    start,
    duration=0,
    *,
    post_number=None,
    active=False,
    machine_id=None,
    comment="",
    operator_name=None,
):
    end = None if active else start + duration * 60000
    return DowntimeEvent(
        id=event_id,
        machine_id=machine_id or machine_name.lower(),
        machine_name=machine_name,
        start_time=start,
        end_time=end,
        duration_minutes=duration,
        comment=comment,
        post_number=post_number,
        operator_name=operator_name,
    )


class FakeQuery:
    def __init__(self, supabase, table_name):
        self.supabase = supabase
        self.table_name = table_name
        self._operation = None
        self._payload = None
        self._filters = []
        self._limit = None

    def select(self, columns="*"):
        self._operation = "select"
        return self

    def insert(self, rows):
        self._operation = "insert"
        self._payload = rows
        return self

    def update(self, values):
        self._operation = "update"
        self._payload = values
        return self

    def delete(self):
        self._operation = "delete"
        return self

    def eq(self, column, value):
        self._filters.append((column, value))
        return self

    def order(self, column, *args, **kwargs):
        self._order = column
        return self

    def limit(self, value):
        self._limit = value
        return self

    def _matches(self, row):
        return all(str(row.get(column)) == str(value) for column, value in self._filters)

    def execute(self):
        if self.table_name in self.supabase.failing:
            raise RuntimeError("connection refused")

        table = self.supabase.tables.setdefault(self.table_name, [])
        if self._operation == "select":
            data = [dict(row) for row in table if self._matches(row)]
            if getattr(self, "_order", None):
                data.sort(key=lambda row: str(row.get(self._order) or ""))
            if self._limit is not None:
                data = data[: self._limit]
            return SimpleNamespace(data=data, count=len(data))
        if self._operation == "insert":
            rows = self._payload
            if isinstance(rows, dict):
                rows = [rows]
            inserted = []
            for row in rows:
                new_row = row.copy()
                new_row.setdefault("id", f"fake-{len(table) + len(inserted) + 1}")
                table.append(new_row)
                inserted.append(dict(new_row))
            return SimpleNamespace(data=inserted, count=len(inserted))
        if self._operation == "update":
            updated = []
            for row in table:
                if self._matches(row):
                    row.update(self._payload)
                    updated.append(dict(row))
            return SimpleNamespace(data=updated, count=len(updated))
        if self._operation == "delete":
            deleted = [row for row in table if self._matches(row)]
            self.supabase.tables[self.table_name] = [
                row for row in table if not self._matches(row)
            ]
            return SimpleNamespace(data=deleted, count=len(deleted))
        return SimpleNamespace(data=None, count=None)


class FakeSupabase:
    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.failing: set[str] = set()

    def table(self, name):
        return FakeQuery(self, name)

    def rows(self, identifier):
        return self.tables.setdefault(table_name(identifier), [])


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def app(monkeypatch, fake_supabase):
    monkeypatch.setattr(app_module, "create_client", lambda url, key: fake_supabase)
    app = create_app()
    app.testing = True
    app.config["LOCAL_TIMEZONE"] = "UTC"
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def frozen_now(monkeypatch):
    """Pin the clock used by the views; returns a setter."""

    def freeze(value):
        monkeypatch.setattr(routes_module, "_now", lambda: value)
        return value

    return freeze


def login(client, user_id="ole", role="operator", username=None):
    with client.session_transaction() as sess:
        sess["user_id"] = user_id
        sess["username"] = username or user_id.capitalize()
        sess["role"] = role


def seed_floor(supabase):
    """Three machines, including the lot-change marker machine."""

    supabase.rows("machines").extend(
        [
            {"id": "m1", "name": "Press", "color": "bg-blue-500", "created_at": iso(2024, 1, 1)},
            {"id": "m2", "name": "Pause", "color": "bg-gray-500", "created_at": iso(2024, 1, 2)},
            {"id": "m3", "name": MARKER, "color": "bg-red-500", "created_at": iso(2024, 1, 3)},
        ]
    )
    supabase.rows("app_users").extend(
        [
            {"user_id": "ole", "password_hash": "secret1", "role": "operator", "display_name": "Ole"},
            {"user_id": "sjef", "password_hash": "secret2", "role": "manager", "display_name": "Sjef"},
        ]
    )
