import importlib
import json

import config.supabase_schema as schema


def _reload_with(monkeypatch, value):
    if value is None:
        monkeypatch.delenv("SUPABASE_SCHEMA_JSON", raising=False)
    else:
        monkeypatch.setenv("SUPABASE_SCHEMA_JSON", value)
    return importlib.reload(schema)


def test_defaults(monkeypatch):
    module = _reload_with(monkeypatch, None)

    assert module.table_name("app_users") == "user_passwords"
    assert module.column_name("downtimes", "duration") == "duration"
    assert module.table_name("unknown") == "unknown"


def test_override_keeps_unmentioned_columns(monkeypatch):
    override = {"downtimes": {"name": "stoppages", "columns": {"duration": "minutes"}}}
    module = _reload_with(monkeypatch, json.dumps(override))
    try:
        assert module.table_name("downtimes") == "stoppages"
        payload = module.to_supabase_payload("downtimes", {"duration": 5, "comment": "x"})
        assert payload == {"minutes": 5, "comment": "x"}
        assert module.from_supabase_row("downtimes", payload) == {"duration": 5, "comment": "x"}
    finally:
        _reload_with(monkeypatch, None)


def test_invalid_override_is_ignored(monkeypatch):
    module = _reload_with(monkeypatch, "{not json")
    try:
        assert module.table_name("downtimes") == "downtimes"
    finally:
        _reload_with(monkeypatch, None)
