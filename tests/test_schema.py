import sqlite3
from pathlib import Path

import pytest

from outreach.store.migrations import SchemaError, ddl_statements, load_schema
from outreach.store.sqlite import SqliteStore

SCHEMA_PATH = Path(__file__).resolve().parents[1] / "resources" / "schema" / "canonical.yaml"


def _store(tmp_path: Path) -> SqliteStore:
    store = SqliteStore(tmp_path / "test.sqlite")
    store.apply_schema(SCHEMA_PATH)
    return store


def test_apply_schema_creates_tables(tmp_path: Path) -> None:
    store = _store(tmp_path)
    for table in ("outreach_sequences", "outreach_steps", "campaigns", "leads", "touchpoints"):
        row = store.fetch_one(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
        )
        assert row is not None


def test_apply_schema_is_repeatable(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.apply_schema(SCHEMA_PATH)
    row = store.fetch_one("SELECT version FROM __schema_meta")
    assert row["version"] == 1


def test_foreign_keys_enforced(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with pytest.raises(sqlite3.IntegrityError):
        store.execute(
            "INSERT INTO touchpoints (touchpoint_id, lead_id, type, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            ("tp-1", "missing-lead", "email", "2024-01-01T00:00:00+00:00", "2024-01-01T00:00:00+00:00"),
        )


def test_enum_values_checked(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with pytest.raises(sqlite3.IntegrityError):
        store.execute(
            "INSERT INTO touchpoints (touchpoint_id, type, created_at, updated_at) VALUES (?, ?, ?, ?)",
            ("tp-1", "fax", "2024-01-01T00:00:00+00:00", "2024-01-01T00:00:00+00:00"),
        )


def test_unknown_enum_rejected(tmp_path: Path) -> None:
    schema_path = tmp_path / "schema.yaml"
    schema_path.write_text(
        "version: 1\n"
        "tables:\n"
        "  things:\n"
        "    primary_key: thing_id\n"
        "    fields:\n"
        "      thing_id: {type: uuid, required: true}\n"
        "      kind: {type: enum, enum: thing_kind}\n",
        encoding="utf-8",
    )
    assert load_schema(schema_path).enums == {}
    store = SqliteStore(tmp_path / "test.sqlite")
    with pytest.raises(SchemaError):
        store.apply_schema(schema_path)


def test_touchpoint_schedule_is_unique_per_recipient(tmp_path: Path) -> None:
    store = _store(tmp_path)
    now = "2024-01-01T00:00:00+00:00"
    store.execute(
        "INSERT INTO districts (district_id, tenant, name, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
        ("d-1", "acme", "Springfield USD", now, now),
    )
    store.execute(
        "INSERT INTO district_contacts (district_contact_id, district_id, status, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?)",
        ("dc-1", "d-1", "not_contacted", now, now),
    )
    insert = (
        "INSERT INTO touchpoints (touchpoint_id, district_contact_id, type, scheduled_at, created_at, "
        "updated_at) VALUES (?, ?, ?, ?, ?, ?)"
    )
    store.execute(insert, ("tp-1", "dc-1", "email", "2024-01-05T09:00:00+00:00", now, now))
    store.execute(insert, ("tp-2", "dc-1", "call", "2024-01-05T09:00:00+00:00", now, now))
    with pytest.raises(sqlite3.IntegrityError):
        store.execute(insert, ("tp-3", "dc-1", "email", "2024-01-05T09:00:00+00:00", now, now))


def test_ddl_wraps_nullable_unique_columns() -> None:
    schema = load_schema(SCHEMA_PATH)
    (unique,) = [sql for sql in ddl_statements(schema) if sql.startswith("CREATE UNIQUE INDEX")]
    assert "COALESCE(lead_id, '')" in unique
    assert "COALESCE(district_contact_id, '')" in unique
    assert ", type," in unique
