import sqlite3

import pytest

from onboarding.db.schema import SCHEMA_VERSION, apply_schema, ensure_columns, get_existing_tables
from onboarding.db.state_store import (
    InMemoryStateStore,
    SqliteStateStore,
    StateStoreError,
    validate_fields,
)
from onboarding.models import ALL_FIELDS, OnboardingState


@pytest.fixture
def sqlite_store():
    store = SqliteStateStore(sqlite3.connect(":memory:"))
    yield store
    store.close()


def test_schema_creates_tables_and_version(sqlite_store):
    conn = sqlite_store.connection
    assert get_existing_tables(conn) == ["schema_meta", "user_onboarding"]
    row = conn.execute("SELECT value FROM schema_meta WHERE key='schema_version'").fetchone()
    assert row[0] == str(SCHEMA_VERSION)
    cols = {r[1] for r in conn.execute("PRAGMA table_info(user_onboarding)")}
    assert set(ALL_FIELDS) <= cols


def test_apply_schema_idempotent(sqlite_store):
    apply_schema(sqlite_store.connection)
    apply_schema(sqlite_store.connection)
    assert get_existing_tables(sqlite_store.connection) == ["schema_meta", "user_onboarding"]


def test_ensure_columns_adds_missing_flags():
    conn = sqlite3.connect(":memory:")
    conn.execute("CREATE TABLE user_onboarding (user_id TEXT PRIMARY KEY, welcome_completed INTEGER)")
    added = ensure_columns(conn)
    assert "first_reply_received" in added
    assert "welcome_completed" not in added
    assert ensure_columns(conn) == []


def test_get_missing_user_returns_none(sqlite_store):
    assert sqlite_store.get("nobody") is None


def test_upsert_default_is_idempotent(sqlite_store):
    first = sqlite_store.upsert_default("u1")
    sqlite_store.set_fields("u1", {"dashboard_tour_completed": True})
    second = sqlite_store.upsert_default("u1")
    assert first == OnboardingState.default()
    assert second.dashboard_tour_completed  # existing row untouched
    count = sqlite_store.connection.execute("SELECT COUNT(*) FROM user_onboarding").fetchone()[0]
    assert count == 1


def test_set_fields_last_write_wins(sqlite_store):
    sqlite_store.set_fields("u1", {"leads_tour_completed": True, "first_email_sent": True})
    sqlite_store.set_fields("u1", {"leads_tour_completed": False})
    state = sqlite_store.get("u1")
    assert state is not None
    assert not state.leads_tour_completed
    assert state.first_email_sent


def test_set_fields_unknown_column_raises_before_sql(sqlite_store):
    with pytest.raises(ValueError):
        sqlite_store.set_fields("u1", {"drop_table": True})
    assert sqlite_store.get("u1") is None


def test_sqlite_errors_wrapped():
    store = SqliteStateStore(sqlite3.connect(":memory:"))
    store.close()
    with pytest.raises(StateStoreError):
        store.get("u1")
    with pytest.raises(StateStoreError):
        store.set_fields("u1", {"welcome_completed": True})


def test_open_on_disk_persists(tmp_path):
    path = str(tmp_path / "onboarding.sqlite")
    store = SqliteStateStore.open(path)
    store.set_fields("u1", {"autopilot_tour_completed": True})
    store.close()
    reopened = SqliteStateStore.open(path)
    try:
        assert reopened.get("u1").autopilot_tour_completed
    finally:
        reopened.close()


def test_in_memory_store_records_calls():
    store = InMemoryStateStore()
    assert store.get("u") is None
    store.upsert_default("u")
    store.upsert_default("u")
    store.set_fields("u", {"welcome_completed": 1})
    assert store.row_count() == 1
    assert [c[0] for c in store.calls] == ["get", "upsert_default", "upsert_default", "set_fields"]
    assert store.calls[-1] == ("set_fields", "u", {"welcome_completed": True})


def test_validate_fields_rejects_empty():
    with pytest.raises(ValueError):
        validate_fields({})
