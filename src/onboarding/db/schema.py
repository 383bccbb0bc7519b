"""SQLite schema for persisted onboarding state.

One row per user in ``user_onboarding``; one INTEGER (0/1) column per
completion flag and milestone. Columns are generated from
``onboarding.models.ALL_FIELDS`` so adding a tour or milestone only touches the
model.

Timestamps stored as ISO-8601 text (UTC).
"""

from __future__ import annotations

import sqlite3

from onboarding.models import ALL_FIELDS

__all__ = ["SCHEMA_VERSION", "DDL", "apply_schema", "get_existing_tables", "ensure_columns"]

SCHEMA_VERSION = 1


def _flag_columns() -> str:
    return ",\n        ".join(f"{name} INTEGER NOT NULL DEFAULT 0" for name in ALL_FIELDS)


DDL: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS schema_meta (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );
    """.strip(),
    f"""
    CREATE TABLE IF NOT EXISTS user_onboarding (
        user_id TEXT PRIMARY KEY,
        {_flag_columns()},
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    );
    """.strip(),
]


def apply_schema(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    for stmt in DDL:
        cur.execute(stmt)
    ensure_columns(conn)
    cur.execute(
        "INSERT OR REPLACE INTO schema_meta(key, value) VALUES ('schema_version', ?)",
        (str(SCHEMA_VERSION),),
    )
    conn.commit()


def ensure_columns(conn: sqlite3.Connection) -> list[str]:
    """Add flag columns missing from an older table; returns the names added."""
    existing = {row[1] for row in conn.execute("PRAGMA table_info(user_onboarding)")}
    added: list[str] = []
    for name in ALL_FIELDS:
        if name not in existing:
            conn.execute(f"ALTER TABLE user_onboarding ADD COLUMN {name} INTEGER NOT NULL DEFAULT 0")
            added.append(name)
    return added


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    cur = conn.cursor()
    cur.execute("SELECT name FROM sqlite_master WHERE type='table'")
    return sorted(r[0] for r in cur.fetchall())
