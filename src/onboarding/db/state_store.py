"""State store adapters for the per-user onboarding record.

Contract (``StateStore``):
 - ``get(user_id)`` -> ``OnboardingState`` or ``None`` when no record exists
 - ``upsert_default(user_id)`` -> the stored record; creates the all-false
   default exactly once. A second (or concurrent) call returns the existing
   row instead of inserting a duplicate or raising.
 - ``set_fields(user_id, fields)`` writes the given flags, last write wins.
   A missing row is created first.

All adapter failures surface as ``StateStoreError`` so callers need to catch
one type. Unknown column names are programmer errors and raise ``ValueError``
before touching storage.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Dict, List, Mapping, Optional, Protocol, Tuple

from onboarding.models import ALL_FIELDS, OnboardingState

from .schema import apply_schema

__all__ = [
    "StateStore",
    "StateStoreError",
    "InMemoryStateStore",
    "SqliteStateStore",
    "validate_fields",
]

logger = logging.getLogger(__name__)


class StateStoreError(RuntimeError):
    """Raised when the backing store cannot complete a read or write."""


class StateStore(Protocol):
    def get(self, user_id: str) -> Optional[OnboardingState]: ...  # pragma: no cover

    def upsert_default(self, user_id: str) -> OnboardingState: ...  # pragma: no cover

    def set_fields(self, user_id: str, fields: Mapping[str, bool]) -> None: ...  # pragma: no cover


def validate_fields(fields: Mapping[str, bool]) -> Dict[str, bool]:
    if not fields:
        raise ValueError("set_fields requires at least one field")
    unknown = sorted(set(fields) - set(ALL_FIELDS))
    if unknown:
        raise ValueError(f"Unknown onboarding field(s): {', '.join(unknown)}")
    return {k: bool(v) for k, v in fields.items()}


class InMemoryStateStore:
    """Dictionary-backed store for tests and ephemeral sessions.

    ``calls`` records every contract invocation as ``(operation, user_id, payload)``.
    """

    def __init__(self) -> None:
        self._rows: Dict[str, Dict[str, bool]] = {}
        self.calls: List[Tuple[str, str, object]] = []

    def get(self, user_id: str) -> Optional[OnboardingState]:
        self.calls.append(("get", user_id, None))
        row = self._rows.get(user_id)
        return OnboardingState.from_fields(row) if row is not None else None

    def upsert_default(self, user_id: str) -> OnboardingState:
        self.calls.append(("upsert_default", user_id, None))
        row = self._rows.setdefault(user_id, OnboardingState.default().to_fields())
        return OnboardingState.from_fields(row)

    def set_fields(self, user_id: str, fields: Mapping[str, bool]) -> None:
        values = validate_fields(fields)
        self.calls.append(("set_fields", user_id, dict(values)))
        self._rows.setdefault(user_id, OnboardingState.default().to_fields()).update(values)

    def row_count(self) -> int:
        return len(self._rows)


class SqliteStateStore:
    """``sqlite3``-backed store; one row per user in ``user_onboarding``."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row
        apply_schema(self._conn)

    @classmethod
    def open(cls, path: str) -> "SqliteStateStore":
        try:
            conn = sqlite3.connect(path)
        except sqlite3.Error as exc:
            raise StateStoreError(f"Cannot open onboarding database at {path}: {exc}") from exc
        return cls(conn)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def get(self, user_id: str) -> Optional[OnboardingState]:
        try:
            row = self._conn.execute(
                "SELECT * FROM user_onboarding WHERE user_id = ?", (user_id,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise StateStoreError(f"Reading onboarding state for {user_id} failed: {exc}") from exc
        return OnboardingState.from_fields(dict(row)) if row is not None else None

    def upsert_default(self, user_id: str) -> OnboardingState:
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT INTO user_onboarding(user_id) VALUES (?) "
                    "ON CONFLICT(user_id) DO NOTHING",
                    (user_id,),
                )
        except sqlite3.Error as exc:
            raise StateStoreError(f"Creating onboarding state for {user_id} failed: {exc}") from exc
        state = self.get(user_id)
        if state is None:  # pragma: no cover - row vanished between insert and read
            raise StateStoreError(f"Onboarding state for {user_id} missing after upsert")
        return state

    def set_fields(self, user_id: str, fields: Mapping[str, bool]) -> None:
        values = validate_fields(fields)
        # Column names come from the validated whitelist, values are bound.
        assignments = ", ".join(f"{name} = ?" for name in values)
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        params = [int(v) for v in values.values()]
        try:
            with self._conn:
                self._conn.execute(
                    f"INSERT INTO user_onboarding(user_id, {columns}) VALUES (?, {placeholders}) "
                    f"ON CONFLICT(user_id) DO UPDATE SET {assignments}, "
                    "updated_at = CURRENT_TIMESTAMP",
                    [user_id, *params, *params],
                )
        except sqlite3.Error as exc:
            raise StateStoreError(f"Writing onboarding state for {user_id} failed: {exc}") from exc
        logger.debug("Stored onboarding fields for %s: %s", user_id, values)

    def close(self) -> None:
        self._conn.close()
