"""Persistence adapters for onboarding state."""

from .state_store import (  # noqa: F401
    InMemoryStateStore,
    SqliteStateStore,
    StateStore,
    StateStoreError,
)

__all__ = ["InMemoryStateStore", "SqliteStateStore", "StateStore", "StateStoreError"]
