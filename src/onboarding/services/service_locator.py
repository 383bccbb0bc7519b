"""Service registry owned by an application context.

Each ``AppContext`` (see ``onboarding.app.bootstrap``) holds its own
``ServiceLocator``; there is no module-level instance. Consumers receive the
services they need through their constructors, the locator only gives the
bootstrap, the launcher and tests one place to look them up or swap them.

Usage pattern:
    ctx = create_app(headless=True)
    controller = ctx.services.get_typed("tour_controller", TourController)

In tests:
    with ctx.services.override_context(state_store=FailingStore()):
        ...
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Generator, Iterable, Type, TypeVar

T = TypeVar("T")

__all__ = ["ServiceLocator", "ServiceAlreadyRegisteredError", "ServiceNotFoundError"]


class ServiceAlreadyRegisteredError(RuntimeError):
    """Raised when attempting to register an existing key without allow_override."""


class ServiceNotFoundError(KeyError):
    """Raised when a requested service key is not present."""


@dataclass
class ServiceRecord:
    key: str
    value: Any
    origin: str | None = None


class ServiceLocator:
    def __init__(self) -> None:
        self._services: Dict[str, ServiceRecord] = {}

    def register(
        self, key: str, value: Any, *, allow_override: bool = False, origin: str | None = None
    ) -> None:
        if key in self._services and not allow_override:
            raise ServiceAlreadyRegisteredError(f"Service '{key}' already registered")
        self._services[key] = ServiceRecord(key=key, value=value, origin=origin)

    def get(self, key: str) -> Any:
        record = self._services.get(key)
        if record is None:
            raise ServiceNotFoundError(key)
        return record.value

    def get_typed(self, key: str, expected_type: Type[T]) -> T:
        value = self.get(key)
        if not isinstance(value, expected_type):
            raise TypeError(
                f"Service '{key}' expected type {expected_type!r} but got {type(value)!r}"
            )
        return value

    def try_get(self, key: str, default: Any = None) -> Any:
        record = self._services.get(key)
        return record.value if record else default

    def origin_of(self, key: str) -> str | None:
        record = self._services.get(key)
        return record.origin if record else None

    @contextmanager
    def override_context(self, **overrides: Any) -> Generator[None, None, None]:
        """Temporarily replace services; previous records are restored on exit."""
        previous: Dict[str, ServiceRecord | None] = {}
        for key, new_value in overrides.items():
            previous[key] = self._services.get(key)
            origin = "temp" if previous[key] is None else "override"
            self._services[key] = ServiceRecord(key=key, value=new_value, origin=origin)
        try:
            yield
        finally:
            for key, prior in previous.items():
                if prior is None:
                    self._services.pop(key, None)
                else:
                    self._services[key] = prior

    def unregister(self, key: str) -> None:
        self._services.pop(key, None)

    def list_keys(self) -> Iterable[str]:
        return list(self._services.keys())

    def clear(self) -> None:
        self._services.clear()
