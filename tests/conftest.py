# Shared fixtures for the onboarding test-suite.
#
# Headless tests drive the engine with a ManualScheduler (virtual clock), an
# InMemoryStateStore and a StaticElementRegistry. Qt tests use pytest-qt's
# qtbot when installed; otherwise a minimal fallback fixture is provided and
# the test is skipped when PyQt6 itself is missing.

import contextlib
import os
import sys

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from onboarding.app.bootstrap import create_app  # noqa: E402
from onboarding.services.event_bus import EventBus, TourEvent  # noqa: E402
from onboarding.services.help_menu_service import InMemoryNavigation  # noqa: E402
from onboarding.services.placement import Rect, Size  # noqa: E402
from onboarding.services.target_resolver import StaticElementRegistry  # noqa: E402
from onboarding.tours.catalog import iter_tours  # noqa: E402

try:  # If pytest-qt present, do nothing (its fixture will be used)
    import pytestqt  # type: ignore  # noqa: F401
except Exception:  # pragma: no cover
    try:
        from PyQt6.QtWidgets import QApplication
    except Exception:  # pragma: no cover
        QApplication = None  # type: ignore

    @pytest.fixture
    def qtbot():  # type: ignore
        if QApplication is None:
            pytest.skip("PyQt6 not available")
        QApplication.instance() or QApplication(sys.argv)  # type: ignore
        widgets = []

        class Bot:
            def addWidget(self, w):  # mimic pytest-qt API subset
                widgets.append(w)

            @contextlib.contextmanager
            def waitSignal(self, *args, **kwargs):  # no-op stub
                yield

        yield Bot()
        for w in widgets:
            w.close()


TARGET_RECT = Rect(100, 300, 200, 40)
VIEWPORT = Size(1280, 800)


class EventRecorder:
    """Collects (name, payload) for every TourEvent published on a bus."""

    def __init__(self, bus: EventBus):
        self.events = []
        for evt in TourEvent:
            bus.subscribe(evt, lambda e: self.events.append((e.name, e.payload)))

    def names(self):
        return [n for n, _ in self.events]

    def payloads(self, name):
        key = name.value if isinstance(name, TourEvent) else name
        return [p for n, p in self.events if n == key]

    def clear(self):
        self.events.clear()


def place_all_targets(registry: StaticElementRegistry, rect: Rect = TARGET_RECT) -> None:
    for tour in iter_tours():
        for step in tour.steps:
            registry.place(step.target_selector, rect)


@pytest.fixture
def registry():
    reg = StaticElementRegistry(VIEWPORT)
    place_all_targets(reg)
    return reg


@pytest.fixture
def navigation():
    return InMemoryNavigation("/dashboard")


@pytest.fixture
def ctx(registry, navigation):
    """Headless application context with user ``user-1`` signed in."""
    app = create_app(
        headless=True, registry=registry, navigation=navigation, attach_logging=False
    )
    app.login("user-1")
    yield app
    app.shutdown()


@pytest.fixture
def recorder(ctx):
    return EventRecorder(ctx.event_bus)
