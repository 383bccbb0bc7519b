"""Demo host window for `python -m onboarding`.

Builds one page per catalog route inside a ``QStackedWidget`` and tags a
placeholder widget for every step target with the matching ``tour``
property, so every tour can be walked end to end against real Qt geometry.
The Help menu replays tours; the Getting Started menu mirrors the checklist.
"""

from __future__ import annotations

import logging
import sys
from typing import Dict, List

from PyQt6.QtWidgets import (
    QApplication,
    QFrame,
    QLabel,
    QMainWindow,
    QMessageBox,
    QScrollArea,
    QStackedWidget,
    QVBoxLayout,
    QWidget,
)

from onboarding import settings
from onboarding.app.bootstrap import AppContext, create_app
from onboarding.components.qt_registry import TOUR_PROPERTY, QtElementRegistry
from onboarding.components.tour_overlay import TourOverlay
from onboarding.components.viewport_feed import ViewportEventFeed
from onboarding.models import TourId
from onboarding.services.event_bus import TourEvent
from onboarding.tours.catalog import iter_tours

logger = logging.getLogger(__name__)

DEMO_USER = "demo-user"


class StackedNavigation:
    """``NavigationService`` over a stacked widget keyed by route."""

    def __init__(self, stack: QStackedWidget, pages: Dict[str, QWidget], route: str):
        self._stack = stack
        self._pages = pages
        self._route = route
        stack.setCurrentWidget(pages[route])

    def current_route(self) -> str:
        return self._route

    def navigate_to(self, route: str) -> None:
        page = self._pages.get(route)
        if page is None:
            logger.warning("No page for route %s", route)
            return
        self._route = route
        self._stack.setCurrentWidget(page)


def _build_page(route: str, keys: List[str]) -> QWidget:
    body = QWidget()
    layout = QVBoxLayout(body)
    layout.addWidget(QLabel(route))
    for key in keys:
        block = QFrame()
        block.setFrameShape(QFrame.Shape.StyledPanel)
        block.setMinimumHeight(120)
        block.setProperty(TOUR_PROPERTY, key)
        inner = QVBoxLayout(block)
        inner.addWidget(QLabel(key.replace("-", " ").title()))
        layout.addWidget(block)
    layout.addStretch(1)
    area = QScrollArea()
    area.setWidgetResizable(True)
    area.setWidget(body)
    return area


class DemoWindow(QMainWindow):
    def __init__(self):
        super().__init__()
        self.setWindowTitle("Onboarding Tours")
        self.resize(1280, 800)
        self.stack = QStackedWidget(self)
        self.pages: Dict[str, QWidget] = {}
        routes: Dict[str, List[str]] = {}
        for tour in iter_tours():
            bucket = routes.setdefault(tour.route, [])
            for step in tour.steps:
                if step.target_key not in bucket:
                    bucket.append(step.target_key)
        for route, keys in routes.items():
            page = _build_page(route, keys)
            self.pages[route] = page
            self.stack.addWidget(page)
        self.setCentralWidget(self.stack)
        self.ctx: AppContext | None = None
        self.overlay: TourOverlay | None = None

    def bind(self, ctx: AppContext) -> None:
        self.ctx = ctx
        self.overlay = TourOverlay(self, ctx.controller, ctx.event_bus)
        ViewportEventFeed(self, ctx.event_bus)
        ctx.event_bus.subscribe(TourEvent.ONBOARDING_CHANGED, lambda _e: self._rebuild_menus())
        self._rebuild_menus()

    def _rebuild_menus(self) -> None:
        ctx = self.ctx
        if ctx is None:
            return
        bar = self.menuBar()
        bar.clear()
        progress = ctx.help_menu.progress()
        badge = f" ({progress.completed}/{progress.total})" if progress.show_badge else ""
        help_menu = bar.addMenu(f"&Help{badge}")
        for entry in ctx.help_menu.entries():
            mark = "✓ " if entry.completed else ""
            action = help_menu.addAction(f"{mark}{entry.name}")
            action.setToolTip(entry.description)
            action.triggered.connect(lambda _c=False, t=entry.tour_id: ctx.help_menu.launch(t))
        if ctx.checklist.visible:
            start = bar.addMenu(f"Getting &Started {ctx.checklist.percent()}%")
            for item in ctx.checklist.items():
                action = start.addAction(item.title)
                action.setCheckable(True)
                action.setChecked(item.completed)
                action.triggered.connect(lambda _c=False, i=item.item_id: self._activate(i))
            start.addSeparator()
            start.addAction("Dismiss").triggered.connect(self._dismiss_checklist)

    def _activate(self, item_id: str) -> None:
        assert self.ctx is not None
        self.ctx.help_menu.cancel_pending()
        route = self.ctx.checklist.activate(item_id)
        if route:
            nav = self.ctx.services.get("navigation")
            nav.navigate_to(route)

    def _dismiss_checklist(self) -> None:
        assert self.ctx is not None
        self.ctx.checklist.dismiss()
        self._rebuild_menus()

    def offer_welcome(self) -> None:
        ctx = self.ctx
        if ctx is None or not ctx.onboarding.show_welcome:
            return
        answer = QMessageBox.question(
            self, "Welcome", "Take a quick tour of the dashboard?"
        )
        ctx.onboarding.dismiss_welcome(completed=True)
        if answer == QMessageBox.StandardButton.Yes:
            ctx.controller.start(TourId.DASHBOARD)


def main() -> int:  # pragma: no cover - runtime
    app = QApplication.instance() or QApplication(sys.argv)
    window = DemoWindow()
    navigation = StackedNavigation(window.stack, window.pages, "/dashboard")
    ctx = create_app(
        headless=False,
        data_dir=settings.DATA_DIR,
        registry=QtElementRegistry(window),
        navigation=navigation,
    )
    window.bind(ctx)
    ctx.login(DEMO_USER)
    window.show()
    window.offer_welcome()
    code = app.exec()
    ctx.shutdown()
    return code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
