"""Viewport event feed.

Bridges Qt input on the host window onto the onboarding EventBus so the
headless tour engine can react without importing Qt:

* window resize        -> ``viewport.resize`` ``{"width", "height"}``
* scroll-area movement -> ``viewport.scroll`` ``{"dx", "dy"}``
* key press            -> ``viewport.keydown`` ``{"key": <name>}``

Key names use the DOM spelling the controller binds (``ArrowRight``,
``ArrowLeft``, ``Enter``, ``Escape``); other keys are published with their
text so future bindings need no change here. Events are never consumed.
"""

from __future__ import annotations

from typing import List, Optional

from PyQt6.QtCore import QEvent, QObject, Qt
from PyQt6.QtWidgets import QApplication, QScrollArea, QWidget

from onboarding.services.event_bus import EventBus, ViewportEvent

__all__ = ["ViewportEventFeed", "key_name"]

_KEY_NAMES = {
    Qt.Key.Key_Right: "ArrowRight",
    Qt.Key.Key_Left: "ArrowLeft",
    Qt.Key.Key_Up: "ArrowUp",
    Qt.Key.Key_Down: "ArrowDown",
    Qt.Key.Key_Return: "Enter",
    Qt.Key.Key_Enter: "Enter",
    Qt.Key.Key_Escape: "Escape",
    Qt.Key.Key_Tab: "Tab",
}


def key_name(key: int, text: str = "") -> Optional[str]:
    try:
        name = _KEY_NAMES.get(Qt.Key(key))
    except ValueError:
        name = None
    return name or (text or None)


class _KeyFilter(QObject):
    def __init__(self, feed: "ViewportEventFeed", app_wide: bool):
        super().__init__(feed)
        self._feed = feed
        self.app_wide = app_wide

    def eventFilter(self, watched, event):  # type: ignore[override]
        if event.type() == QEvent.Type.KeyPress and self._is_target(watched):
            name = key_name(event.key(), event.text())
            if name:
                self._feed.publish_key(name)
        return False

    def _is_target(self, watched) -> bool:
        root = self._feed.root
        if not self.app_wide:
            return watched is root
        # The app-wide filter sees a key once per widget it propagates through;
        # count it only at the receiver that had focus.
        focus = QApplication.focusWidget() or root
        return watched is focus and (focus is root or root.isAncestorOf(focus))


class ViewportEventFeed(QObject):
    def __init__(self, root: QWidget, event_bus: EventBus, *, application_keys: bool = True):
        super().__init__(root)
        self._root = root
        self._bus = event_bus
        self._areas: List[QScrollArea] = []
        app = QApplication.instance() if application_keys else None
        self._keys = _KeyFilter(self, app_wide=app is not None)
        (app or root).installEventFilter(self._keys)
        root.installEventFilter(self)
        for area in root.findChildren(QScrollArea):
            self.watch_scroll_area(area)

    @property
    def root(self) -> QWidget:
        return self._root

    def watch_scroll_area(self, area: QScrollArea) -> None:
        if area in self._areas:
            return
        self._areas.append(area)
        area.verticalScrollBar().valueChanged.connect(lambda v: self._publish_scroll(0, v))
        area.horizontalScrollBar().valueChanged.connect(lambda v: self._publish_scroll(v, 0))

    def publish_key(self, name: str) -> None:
        self._bus.publish(ViewportEvent.KEYDOWN, {"key": name})

    def detach(self) -> None:
        self._root.removeEventFilter(self)
        app = QApplication.instance()
        if self._keys.app_wide and app is not None:
            app.removeEventFilter(self._keys)
        else:
            self._root.removeEventFilter(self._keys)

    # Qt overrides ------------------------------------------------------------
    def eventFilter(self, watched, event):  # type: ignore[override]
        if event.type() == QEvent.Type.Resize and watched is self._root:
            self._bus.publish(
                ViewportEvent.RESIZE, {"width": self._root.width(), "height": self._root.height()}
            )
        return False

    def _publish_scroll(self, dx: int, dy: int) -> None:
        self._bus.publish(ViewportEvent.SCROLL, {"dx": dx, "dy": dy})
