"""Qt element registry.

Host widgets opt into tours by carrying a ``tour`` dynamic property::

    button.setProperty("tour", "start-campaign")

``QtElementRegistry`` answers ``[data-tour="start-campaign"]`` selectors by
finding the first *visible* descendant of the root window with that property
and mapping its geometry into root coordinates (the overlay's coordinate
space). Hidden widgets, including those on inactive stacked pages, do not
resolve.
"""

from __future__ import annotations

from typing import Optional

from PyQt6.QtCore import QPoint
from PyQt6.QtWidgets import QScrollArea, QWidget

from onboarding.services.placement import Rect, Size
from onboarding.tours.catalog import tour_key

__all__ = ["QtElementRegistry", "TOUR_PROPERTY"]

TOUR_PROPERTY = "tour"


class QtElementRegistry:
    def __init__(self, root: QWidget):
        self._root = root

    @property
    def root(self) -> QWidget:
        return self._root

    def find_widget(self, selector: str) -> Optional[QWidget]:
        key = tour_key(selector)
        if not key:
            return None
        for widget in self._root.findChildren(QWidget):
            if widget.property(TOUR_PROPERTY) == key and widget.isVisibleTo(self._root):
                return widget
        return None

    def resolve(self, selector: str) -> Optional[Rect]:
        widget = self.find_widget(selector)
        if widget is None:
            return None
        origin = widget.mapTo(self._root, QPoint(0, 0))
        return Rect(origin.x(), origin.y(), widget.width(), widget.height())

    def scroll_into_view(self, selector: str) -> None:
        widget = self.find_widget(selector)
        if widget is None:
            return
        parent = widget.parentWidget()
        while parent is not None and parent is not self._root:
            if isinstance(parent, QScrollArea):
                parent.ensureWidgetVisible(
                    widget, parent.viewport().width() // 2, parent.viewport().height() // 2
                )
                return
            parent = parent.parentWidget()

    def viewport_size(self) -> Size:
        return Size(self._root.width(), self._root.height())
