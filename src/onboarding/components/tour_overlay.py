"""Tour overlay widget.

Covers the host window with a dimmed backdrop that has a rounded cut-out
around the current step's target, draws a highlight ring on top, and hosts
the tooltip card (title, body, progress, Back / Next / Skip).

Usage::

    overlay = TourOverlay(main_window, controller, event_bus)
    controller.start(TourId.DASHBOARD)

Behavior
--------
* The overlay is parented to the window root and resized with it; it never
  lives inside the screen being toured.
* Repaints follow controller events on the bus (step rendered, content
  revealed, target missing, tour finished) rather than polling.
* A click on the dimmed area skips the tour. Clicks inside the cut-out are
  swallowed so the highlighted control is not triggered mid-tour.
* Tooltip body text fades in only after ``STEP_CONTENT_REVEALED``.
"""

from __future__ import annotations

import html
from typing import List, Optional

from PyQt6.QtCore import QEvent, QRectF, Qt
from PyQt6.QtGui import QColor, QPainter, QPainterPath, QPen
from PyQt6.QtWidgets import QFrame, QHBoxLayout, QLabel, QPushButton, QVBoxLayout, QWidget

from onboarding import settings
from onboarding.services.event_bus import Event, EventBus, Subscription, TourEvent
from onboarding.services.placement import Rect, Size
from onboarding.services.tour_controller import TourController

from .overlay_model import HitZone, OverlayFrame, build_overlay_frame, hit_test

__all__ = ["TourOverlay", "TooltipCard"]

_REFRESH_EVENTS = (
    TourEvent.TOUR_STARTED,
    TourEvent.STEP_CHANGED,
    TourEvent.STEP_RENDERED,
    TourEvent.STEP_CONTENT_REVEALED,
    TourEvent.TARGET_MISSING,
    TourEvent.TOUR_COMPLETING,
)
_CLOSE_EVENTS = (TourEvent.TOUR_COMPLETED, TourEvent.TOUR_SKIPPED, TourEvent.TOUR_ENDED)


def _qrect(rect: Rect) -> QRectF:
    return QRectF(rect.left, rect.top, rect.width, rect.height)


class TooltipCard(QFrame):
    def __init__(self, parent: QWidget, controller: TourController):
        super().__init__(parent)
        self.setObjectName("TourTooltip")
        self.setFrameShape(QFrame.Shape.StyledPanel)
        self.setAutoFillBackground(True)
        self._controller = controller
        self.title_label = QLabel(self)
        self.title_label.setObjectName("TourTooltipTitle")
        self.body_label = QLabel(self)
        self.body_label.setWordWrap(True)
        self.body_label.setTextFormat(Qt.TextFormat.RichText)
        self.tip_label = QLabel(self)
        self.tip_label.setWordWrap(True)
        self.missing_label = QLabel("This element isn't on screen right now.", self)
        self.progress_label = QLabel(self)
        self.back_button = QPushButton("Back", self)
        self.skip_button = QPushButton("Skip tour", self)
        self.retry_button = QPushButton("Retry", self)
        self.next_button = QPushButton("Next", self)
        self.back_button.clicked.connect(controller.prev)
        self.skip_button.clicked.connect(controller.skip)
        self.retry_button.clicked.connect(controller.retry_target)
        self.next_button.clicked.connect(lambda: controller.next(defer=True))

        buttons = QHBoxLayout()
        buttons.addWidget(self.progress_label)
        buttons.addStretch(1)
        for b in (self.skip_button, self.back_button, self.retry_button, self.next_button):
            buttons.addWidget(b)
        layout = QVBoxLayout(self)
        layout.addWidget(self.title_label)
        layout.addWidget(self.body_label)
        layout.addWidget(self.tip_label)
        layout.addWidget(self.missing_label)
        layout.addLayout(buttons)

    def apply(self, frame: OverlayFrame, body_html: str, pro_tip: Optional[str]) -> None:
        self.title_label.setText(frame.title)
        self.body_label.setText(body_html)
        self.body_label.setVisible(frame.revealed)
        self.tip_label.setText(pro_tip or "")
        self.tip_label.setVisible(bool(pro_tip) and frame.revealed)
        self.missing_label.setVisible(frame.target_missing)
        self.retry_button.setVisible(frame.target_missing)
        self.progress_label.setText(frame.progress_label)
        self.back_button.setEnabled(frame.back_enabled)
        self.next_button.setText(frame.primary_label)


class TourOverlay(QWidget):
    def __init__(
        self,
        parent: QWidget,
        controller: TourController,
        event_bus: EventBus,
        dark_rgba=settings.BACKDROP_RGBA,
    ):
        super().__init__(parent)
        self.setObjectName("TourOverlay")
        self.setAttribute(Qt.WidgetAttribute.WA_NoSystemBackground, True)
        self._controller = controller
        self._bus = event_bus
        self._dark_rgba = dark_rgba
        self._frame: Optional[OverlayFrame] = None
        self.card = TooltipCard(self, controller)
        self.card.hide()
        self._subs: List[Subscription] = [
            event_bus.subscribe(name, self._on_event) for name in _REFRESH_EVENTS + _CLOSE_EVENTS
        ]
        parent.installEventFilter(self)
        self.hide()

    # Public API --------------------------------------------------------------
    @property
    def frame(self) -> Optional[OverlayFrame]:
        return self._frame

    def refresh(self) -> None:
        view = self._controller.step_view
        parent = self.parentWidget()
        if view is None or parent is None:
            self._frame = None
            self.card.hide()
            self.hide()
            return
        self.setGeometry(0, 0, parent.width(), parent.height())
        frame = build_overlay_frame(view, Size(parent.width(), parent.height()))
        self._frame = frame
        body = "".join(
            f"<b>{html.escape(seg.text)}</b>" if seg.highlighted else html.escape(seg.text)
            for seg in view.content.body
        )
        self.card.apply(frame, body, view.content.pro_tip)
        if frame.tooltip is not None:
            self.card.setGeometry(_qrect(frame.tooltip).toRect())
        else:
            w, h = int(view.tooltip_size.width), int(view.tooltip_size.height)
            self.card.setGeometry(max(0, (self.width() - w) // 2), max(0, (self.height() - h) // 2), w, h)
        self.card.show()
        self.raise_()
        self.show()
        self.update()

    def dispose(self) -> None:
        for sub in self._subs:
            self._bus.unsubscribe(sub)
        self._subs.clear()
        parent = self.parentWidget()
        if parent is not None:
            parent.removeEventFilter(self)

    # Qt overrides ------------------------------------------------------------
    def eventFilter(self, watched, event):  # type: ignore[override]
        if watched is self.parentWidget() and event.type() == QEvent.Type.Resize and self.isVisible():
            self.setGeometry(0, 0, watched.width(), watched.height())
        return False

    def paintEvent(self, event):  # type: ignore[override]
        frame = self._frame
        if frame is None:
            return
        p = QPainter(self)
        p.setRenderHint(QPainter.RenderHint.Antialiasing, True)
        shade = QPainterPath()
        shade.addRect(_qrect(frame.backdrop))
        if frame.cutout is not None:
            hole = QPainterPath()
            hole.addRoundedRect(_qrect(frame.cutout), frame.cutout_radius, frame.cutout_radius)
            shade = shade.subtracted(hole)
        p.fillPath(shade, QColor(*self._dark_rgba))
        if frame.highlight is not None:
            p.setPen(QPen(QColor(59, 130, 246), 2))
            p.drawRoundedRect(_qrect(frame.highlight), frame.cutout_radius, frame.cutout_radius)
        p.end()

    def mousePressEvent(self, event):  # type: ignore[override]
        frame = self._frame
        if frame is None:
            return
        pos = event.position()
        if hit_test(frame, pos.x(), pos.y()) == HitZone.BACKDROP:
            self._controller.skip()
        event.accept()

    # Internal ----------------------------------------------------------------
    def _on_event(self, _event: Event) -> None:
        self.refresh()
