import pytest

pytest.importorskip("PyQt6")

from PyQt6.QtCore import QPoint, Qt  # noqa: E402
from PyQt6.QtTest import QTest  # noqa: E402
from PyQt6.QtWidgets import QWidget  # noqa: E402

from onboarding.app.bootstrap import create_app  # noqa: E402
from onboarding.components.qt_registry import TOUR_PROPERTY, QtElementRegistry  # noqa: E402
from onboarding.components.tour_overlay import TourOverlay  # noqa: E402
from onboarding.components.viewport_feed import ViewportEventFeed, key_name  # noqa: E402
from onboarding.models import TourId  # noqa: E402
from onboarding.services.event_bus import EventBus, ViewportEvent  # noqa: E402
from onboarding.services.placement import Rect, Size  # noqa: E402
from onboarding.services.tour_controller import ControllerState  # noqa: E402


def _tagged(parent, key, x, y, w, h):
    widget = QWidget(parent)
    widget.setGeometry(x, y, w, h)
    widget.setProperty(TOUR_PROPERTY, key)
    return widget


@pytest.fixture
def root(qtbot):
    window = QWidget()
    window.resize(1280, 800)
    qtbot.addWidget(window)
    window.show()
    return window


def test_registry_maps_into_root_coordinates(root):
    reg = QtElementRegistry(root)
    panel = QWidget(root)
    panel.setGeometry(40, 60, 600, 400)
    _tagged(panel, "campaigns", 10, 5, 120, 30)
    assert reg.resolve('[data-tour="campaigns"]') == Rect(50, 65, 120, 30)
    assert reg.viewport_size() == Size(1280, 800)


def test_registry_ignores_hidden_and_unknown(root):
    reg = QtElementRegistry(root)
    widget = _tagged(root, "autopilot", 0, 0, 10, 10)
    assert reg.find_widget('[data-tour="autopilot"]') is widget
    widget.hide()
    assert reg.resolve('[data-tour="autopilot"]') is None
    assert reg.resolve('[data-tour="nope"]') is None


def test_key_name_mapping():
    assert key_name(Qt.Key.Key_Right) == "ArrowRight"
    assert key_name(Qt.Key.Key_Return) == "Enter"
    assert key_name(Qt.Key.Key_Escape) == "Escape"
    assert key_name(Qt.Key.Key_A, "a") == "a"
    assert key_name(Qt.Key.Key_Shift) is None


def test_feed_publishes_resize_and_keys(root):
    bus = EventBus()
    seen = []
    bus.subscribe(ViewportEvent.RESIZE, lambda e: seen.append((e.name, e.payload)))
    bus.subscribe(ViewportEvent.KEYDOWN, lambda e: seen.append((e.name, e.payload)))
    host = QWidget(root)
    host.setGeometry(0, 0, 400, 300)
    host.show()
    feed = ViewportEventFeed(host, bus, application_keys=False)
    host.resize(900, 700)
    QTest.keyClick(host, Qt.Key.Key_Right)
    assert (ViewportEvent.RESIZE.value, {"width": 900, "height": 700}) in seen
    assert (ViewportEvent.KEYDOWN.value, {"key": "ArrowRight"}) in seen
    feed.detach()
    seen.clear()
    QTest.keyClick(host, Qt.Key.Key_Left)
    assert seen == []


@pytest.fixture
def overlay_ctx(root):
    _tagged(root, "start-campaign", 100, 300, 200, 40)
    ctx = create_app(headless=True, registry=QtElementRegistry(root), attach_logging=False)
    ctx.login("qt-user")
    overlay = TourOverlay(root, ctx.controller, ctx.event_bus)
    yield ctx, overlay
    overlay.dispose()
    ctx.shutdown()


def test_overlay_follows_controller(overlay_ctx):
    ctx, overlay = overlay_ctx
    assert overlay.frame is None
    ctx.controller.start(TourId.DASHBOARD)
    frame = overlay.frame
    assert frame is not None
    assert frame.cutout == Rect(92, 292, 216, 56)
    assert not overlay.isHidden()
    geo = overlay.card.geometry()
    assert (geo.x(), geo.y()) == (12, 356)
    assert overlay.card.title_label.text() == "Start a New Campaign"
    assert overlay.card.body_label.isHidden()
    ctx.scheduler.advance(150)
    assert not overlay.card.body_label.isHidden()
    assert "<b>AI-powered</b>" in overlay.card.body_label.text()
    assert not overlay.card.back_button.isEnabled()


def test_overlay_click_zones(overlay_ctx):
    ctx, overlay = overlay_ctx
    ctx.controller.start(TourId.DASHBOARD)
    QTest.mouseClick(overlay, Qt.MouseButton.LeftButton, pos=QPoint(150, 310))
    assert ctx.controller.state is ControllerState.ACTIVE
    QTest.mouseClick(overlay, Qt.MouseButton.LeftButton, pos=QPoint(1000, 100))
    assert ctx.controller.state is ControllerState.IDLE
    assert overlay.frame is None
    assert overlay.isHidden()
