import pytest

from onboarding.app.bootstrap import create_app
from onboarding.app.config_store import TourConfig
from onboarding.db.state_store import InMemoryStateStore, StateStoreError
from onboarding.models import TourId
from onboarding.services.error_reporting_service import FailureKind
from onboarding.services.event_bus import TourEvent, ViewportEvent
from onboarding.services.placement import Rect
from onboarding.services.tour_controller import KEY_BINDINGS, ControllerState, StepStatus

from conftest import EventRecorder


def _to_last_step(controller, tour_id):
    controller.start(tour_id)
    while not controller.step_view.is_last:
        controller.next()


# Deferred completion -----------------------------------------------------


def test_deferred_completion_fires_once(ctx, recorder):
    c = ctx.controller
    _to_last_step(c, TourId.ACCOUNTS)
    assert c.step_view.progress_label == "3 of 3"
    c.next(defer=True)
    assert c.state is ControllerState.COMPLETING
    assert recorder.payloads(TourEvent.TOUR_COMPLETING) == [{"tour_id": "accounts"}]
    c.next()
    c.prev()
    assert c.state is ControllerState.COMPLETING
    ctx.scheduler.advance(1199)
    assert c.state is ControllerState.COMPLETING
    assert ctx.onboarding.is_completed(TourId.ACCOUNTS)  # persisted before the celebration ends
    ctx.scheduler.advance(1)
    assert c.state is ControllerState.IDLE
    ctx.scheduler.run_all()
    assert recorder.payloads(TourEvent.TOUR_COMPLETED) == [{"tour_id": "accounts"}]
    writes = [call for call in ctx.store.calls if call[0] == "set_fields"]
    assert len(writes) == 1


def test_skip_during_celebration_finishes_without_second_write(ctx, recorder):
    c = ctx.controller
    _to_last_step(c, TourId.TEMPLATES)
    c.next(defer=True)
    assert c.skip() is None
    assert c.state is ControllerState.IDLE
    ctx.scheduler.run_all()
    assert recorder.payloads(TourEvent.TOUR_COMPLETED) == [{"tour_id": "templates"}]
    assert not recorder.payloads(TourEvent.TOUR_SKIPPED)
    assert len([call for call in ctx.store.calls if call[0] == "set_fields"]) == 1


def test_new_tour_during_celebration_cancels_pending_finish(ctx, recorder):
    c = ctx.controller
    _to_last_step(c, TourId.TEMPLATES)
    c.next(defer=True)
    c.start(TourId.LEADS)
    ctx.scheduler.advance(5000)
    assert c.state is ControllerState.ACTIVE
    assert c.session.tour_id is TourId.LEADS
    assert recorder.payloads(TourEvent.TOUR_COMPLETED) == []
    assert ctx.onboarding.is_completed(TourId.TEMPLATES)


# Keyboard ----------------------------------------------------------------


def test_key_bindings_table():
    assert KEY_BINDINGS == {
        "ArrowRight": "next",
        "Enter": "next",
        "ArrowLeft": "prev",
        "Escape": "skip",
    }


def test_keydown_events_drive_the_tour(ctx, recorder):
    bus = ctx.event_bus
    c = ctx.controller
    c.start(TourId.DASHBOARD)
    bus.publish(ViewportEvent.KEYDOWN, {"key": "ArrowRight"})
    bus.publish(ViewportEvent.KEYDOWN, {"key": "Enter"})
    assert c.session.step_index == 2
    bus.publish(ViewportEvent.KEYDOWN, {"key": "ArrowLeft"})
    bus.publish(ViewportEvent.KEYDOWN, {"key": "q"})
    assert c.session.step_index == 1
    bus.publish(ViewportEvent.KEYDOWN, {"key": "Escape"})
    assert c.state is ControllerState.IDLE
    assert recorder.payloads(TourEvent.TOUR_SKIPPED) == [{"tour_id": "dashboard", "step_index": 1}]
    assert bus.errors == []


def test_handle_key_ignored_when_idle_or_disabled(registry, navigation):
    app = create_app(
        headless=True,
        registry=registry,
        navigation=navigation,
        config=TourConfig(keyboard_navigation=False),
        attach_logging=False,
    )
    app.login("u2")
    try:
        assert not app.controller.handle_key("ArrowRight")
        app.controller.start(TourId.LEADS)
        assert app.event_bus.subscriber_count(ViewportEvent.KEYDOWN) == 0
        assert not app.controller.handle_key("ArrowRight")
        assert app.controller.session.step_index == 0
    finally:
        app.shutdown()


# Missing targets ---------------------------------------------------------


def test_missing_target_surfaces_status_and_retry(ctx, registry, recorder):
    c = ctx.controller
    selector = '[data-tour="lead-row"]'
    registry.remove(selector)
    c.start(TourId.LEADS)
    c.next()
    assert c.step_view.status is StepStatus.RESOLVING
    ctx.scheduler.advance(50)
    assert c.state is ControllerState.ACTIVE
    assert c.step_view.status is StepStatus.TARGET_MISSING
    assert c.placement is None
    assert recorder.payloads(TourEvent.TARGET_MISSING) == [
        {"tour_id": "leads", "step_index": 1, "selector": selector}
    ]
    registry.place(selector, Rect(50, 50, 100, 30))
    assert c.retry_target()
    assert c.step_view.status is StepStatus.VISIBLE
    assert not c.retry_target()  # only offered while the target is missing


def test_auto_skip_missing_targets(registry, navigation):
    registry.remove('[data-tour="autopilot-schedule"]')
    app = create_app(
        headless=True,
        registry=registry,
        navigation=navigation,
        config=TourConfig(auto_skip_missing_targets=True),
        attach_logging=False,
    )
    app.login("u3")
    try:
        app.controller.start(TourId.AUTOPILOT)
        app.controller.next()
        app.scheduler.advance(50)
        assert app.controller.session.step_index == 2
        assert app.controller.step_view.status is StepStatus.VISIBLE
    finally:
        app.shutdown()


def test_missing_last_target_with_auto_skip_completes(registry, navigation):
    registry.remove('[data-tour="daily-limit"]')
    app = create_app(
        headless=True,
        registry=registry,
        navigation=navigation,
        config=TourConfig(auto_skip_missing_targets=True),
        attach_logging=False,
    )
    rec = EventRecorder(app.event_bus)
    app.login("u4")
    try:
        _to_last_step(app.controller, TourId.ACCOUNTS)
        app.scheduler.run_all()
        assert app.controller.state is ControllerState.IDLE
        assert app.onboarding.is_completed(TourId.ACCOUNTS)
        assert rec.payloads(TourEvent.TOUR_COMPLETED) == [{"tour_id": "accounts"}]
    finally:
        app.shutdown()


@pytest.mark.parametrize("tour_id", [t for t in TourId if t is not TourId.WELCOME])
def test_every_tour_runs_to_completion(ctx, tour_id):
    c = ctx.controller
    _to_last_step(c, tour_id)
    c.next()
    ctx.scheduler.run_all()
    assert ctx.onboarding.is_completed(tour_id)


# Failed writes -----------------------------------------------------------


class BrokenWritesStore(InMemoryStateStore):
    def set_fields(self, user_id, fields):
        raise StateStoreError("disk full")


@pytest.fixture
def broken_app(registry, navigation):
    app = create_app(
        headless=True,
        store=BrokenWritesStore(),
        registry=registry,
        navigation=navigation,
        attach_logging=False,
    )
    app.login("u-broken")
    yield app
    app.shutdown()


def test_failed_skip_write_still_leaves_tour(broken_app):
    rec = EventRecorder(broken_app.event_bus)
    c = broken_app.controller
    c.start(TourId.DASHBOARD)
    c.next()
    write = c.skip()
    assert c.state is ControllerState.IDLE
    assert c.session is None
    broken_app.scheduler.run_all()
    assert isinstance(write.exception(timeout=0), StateStoreError)
    assert not broken_app.onboarding.is_completed(TourId.DASHBOARD)
    assert rec.payloads(TourEvent.TOUR_SKIPPED) == [{"tour_id": "dashboard", "step_index": 1}]
    failed = rec.payloads(TourEvent.PERSISTENCE_FAILED)
    assert len(failed) == 1
    assert failed[0]["type"] == "StateStoreError"
    assert broken_app.errors.recent(FailureKind.PERSISTENCE)


@pytest.mark.parametrize("defer", [False, True])
def test_failed_finish_write_still_completes_session(broken_app, defer):
    rec = EventRecorder(broken_app.event_bus)
    c = broken_app.controller
    _to_last_step(c, TourId.TEMPLATES)
    write = c.next(defer=defer)
    broken_app.scheduler.advance(0)
    assert isinstance(write.exception(timeout=0), StateStoreError)
    if defer:
        assert c.state is ControllerState.COMPLETING
        broken_app.scheduler.advance(1200)
    assert c.state is ControllerState.IDLE
    assert rec.payloads(TourEvent.TOUR_COMPLETED) == [{"tour_id": "templates"}]
    assert len(rec.payloads(TourEvent.PERSISTENCE_FAILED)) == 1
    assert broken_app.onboarding.completed_count() == 0


def test_completing_releases_key_listener(ctx):
    bus = ctx.event_bus
    c = ctx.controller
    _to_last_step(c, TourId.ACCOUNTS)
    assert bus.subscriber_count(ViewportEvent.KEYDOWN) == 1
    c.next(defer=True)
    assert bus.subscriber_count(ViewportEvent.KEYDOWN) == 0
    assert bus.subscriber_count(ViewportEvent.RESIZE) == 1
    bus.publish(ViewportEvent.KEYDOWN, {"key": "Escape"})
    assert c.state is ControllerState.COMPLETING
    ctx.scheduler.advance(1200)
    assert bus.subscriber_count(ViewportEvent.RESIZE) == 0
