from onboarding.services.event_bus import EventBus, ViewportEvent
from onboarding.services.placement import Rect, Size
from onboarding.services.scheduler import ManualScheduler
from onboarding.services.target_resolver import StaticElementRegistry, TargetResolver

SELECTOR = '[data-tour="lead-row"]'


def _setup():
    bus = EventBus()
    sched = ManualScheduler()
    registry = StaticElementRegistry(Size(1280, 800))
    resolver = TargetResolver(registry, bus, sched, retry_delay_ms=50)
    seen = {"geometry": [], "missing": 0}

    def on_geometry(rect, viewport):
        seen["geometry"].append((rect, viewport))

    def on_missing():
        seen["missing"] += 1

    return bus, sched, registry, resolver, seen, on_geometry, on_missing


def test_found_immediately_scrolls_and_subscribes():
    bus, sched, registry, resolver, seen, on_geo, on_missing = _setup()
    registry.place(SELECTOR, Rect(10, 20, 30, 40))
    tracking = resolver.track(SELECTOR, on_geo, on_missing)
    assert tracking.found and tracking.listening
    assert registry.scrolled == [SELECTOR]
    assert seen["geometry"] == [(Rect(10, 20, 30, 40), Size(1280, 800))]
    assert bus.subscriber_count(ViewportEvent.RESIZE) == 1
    assert bus.subscriber_count(ViewportEvent.SCROLL) == 1


def test_retries_once_then_reports_missing():
    bus, sched, registry, resolver, seen, on_geo, on_missing = _setup()
    tracking = resolver.track(SELECTOR, on_geo, on_missing)
    assert seen["missing"] == 0
    sched.advance(49)
    assert tracking.attempts == 1
    sched.advance(1)
    assert tracking.attempts == 2
    assert seen["missing"] == 1
    sched.run_all()
    assert tracking.attempts == 2  # no further automatic retries
    assert not tracking.listening


def test_retry_succeeds_when_target_renders_late():
    bus, sched, registry, resolver, seen, on_geo, on_missing = _setup()
    tracking = resolver.track(SELECTOR, on_geo, on_missing)
    registry.place(SELECTOR, Rect(1, 2, 3, 4))
    sched.advance(50)
    assert tracking.found
    assert seen["missing"] == 0
    assert len(seen["geometry"]) == 1


def test_viewport_events_re_report_geometry():
    bus, sched, registry, resolver, seen, on_geo, on_missing = _setup()
    registry.place(SELECTOR, Rect(10, 20, 30, 40))
    resolver.track(SELECTOR, on_geo, on_missing)
    registry.place(SELECTOR, Rect(10, 120, 30, 40))
    bus.publish(ViewportEvent.SCROLL, {"dx": 0, "dy": 100})
    registry.set_viewport(Size(800, 600))
    bus.publish(ViewportEvent.RESIZE, {"width": 800, "height": 600})
    assert [g[0].top for g in seen["geometry"]] == [20, 120, 120]
    assert seen["geometry"][-1][1] == Size(800, 600)


def test_vanished_target_reports_missing_on_event():
    bus, sched, registry, resolver, seen, on_geo, on_missing = _setup()
    registry.place(SELECTOR, Rect(10, 20, 30, 40))
    resolver.track(SELECTOR, on_geo, on_missing)
    registry.remove(SELECTOR)
    bus.publish(ViewportEvent.RESIZE)
    assert seen["missing"] == 1


def test_close_detaches_listeners_and_cancels_retry():
    bus, sched, registry, resolver, seen, on_geo, on_missing = _setup()
    pending = resolver.track(SELECTOR, on_geo, on_missing)
    pending.close()
    sched.run_all()
    assert seen["missing"] == 0

    registry.place(SELECTOR, Rect(10, 20, 30, 40))
    tracking = resolver.track(SELECTOR, on_geo, on_missing)
    tracking.close()
    tracking.close()
    assert tracking.closed and not tracking.listening
    assert bus.subscriber_count(ViewportEvent.RESIZE) == 0
    assert bus.subscriber_count(ViewportEvent.SCROLL) == 0
    bus.publish(ViewportEvent.SCROLL)
    assert len(seen["geometry"]) == 1


def test_resolve_is_one_shot():
    bus, sched, registry, resolver, *_ = _setup()
    assert resolver.resolve(SELECTOR) is None
    assert sched.pending_count() == 0
