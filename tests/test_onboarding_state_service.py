from concurrent.futures import Future

import pytest

from onboarding.db.state_store import InMemoryStateStore, StateStoreError
from onboarding.models import Milestone, TourId
from onboarding.services.error_reporting_service import ErrorReportingService, FailureKind
from onboarding.services.event_bus import EventBus, TourEvent
from onboarding.services.onboarding_state_service import OnboardingStateService, WriteDispatcher
from onboarding.services.scheduler import ManualScheduler


class FlakyStore(InMemoryStateStore):
    def __init__(self):
        super().__init__()
        self.fail_writes = False
        self.fail_reads = False

    def get(self, user_id):
        if self.fail_reads:
            raise StateStoreError("db offline")
        return super().get(user_id)

    def set_fields(self, user_id, fields):
        if self.fail_writes:
            raise StateStoreError("disk full")
        super().set_fields(user_id, fields)


def _service(store=None):
    bus = EventBus()
    sched = ManualScheduler()
    reporter = ErrorReportingService(event_bus=bus)
    store = store or InMemoryStateStore()
    svc = OnboardingStateService(WriteDispatcher(store, sched, reporter), event_bus=bus)
    return svc, store, sched, bus, reporter


def test_login_creates_default_record_and_shows_welcome():
    svc, store, _, bus, _ = _service()
    loaded = []
    bus.subscribe(TourEvent.ONBOARDING_LOADED, lambda e: loaded.append(e.payload))
    state = svc.login("u1")
    assert not any(state.to_fields().values())
    assert svc.show_welcome
    assert not svc.loading
    assert [c[0] for c in store.calls] == ["get", "upsert_default"]
    assert loaded == [{"user_id": "u1"}]


def test_login_existing_user_with_welcome_done():
    store = InMemoryStateStore()
    store.set_fields("u1", {"welcome_completed": True, "leads_tour_completed": True})
    svc, *_ = _service(store)
    svc.login("u1")
    assert not svc.show_welcome
    assert svc.is_completed(TourId.LEADS)
    assert ("upsert_default", "u1", None) not in store.calls


def test_login_read_failure_keeps_defaults():
    store = FlakyStore()
    store.fail_reads = True
    svc, *_ = _service(store)
    state = svc.login("u1")
    assert state == state.default()
    assert svc.user_id == "u1"
    assert not svc.show_welcome


def test_write_applies_only_after_success():
    svc, store, sched, bus, _ = _service()
    svc.login("u1")
    changed = []
    bus.subscribe(TourEvent.ONBOARDING_CHANGED, lambda e: changed.append(e.payload))
    fut = svc.mark_tour_completed(TourId.DASHBOARD)
    assert isinstance(fut, Future)
    assert not svc.is_completed(TourId.DASHBOARD)
    sched.advance(0)
    assert fut.result(timeout=0) == {"dashboard_tour_completed": True}
    assert svc.is_completed(TourId.DASHBOARD)
    assert store.get("u1").dashboard_tour_completed
    assert changed == [{"user_id": "u1", "fields": {"dashboard_tour_completed": True}}]


def test_write_failure_reported_without_local_change():
    store = FlakyStore()
    svc, _, sched, bus, reporter = _service(store)
    svc.login("u1")
    failed = []
    bus.subscribe(TourEvent.PERSISTENCE_FAILED, lambda e: failed.append(e.payload))
    store.fail_writes = True
    fut = svc.mark_tour_completed("campaign")
    sched.advance(0)
    assert isinstance(fut.exception(timeout=0), StateStoreError)
    assert not svc.is_completed(TourId.CAMPAIGN)
    assert failed and failed[0]["type"] == "StateStoreError"
    assert failed[0]["user_id"] == "u1"
    assert reporter.recent(FailureKind.PERSISTENCE)[0].operation == "set_fields"


def test_marking_twice_is_idempotent():
    svc, store, sched, *_ = _service()
    svc.login("u1")
    svc.mark_tour_completed(TourId.LEADS)
    svc.mark_tour_completed(TourId.LEADS)
    sched.run_all()
    writes = [c for c in store.calls if c[0] == "set_fields"]
    assert writes == [("set_fields", "u1", {"leads_tour_completed": True})] * 2
    assert svc.state.leads_tour_completed


def test_reset_touches_only_its_flag():
    svc, store, sched, *_ = _service()
    svc.login("u1")
    svc.mark_tour_completed(TourId.LEADS)
    svc.mark_tour_completed(TourId.TEMPLATES)
    sched.run_all()
    svc.reset_tour(TourId.LEADS)
    sched.run_all()
    assert not svc.is_completed(TourId.LEADS)
    assert svc.is_completed(TourId.TEMPLATES)


def test_milestones():
    svc, _, sched, *_ = _service()
    svc.login("u1")
    svc.mark_milestone(Milestone.FIRST_CAMPAIGN_CREATED)
    svc.mark_milestone("first_email_sent")
    sched.run_all()
    assert svc.state.first_campaign_created and svc.state.first_email_sent
    with pytest.raises(ValueError):
        svc.mark_milestone("first_million")


def test_completed_count_excludes_welcome():
    svc, _, sched, *_ = _service()
    svc.login("u1")
    svc.dismiss_welcome()
    for tour in (TourId.DASHBOARD, TourId.CAMPAIGN):
        svc.mark_tour_completed(tour)
    sched.run_all()
    assert svc.state.welcome_completed
    assert not svc.show_welcome
    assert svc.completed_count() == 2
    assert svc.total_tours() == 6


def test_dismiss_welcome_without_completion_does_not_write():
    svc, store, sched, *_ = _service()
    svc.login("u1")
    assert svc.dismiss_welcome(completed=False) is None
    sched.run_all()
    assert not svc.show_welcome
    assert not any(c[0] == "set_fields" for c in store.calls)


def test_write_without_user_is_ignored():
    svc, store, sched, *_ = _service()
    assert svc.mark_tour_completed(TourId.DASHBOARD) is None
    sched.run_all()
    assert store.row_count() == 0


def test_logout_resets_and_in_flight_write_does_not_leak():
    svc, store, sched, *_ = _service()
    svc.login("u1")
    svc.mark_tour_completed(TourId.ACCOUNTS)
    svc.logout()
    sched.run_all()
    assert svc.user_id is None
    assert not svc.is_completed(TourId.ACCOUNTS)
    assert store.get("u1").accounts_tour_completed  # remote still written


def test_state_property_is_a_copy():
    svc, *_ = _service()
    svc.login("u1")
    snapshot = svc.state
    snapshot.dashboard_tour_completed = True
    assert not svc.is_completed(TourId.DASHBOARD)
