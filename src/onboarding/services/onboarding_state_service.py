"""Per-user onboarding state service.

Holds the signed-in user's ``OnboardingState`` and is the only writer to the
``StateStore``. Constructed once per application context and bound to a user
with ``login``; ``logout`` resets it to defaults. Consumers get it injected,
there is no global instance.

Writes are fire-and-forget: ``WriteDispatcher`` runs the store call on the
scheduler's next tick and hands back a ``concurrent.futures.Future``. The
in-memory flag flips only once the write succeeds. A failed write is
reported (log, ``PERSISTENCE_FAILED`` event, ``ErrorReportingService``) and
leaves local state where it was; the session transition that triggered the
write is not rolled back, so local and remote can diverge until the next
successful write.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Callable, Dict, Mapping, Optional

from onboarding.db.state_store import StateStore, StateStoreError, validate_fields
from onboarding.models import Milestone, OnboardingState, TourId, completion_field
from onboarding.tours.catalog import CATALOG, TourDefinition

from .error_reporting_service import ErrorReportingService, FailureKind
from .event_bus import EventBus, TourEvent
from .scheduler import Scheduler

__all__ = ["WriteDispatcher", "OnboardingStateService"]

logger = logging.getLogger(__name__)


class WriteDispatcher:
    """Runs ``set_fields`` calls off the caller's stack via the scheduler."""

    def __init__(
        self,
        store: StateStore,
        scheduler: Scheduler,
        reporter: Optional[ErrorReportingService] = None,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._reporter = reporter

    @property
    def store(self) -> StateStore:
        return self._store

    def submit(
        self,
        user_id: str,
        fields: Dict[str, bool],
        on_success: Optional[Callable[[], None]] = None,
    ) -> "Future[Dict[str, bool]]":
        values = validate_fields(fields)
        future: "Future[Dict[str, bool]]" = Future()
        future.set_running_or_notify_cancel()

        def _run() -> None:
            try:
                self._store.set_fields(user_id, values)
            except Exception as exc:  # noqa: BLE001 - any adapter failure is a failed write
                if self._reporter is not None:
                    self._reporter.report(
                        FailureKind.PERSISTENCE,
                        "set_fields",
                        exc,
                        context={"user_id": user_id, "fields": values},
                    )
                else:
                    logger.error("Onboarding write for %s failed: %s", user_id, exc)
                future.set_exception(exc)
                return
            if on_success is not None:
                on_success()
            future.set_result(values)

        self._scheduler.call_later(0, _run)
        return future


class OnboardingStateService:
    def __init__(
        self,
        dispatcher: WriteDispatcher,
        *,
        event_bus: EventBus | None = None,
        catalog: Mapping[TourId, TourDefinition] = CATALOG,
    ) -> None:
        self._dispatcher = dispatcher
        self._catalog = catalog
        self._store = dispatcher.store
        self._bus = event_bus
        self._user_id: Optional[str] = None
        self._state = OnboardingState.default()
        self._loading = False
        self._show_welcome = False

    # ------------------------------------------------------------------
    # Session binding
    # ------------------------------------------------------------------
    def login(self, user_id: str) -> OnboardingState:
        """Bind to ``user_id`` and load (or create) their record.

        Load failures are logged and leave the all-false defaults in place.
        """
        self._user_id = user_id
        self._state = OnboardingState.default()
        self._show_welcome = False
        self._loading = True
        try:
            stored = self._store.get(user_id)
            if stored is None:
                stored = self._store.upsert_default(user_id)
                logger.info("Created onboarding record for %s", user_id)
            self._state = stored
            self._show_welcome = not stored.welcome_completed
        except StateStoreError as exc:
            logger.error("Error loading onboarding state for %s: %s", user_id, exc)
        finally:
            self._loading = False
        self._publish(TourEvent.ONBOARDING_LOADED, {"user_id": user_id})
        return self.state

    def logout(self) -> None:
        self._user_id = None
        self._state = OnboardingState.default()
        self._show_welcome = False
        self._publish(TourEvent.ONBOARDING_CHANGED, {"user_id": None})

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def state(self) -> OnboardingState:
        return OnboardingState.from_fields(self._state.to_fields())

    @property
    def catalog(self) -> Mapping[TourId, TourDefinition]:
        """Stepped tours this user is counted against."""
        return self._catalog

    @property
    def show_welcome(self) -> bool:
        return self._show_welcome

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def is_completed(self, tour_id: TourId | str) -> bool:
        return self._state.is_completed(tour_id)

    def completed_count(self) -> int:
        """Completed stepped tours; the welcome greeting is not counted."""
        return sum(1 for tour_id in self._catalog if self._state.is_completed(tour_id))

    def total_tours(self) -> int:
        return len(self._catalog)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def mark_tour_completed(self, tour_id: TourId | str) -> "Optional[Future[Dict[str, bool]]]":
        return self._write({completion_field(tour_id): True}, reason="tour_completed")

    def reset_tour(self, tour_id: TourId | str) -> "Optional[Future[Dict[str, bool]]]":
        return self._write({completion_field(tour_id): False}, reason="tour_reset")

    def mark_milestone(self, milestone: Milestone | str) -> "Optional[Future[Dict[str, bool]]]":
        try:
            name = Milestone(milestone).value
        except ValueError:
            raise ValueError(f"Unknown milestone '{milestone}'") from None
        return self._write({name: True}, reason="milestone")

    def set_show_welcome(self, show: bool) -> None:
        self._show_welcome = show

    def dismiss_welcome(self, *, completed: bool = True) -> "Optional[Future[Dict[str, bool]]]":
        self._show_welcome = False
        if not completed:
            return None
        return self.mark_tour_completed(TourId.WELCOME)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------
    def _write(self, fields: Dict[str, bool], *, reason: str) -> "Optional[Future[Dict[str, bool]]]":
        user_id = self._user_id
        if user_id is None:
            logger.warning("Ignoring onboarding write (%s) without a signed-in user", reason)
            return None

        def _apply() -> None:
            if self._user_id != user_id:
                return  # user switched while the write was in flight
            self._state = self._state.with_fields(fields)
            self._publish(TourEvent.ONBOARDING_CHANGED, {"user_id": user_id, "fields": dict(fields)})

        return self._dispatcher.submit(user_id, fields, on_success=_apply)

    def _publish(self, event: TourEvent, payload: dict) -> None:
        if self._bus is not None:
            self._bus.publish(event, payload)
