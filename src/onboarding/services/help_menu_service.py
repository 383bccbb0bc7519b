"""Help menu surface.

Lists every stepped tour with its completion flag and lets the user replay
any of them. Launching a tour resets its flag, navigates to the tour's entry
screen when it is not the current one, and starts the tour after
``launch_delay_ms`` so the target screen has rendered by the time the first
step resolves. Only one launch is pending at a time, and it is dropped when
any tour starts through another path (checklist item, welcome prompt)
before the delay runs out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

from onboarding.app.config_store import TourConfig
from onboarding.models import TourId
from onboarding.tours.catalog import TourDefinition

from .event_bus import Event, EventBus, Subscription, TourEvent
from .onboarding_state_service import OnboardingStateService
from .scheduler import Scheduler, TimerHandle
from .tour_controller import TourController

__all__ = [
    "NavigationService",
    "InMemoryNavigation",
    "HelpEntry",
    "HelpProgress",
    "HelpMenuService",
]

logger = logging.getLogger(__name__)


class NavigationService(Protocol):
    def current_route(self) -> str: ...  # pragma: no cover

    def navigate_to(self, route: str) -> None: ...  # pragma: no cover


@dataclass(frozen=True)
class HelpEntry:
    tour_id: TourId
    name: str
    description: str
    route: str
    completed: bool
    available: bool  # entry screen is current and the tour is not done yet


@dataclass(frozen=True)
class HelpProgress:
    completed: int
    total: int

    @property
    def percent(self) -> int:
        return round(self.completed / self.total * 100) if self.total else 0

    @property
    def show_badge(self) -> bool:
        return self.completed < self.total


class HelpMenuService:
    def __init__(
        self,
        onboarding: OnboardingStateService,
        controller: TourController,
        navigation: NavigationService,
        scheduler: Scheduler,
        *,
        event_bus: EventBus | None = None,
        config: Optional[TourConfig] = None,
    ) -> None:
        self._onboarding = onboarding
        self._controller = controller
        self._navigation = navigation
        self._scheduler = scheduler
        self._bus = event_bus
        self._config = config or TourConfig()
        self._pending: Optional[TimerHandle] = None
        self._sub: Optional[Subscription] = None
        if event_bus is not None:
            self._sub = event_bus.subscribe(TourEvent.TOUR_STARTED, self._on_tour_started)

    def entries(self) -> List[HelpEntry]:
        current = self._navigation.current_route()
        out: List[HelpEntry] = []
        for tour in self._onboarding.catalog.values():
            done = self._onboarding.is_completed(tour.tour_id)
            out.append(
                HelpEntry(
                    tour_id=tour.tour_id,
                    name=tour.name,
                    description=tour.description,
                    route=tour.route,
                    completed=done,
                    available=tour.route == current and not done,
                )
            )
        return out

    def progress(self) -> HelpProgress:
        return HelpProgress(
            completed=self._onboarding.completed_count(), total=self._onboarding.total_tours()
        )

    @property
    def launch_pending(self) -> bool:
        return self._pending is not None and self._pending.active

    def launch(self, tour_id: TourId | str) -> None:
        """Reset, navigate if needed, then start the tour after the launch delay."""
        tour = self._tour(tour_id)
        self.cancel_pending()
        self._controller.reset_tour(tour.tour_id)
        if self._navigation.current_route() != tour.route:
            logger.info("Navigating to %s before starting %s tour", tour.route, tour.tour_id.value)
            if self._bus is not None:
                self._bus.publish(
                    TourEvent.NAVIGATION_REQUESTED,
                    {"route": tour.route, "tour_id": tour.tour_id.value},
                )
            self._navigation.navigate_to(tour.route)
        self._pending = self._scheduler.call_later(
            self._config.launch_delay_ms, lambda: self._start(tour.tour_id)
        )

    def cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def dispose(self) -> None:
        self.cancel_pending()
        if self._sub is not None and self._bus is not None:
            self._bus.unsubscribe(self._sub)
            self._sub = None

    def _tour(self, tour_id: TourId | str) -> TourDefinition:
        return self._onboarding.catalog[TourId(tour_id)]

    def _start(self, tour_id: TourId) -> None:
        self._pending = None
        self._controller.start(tour_id)

    def _on_tour_started(self, event: Event) -> None:
        # Our own start clears _pending before the event fires.
        if self.launch_pending:
            logger.info(
                "Dropping pending help launch, tour %s started first",
                (event.payload or {}).get("tour_id"),
            )
            self.cancel_pending()


class InMemoryNavigation:
    """Route holder for headless hosts; records every navigation."""

    def __init__(self, route: str = "/dashboard") -> None:
        self._route = route
        self.history: List[str] = [route]

    def current_route(self) -> str:
        return self._route

    def navigate_to(self, route: str) -> None:
        self._route = route
        self.history.append(route)
