"""Tour controller: the session state machine.

States
------
``IDLE``
    No tour running. ``next``/``prev``/``skip``/``end`` are no-ops.
``ACTIVE(tour, step)``
    A step is on screen (or being resolved).
``COMPLETING(tour)``
    The last step was confirmed with ``next(defer=True)``; completion is
    already persisted and the return to ``IDLE`` fires once after the
    celebration delay. ``next``/``prev`` are no-ops here.

Transitions
-----------
``start(t)``   IDLE|ACTIVE|COMPLETING -> ACTIVE(t, 0); any previous session is
               discarded without persisting anything.
``next()``     ACTIVE(t, i) -> ACTIVE(t, i+1), or at the last step persists
               ``completed[t] = True`` and returns to IDLE (now or deferred).
``prev()``     ACTIVE(t, i) -> ACTIVE(t, max(0, i-1)).
``skip()``     ACTIVE(t, i) -> IDLE and persists ``completed[t] = True``.
               Skipping and finishing are recorded identically on purpose:
               an unfinished tour is stored the same way as a finished one.
``end()``      any -> IDLE without persisting.

Step activation
---------------
Each activation owns a ``StepScope``: the resolver tracking (resize/scroll
listeners, retry timer), the keydown listener and the reveal timer. The scope
is closed exactly once when the step changes or the session ends. Callbacks
from a closed scope are dropped via a step token.

Placement runs only at step activation and on geometry-change callbacks.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from onboarding.app.config_store import TourConfig
from onboarding.models import Milestone, TourId
from onboarding.tours.catalog import StepSpec, TourDefinition

from .enhancement_supervisor import EnhancementSupervisor, StepContent
from .event_bus import Event, EventBus, Subscription, TourEvent, ViewportEvent
from .onboarding_state_service import OnboardingStateService
from .placement import PlacementResult, Rect, Size, estimate_tooltip_size, place
from .scheduler import Scheduler, TimerHandle
from .target_resolver import StepTracking, TargetResolver

__all__ = [
    "ControllerState",
    "StepStatus",
    "TourSession",
    "StepView",
    "StepScope",
    "TourController",
    "KEY_BINDINGS",
]

logger = logging.getLogger(__name__)

WriteHandle = Optional["Future[Dict[str, bool]]"]


class ControllerState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMPLETING = "completing"


class StepStatus(str, Enum):
    RESOLVING = "resolving"
    VISIBLE = "visible"
    TARGET_MISSING = "target_missing"


@dataclass(frozen=True)
class TourSession:
    tour_id: TourId
    step_index: int


@dataclass(frozen=True)
class StepView:
    """Renderable snapshot of the active step."""

    tour_id: TourId
    step_index: int
    total_steps: int
    step: StepSpec
    content: StepContent
    tooltip_size: Size
    status: StepStatus = StepStatus.RESOLVING
    target_rect: Optional[Rect] = None
    viewport: Optional[Size] = None
    placement: Optional[PlacementResult] = None
    revealed: bool = False

    @property
    def is_first(self) -> bool:
        return self.step_index == 0

    @property
    def is_last(self) -> bool:
        return self.step_index == self.total_steps - 1

    @property
    def progress_label(self) -> str:
        return f"{self.step_index + 1} of {self.total_steps}"


class StepScope:
    """Listeners and timers owned by one step activation."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self.tracking: Optional[StepTracking] = None
        self._subs: List[Subscription] = []
        self._timers: List[TimerHandle] = []
        self.closed = False

    def listen(self, name: ViewportEvent, handler: Callable[[Event], None]) -> None:
        if any(s.event == name.value for s in self._subs):
            return
        self._subs.append(self._bus.subscribe(name, handler))

    def stop_listening(self, name: ViewportEvent) -> None:
        keep: List[Subscription] = []
        for sub in self._subs:
            if sub.event == name.value:
                self._bus.unsubscribe(sub)
            else:
                keep.append(sub)
        self._subs = keep

    def add_timer(self, handle: TimerHandle) -> None:
        self._timers.append(handle)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.tracking is not None:
            self.tracking.close()
        for sub in self._subs:
            self._bus.unsubscribe(sub)
        for timer in self._timers:
            timer.cancel()
        self._subs.clear()
        self._timers.clear()


KEY_BINDINGS: Mapping[str, str] = {
    "ArrowRight": "next",
    "Enter": "next",
    "ArrowLeft": "prev",
    "Escape": "skip",
}


class TourController:
    def __init__(
        self,
        onboarding: OnboardingStateService,
        resolver: TargetResolver,
        scheduler: Scheduler,
        event_bus: EventBus,
        *,
        config: Optional[TourConfig] = None,
        supervisor: Optional[EnhancementSupervisor] = None,
    ) -> None:
        self._onboarding = onboarding
        self._resolver = resolver
        self._scheduler = scheduler
        self._bus = event_bus
        self._config = config or TourConfig()
        self._supervisor = supervisor or EnhancementSupervisor()
        # Same mapping the completion counts are taken from.
        self._catalog: Mapping[TourId, TourDefinition] = onboarding.catalog
        self._state = ControllerState.IDLE
        self._session: Optional[TourSession] = None
        self._view: Optional[StepView] = None
        self._scope: Optional[StepScope] = None
        self._pending_finish: Optional[TimerHandle] = None
        self._step_token = 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def session(self) -> Optional[TourSession]:
        return self._session

    @property
    def step_view(self) -> Optional[StepView]:
        return self._view

    @property
    def placement(self) -> Optional[PlacementResult]:
        return self._view.placement if self._view else None

    @property
    def current_step(self) -> Optional[StepSpec]:
        if self._session is None:
            return None
        return self._catalog[self._session.tour_id].step(self._session.step_index)

    def is_active(self, tour_id: TourId | str | None = None) -> bool:
        if self._state is ControllerState.IDLE or self._session is None:
            return False
        return tour_id is None or self._session.tour_id == TourId(tour_id)

    def completed_count(self) -> int:
        return self._onboarding.completed_count()

    def total_tours(self) -> int:
        return self._onboarding.total_tours()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def start(self, tour_id: TourId | str) -> bool:
        try:
            tid = TourId(tour_id)
        except ValueError:
            logger.warning("Unknown tour '%s'", tour_id)
            return False
        if tid not in self._catalog:
            logger.info("Tour '%s' has no steps to show", tid.value)
            return False
        if self._session is not None:
            logger.debug("Discarding %s session for new tour %s", self._session.tour_id.value, tid.value)
        self._teardown()
        self._session = TourSession(tid, 0)
        self._state = ControllerState.ACTIVE
        self._bus.publish(TourEvent.TOUR_STARTED, {"tour_id": tid.value})
        self._activate_step()
        return True

    def next(self, *, defer: bool = False) -> WriteHandle:
        if self._state is not ControllerState.ACTIVE or self._session is None:
            logger.debug("next() ignored in state %s", self._state.value)
            return None
        session = self._session
        tour = self._catalog[session.tour_id]
        if session.step_index + 1 < len(tour):
            self._move_to(session.step_index + 1)
            return None
        write = self._onboarding.mark_tour_completed(session.tour_id)
        if not defer:
            self._go_idle(TourEvent.TOUR_COMPLETED, {"tour_id": session.tour_id.value})
            return write
        self._state = ControllerState.COMPLETING
        # Geometry tracking stays live for the celebration; keys do nothing now.
        if self._scope is not None:
            self._scope.stop_listening(ViewportEvent.KEYDOWN)
        self._bus.publish(TourEvent.TOUR_COMPLETING, {"tour_id": session.tour_id.value})
        token = self._step_token
        self._pending_finish = self._scheduler.call_later(
            self._config.celebration_delay_ms, lambda: self._finish_deferred(token)
        )
        return write

    def prev(self) -> None:
        if self._state is not ControllerState.ACTIVE or self._session is None:
            logger.debug("prev() ignored in state %s", self._state.value)
            return
        if self._session.step_index == 0:
            return
        self._move_to(self._session.step_index - 1)

    def skip(self) -> WriteHandle:
        if self._session is None:
            logger.debug("skip() ignored while idle")
            return None
        tid = self._session.tour_id
        if self._state is ControllerState.COMPLETING:
            # Completion already persisted; just cut the celebration short.
            self._go_idle(TourEvent.TOUR_COMPLETED, {"tour_id": tid.value})
            return None
        step_index = self._session.step_index
        write = self._onboarding.mark_tour_completed(tid)
        self._go_idle(TourEvent.TOUR_SKIPPED, {"tour_id": tid.value, "step_index": step_index})
        return write

    def end(self) -> None:
        if self._session is None:
            return
        self._go_idle(TourEvent.TOUR_ENDED, {"tour_id": self._session.tour_id.value})

    def reset_tour(self, tour_id: TourId | str) -> WriteHandle:
        tid = TourId(tour_id)
        write = self._onboarding.reset_tour(tid)
        if write is not None:
            self._bus.publish(TourEvent.TOUR_RESET, {"tour_id": tid.value})
        return write

    def mark_milestone(self, milestone: Milestone | str) -> WriteHandle:
        write = self._onboarding.mark_milestone(milestone)
        if write is not None:
            self._bus.publish(TourEvent.MILESTONE_REACHED, {"milestone": Milestone(milestone).value})
        return write

    def retry_target(self) -> bool:
        """Re-run resolution for a step whose target was reported missing."""
        if (
            self._state is not ControllerState.ACTIVE
            or self._view is None
            or self._view.status is not StepStatus.TARGET_MISSING
        ):
            return False
        self._activate_step()
        return True

    def handle_key(self, key: str) -> bool:
        if not self._config.keyboard_navigation or self._state is not ControllerState.ACTIVE:
            return False
        action = KEY_BINDINGS.get(key)
        if action is None:
            return False
        getattr(self, action)()
        return True

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------
    def _move_to(self, index: int) -> None:
        assert self._session is not None
        self._session = replace(self._session, step_index=index)
        self._bus.publish(
            TourEvent.STEP_CHANGED,
            {"tour_id": self._session.tour_id.value, "step_index": index},
        )
        self._activate_step()

    def _activate_step(self) -> None:
        assert self._session is not None
        self._close_scope()
        self._step_token += 1
        token = self._step_token
        tour = self._catalog[self._session.tour_id]
        step = tour.step(self._session.step_index)
        self._view = StepView(
            tour_id=self._session.tour_id,
            step_index=self._session.step_index,
            total_steps=len(tour),
            step=step,
            content=self._supervisor.build_step_content(step),
            tooltip_size=estimate_tooltip_size(step, self._config),
        )
        scope = StepScope(self._bus)
        self._scope = scope
        if self._config.keyboard_navigation:
            scope.listen(ViewportEvent.KEYDOWN, self._on_keydown)
        scope.tracking = self._resolver.track(
            step.target_selector,
            on_geometry=lambda rect, viewport: self._on_geometry(token, rect, viewport),
            on_missing=lambda: self._on_missing(token),
        )

    def _on_geometry(self, token: int, rect: Rect, viewport: Size) -> None:
        if token != self._step_token or self._view is None or self._scope is None:
            return
        view = self._view
        placement = place(
            rect,
            view.tooltip_size,
            viewport,
            view.step.position,
            padding=self._config.padding,
            edge_margin=self._config.edge_margin,
        )
        first_render = view.status is not StepStatus.VISIBLE
        self._view = replace(
            view,
            status=StepStatus.VISIBLE,
            target_rect=rect,
            viewport=viewport,
            placement=placement,
        )
        self._bus.publish(
            TourEvent.STEP_RENDERED,
            {
                "tour_id": view.tour_id.value,
                "step_index": view.step_index,
                "placement": placement,
            },
        )
        if first_render and not view.revealed:
            self._scope.add_timer(
                self._scheduler.call_later(
                    self._config.content_reveal_delay_ms, lambda: self._reveal(token)
                )
            )

    def _reveal(self, token: int) -> None:
        if token != self._step_token or self._view is None or self._view.revealed:
            return
        self._view = replace(self._view, revealed=True)
        self._bus.publish(
            TourEvent.STEP_CONTENT_REVEALED,
            {"tour_id": self._view.tour_id.value, "step_index": self._view.step_index},
        )

    def _on_missing(self, token: int) -> None:
        if token != self._step_token or self._view is None:
            return
        view = self._view
        self._view = replace(view, status=StepStatus.TARGET_MISSING, placement=None, target_rect=None)
        self._bus.publish(
            TourEvent.TARGET_MISSING,
            {
                "tour_id": view.tour_id.value,
                "step_index": view.step_index,
                "selector": view.step.target_selector,
            },
        )
        if self._config.auto_skip_missing_targets and self._state is ControllerState.ACTIVE:
            logger.info("Auto-advancing past missing target %s", view.step.target_selector)
            self.next()

    def _on_keydown(self, event: Event) -> None:
        payload: Any = event.payload or {}
        key = payload.get("key") if isinstance(payload, dict) else None
        if key:
            self.handle_key(key)

    def _finish_deferred(self, token: int) -> None:
        self._pending_finish = None
        if token != self._step_token or self._state is not ControllerState.COMPLETING:
            return
        assert self._session is not None
        self._go_idle(TourEvent.TOUR_COMPLETED, {"tour_id": self._session.tour_id.value})

    def _go_idle(self, event: TourEvent, payload: dict) -> None:
        self._teardown()
        self._bus.publish(event, payload)

    def _close_scope(self) -> None:
        if self._scope is not None:
            self._scope.close()
            self._scope = None

    def _teardown(self) -> None:
        self._close_scope()
        if self._pending_finish is not None:
            self._pending_finish.cancel()
            self._pending_finish = None
        self._step_token += 1
        self._session = None
        self._view = None
        self._state = ControllerState.IDLE
