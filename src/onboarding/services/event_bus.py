"""EventBus core for the tour engine.

Synchronous publish/subscribe used to decouple the controller, the target
resolver, the overlay and the host window's viewport feed.

Goals:
 - No Qt dependency (the Qt feed publishes into the bus, it does not own it)
 - Error isolation: one failing handler never breaks a publish cycle
 - One-shot subscriptions and cancellable ``Subscription`` handles
 - Optional ring-buffer tracing of recent events for diagnostics

The engine runs on a single cooperative UI loop, so the bus does no locking.
Handlers may subscribe or unsubscribe while a publish is in flight; the
subscriber list is snapshotted before dispatch.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
from time import perf_counter
from typing import Any, Deque, Dict, List, Protocol, Tuple

__all__ = [
    "TourEvent",
    "ViewportEvent",
    "Event",
    "EventBus",
    "EventHandler",
    "Subscription",
    "TraceEntry",
]


class TourEvent(str, Enum):
    ONBOARDING_LOADED = "onboarding_loaded"
    ONBOARDING_CHANGED = "onboarding_changed"
    TOUR_STARTED = "tour_started"
    STEP_CHANGED = "step_changed"
    STEP_RENDERED = "step_rendered"
    STEP_CONTENT_REVEALED = "step_content_revealed"
    TARGET_MISSING = "target_missing"
    TOUR_COMPLETING = "tour_completing"
    TOUR_COMPLETED = "tour_completed"
    TOUR_SKIPPED = "tour_skipped"
    TOUR_ENDED = "tour_ended"
    TOUR_RESET = "tour_reset"
    MILESTONE_REACHED = "milestone_reached"
    NAVIGATION_REQUESTED = "navigation_requested"
    PERSISTENCE_FAILED = "persistence_failed"
    ENHANCEMENT_FAILED = "enhancement_failed"
    LOG_RECORD_ADDED = "log_record_added"


class ViewportEvent(str, Enum):
    RESIZE = "viewport.resize"
    SCROLL = "viewport.scroll"
    KEYDOWN = "viewport.keydown"


@dataclass
class Event:
    name: str
    payload: Any
    timestamp: float


class EventHandler(Protocol):  # noqa: D401 - protocol signature docs implicit
    def __call__(self, event: Event) -> None: ...  # pragma: no cover - structural


@dataclass
class Subscription:
    event: str
    handler: EventHandler
    once: bool
    active: bool = True

    def cancel(self) -> None:
        self.active = False


@dataclass(frozen=True)
class TraceEntry:
    name: str
    timestamp: float
    summary: str


def _key(name: str | Enum) -> str:
    return name.value if isinstance(name, Enum) else name


class EventBus:
    """Synchronous event dispatcher with optional tracing."""

    DEFAULT_TRACE_CAPACITY = 50

    def __init__(self) -> None:
        self._subs: Dict[str, List[Subscription]] = {}
        self._errors: List[tuple[Event, BaseException]] = []
        self._tracing_enabled = False
        self._traces: Deque[Tuple[str, float, str]] = deque(maxlen=self.DEFAULT_TRACE_CAPACITY)

    # ------------------------------------------------------------------
    # Subscription management
    # ------------------------------------------------------------------
    def subscribe(
        self, name: str | Enum, handler: EventHandler, *, once: bool = False
    ) -> Subscription:
        key = _key(name)
        sub = Subscription(event=key, handler=handler, once=once)
        self._subs.setdefault(key, []).append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        bucket = self._subs.get(sub.event)
        sub.active = False
        if not bucket:
            return
        self._subs[sub.event] = [s for s in bucket if s is not sub]
        if not self._subs[sub.event]:
            self._subs.pop(sub.event, None)

    def clear(self) -> None:
        self._subs.clear()
        self._errors.clear()

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------
    def publish(self, name: str | Enum, payload: Any = None) -> Event:
        key = _key(name)
        evt = Event(name=key, payload=payload, timestamp=perf_counter())
        subs = list(self._subs.get(key, ()))
        if self._tracing_enabled:
            text = "-" if payload is None else str(payload)
            self._traces.append((key, evt.timestamp, text if len(text) <= 40 else text[:37] + "..."))
        for sub in subs:
            if not sub.active:
                continue
            if sub.once:
                self.unsubscribe(sub)
            try:
                sub.handler(evt)
            except Exception as exc:  # noqa: BLE001 - capture any handler failure
                self._errors.append((evt, exc))
        return evt

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def subscriber_count(self, name: str | Enum) -> int:
        return sum(1 for s in self._subs.get(_key(name), ()) if s.active)

    def list_events(self) -> list[str]:
        return list(self._subs.keys())

    @property
    def errors(self) -> list[tuple[Event, BaseException]]:
        return list(self._errors)

    # ------------------------------------------------------------------
    # Tracing
    # ------------------------------------------------------------------
    def enable_tracing(self, enabled: bool = True, *, capacity: int | None = None) -> None:
        self._tracing_enabled = enabled
        if capacity is not None and capacity != self._traces.maxlen:
            self._traces = deque(self._traces, maxlen=capacity)

    def recent_trace_entries(self) -> list[TraceEntry]:
        return [TraceEntry(name=n, timestamp=ts, summary=s) for (n, ts, s) in self._traces]

    @property
    def tracing_enabled(self) -> bool:
        return self._tracing_enabled
