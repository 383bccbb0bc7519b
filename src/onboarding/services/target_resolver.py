"""Target resolution for tour steps.

Locates the live UI element a step points at and keeps its geometry fresh
while the step is active.

Lifecycle of one ``StepTracking``
---------------------------------
1. Resolve immediately through the ``ElementRegistry``.
2. Not found -> exactly one retry after ``retry_delay_ms`` (host screens may
   still be rendering). Still not found -> ``on_missing`` once, no further
   automatic retries.
3. Found -> ask the registry to scroll the element into centred view, report
   geometry, and subscribe to ``viewport.resize`` / ``viewport.scroll`` so
   every event re-reports geometry (or ``on_missing`` if the element vanished).
4. ``close()`` cancels a pending retry and detaches the listeners. It runs its
   teardown once; later calls and late callbacks are ignored.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Protocol

from onboarding.tours.catalog import tour_key

from .event_bus import Event, EventBus, Subscription, ViewportEvent
from .placement import Rect, Size
from .scheduler import Scheduler, TimerHandle

__all__ = [
    "ElementRegistry",
    "StaticElementRegistry",
    "StepTracking",
    "TargetResolver",
    "DEFAULT_RETRY_DELAY_MS",
]

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY_MS = 50

GeometryCallback = Callable[[Rect, Size], None]
MissingCallback = Callable[[], None]


class ElementRegistry(Protocol):
    def resolve(self, selector: str) -> Optional[Rect]: ...  # pragma: no cover

    def scroll_into_view(self, selector: str) -> None: ...  # pragma: no cover

    def viewport_size(self) -> Size: ...  # pragma: no cover


class StepTracking:
    def __init__(
        self,
        resolver: "TargetResolver",
        selector: str,
        on_geometry: GeometryCallback,
        on_missing: MissingCallback,
    ) -> None:
        self._resolver = resolver
        self.selector = selector
        self._on_geometry = on_geometry
        self._on_missing = on_missing
        self._retry: Optional[TimerHandle] = None
        self._subs: List[Subscription] = []
        self._closed = False
        self._found = False
        self.attempts = 0

    # Introspection -----------------------------------------------------
    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def found(self) -> bool:
        return self._found

    @property
    def listening(self) -> bool:
        return bool(self._subs)

    # Lifecycle ---------------------------------------------------------
    def start(self) -> "StepTracking":
        self._attempt(allow_retry=True)
        return self

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._retry is not None:
            self._retry.cancel()
            self._retry = None
        bus = self._resolver.event_bus
        for sub in self._subs:
            bus.unsubscribe(sub)
        self._subs.clear()

    # Internal ----------------------------------------------------------
    def _attempt(self, *, allow_retry: bool) -> None:
        if self._closed:
            return
        self.attempts += 1
        rect = self._resolver.registry.resolve(self.selector)
        if rect is not None:
            self._on_found()
            return
        if allow_retry:
            logger.debug("Target %s not rendered yet, retrying once", self.selector)
            self._retry = self._resolver.scheduler.call_later(
                self._resolver.retry_delay_ms, self._on_retry
            )
            return
        logger.info("Tour target %s not found after retry", self.selector)
        self._on_missing()

    def _on_retry(self) -> None:
        self._retry = None
        self._attempt(allow_retry=False)

    def _on_found(self) -> None:
        registry = self._resolver.registry
        registry.scroll_into_view(self.selector)
        self._found = True
        if not self._subs:
            bus = self._resolver.event_bus
            self._subs = [
                bus.subscribe(ViewportEvent.RESIZE, self._on_viewport_event),
                bus.subscribe(ViewportEvent.SCROLL, self._on_viewport_event),
            ]
        self._report()

    def _on_viewport_event(self, _event: Event) -> None:
        if not self._closed:
            self._report()

    def _report(self) -> None:
        registry = self._resolver.registry
        rect = registry.resolve(self.selector)
        if rect is None:
            self._on_missing()
            return
        self._on_geometry(rect, registry.viewport_size())


class TargetResolver:
    def __init__(
        self,
        registry: ElementRegistry,
        event_bus: EventBus,
        scheduler: Scheduler,
        *,
        retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS,
    ) -> None:
        self.registry = registry
        self.event_bus = event_bus
        self.scheduler = scheduler
        self.retry_delay_ms = retry_delay_ms

    def resolve(self, selector: str) -> Optional[Rect]:
        """One-off lookup with no retry and no subscriptions."""
        return self.registry.resolve(selector)

    def track(
        self, selector: str, on_geometry: GeometryCallback, on_missing: MissingCallback
    ) -> StepTracking:
        return StepTracking(self, selector, on_geometry, on_missing).start()


class StaticElementRegistry:
    """Registry over a plain ``selector -> Rect`` map.

    Used by headless hosts and tests; ``scroll_into_view`` only records the
    request.
    """

    def __init__(self, viewport: Size = Size(1280, 800), targets: Optional[dict] = None) -> None:
        self._viewport = viewport
        self._targets: dict[str, Rect] = {}
        self.scrolled: List[str] = []
        for selector, rect in (targets or {}).items():
            self.place(selector, rect)

    def place(self, selector: str, rect: Rect) -> None:
        self._targets[tour_key(selector)] = rect

    def remove(self, selector: str) -> None:
        self._targets.pop(tour_key(selector), None)

    def set_viewport(self, viewport: Size) -> None:
        self._viewport = viewport

    def resolve(self, selector: str) -> Optional[Rect]:
        return self._targets.get(tour_key(selector))

    def scroll_into_view(self, selector: str) -> None:
        self.scrolled.append(selector)

    def viewport_size(self) -> Size:
        return self._viewport
