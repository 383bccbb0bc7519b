"""Timer scheduling for the tour engine.

The engine never sleeps. Every delay (target retry, content reveal,
completion celebration, help-menu launch, persistence dispatch) goes through a
``Scheduler`` so the same controller code runs on a Qt event loop in the
desktop host and on a deterministic virtual clock in tests.

Implementations
---------------
``ManualScheduler``
    Virtual clock advanced explicitly via ``advance(ms)`` / ``run_all()``.
    Callbacks due at the same instant fire in scheduling order.
``QtScheduler``
    Single-shot ``QTimer`` per call. PyQt6 is imported lazily so headless
    users never pay for it.
"""

from __future__ import annotations

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Protocol

__all__ = ["TimerHandle", "Scheduler", "ManualScheduler", "QtScheduler"]

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    @property
    def active(self) -> bool: ...  # pragma: no cover - structural

    def cancel(self) -> None: ...  # pragma: no cover - structural


class Scheduler(Protocol):
    def call_later(self, delay_ms: int, callback: Callable[[], Any]) -> TimerHandle: ...  # pragma: no cover


@dataclass(order=True)
class _ManualTimer:
    due: float
    seq: int
    callback: Callable[[], Any] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)
    fired: bool = field(default=False, compare=False)

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic virtual-time scheduler."""

    def __init__(self) -> None:
        self._now: float = 0.0
        self._queue: List[_ManualTimer] = []
        self._seq = itertools.count()

    @property
    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: int, callback: Callable[[], Any]) -> _ManualTimer:
        timer = _ManualTimer(self._now + max(0, delay_ms), next(self._seq), callback)
        heapq.heappush(self._queue, timer)
        return timer

    def pending_count(self) -> int:
        return sum(1 for t in self._queue if t.active)

    def advance(self, ms: float) -> int:
        """Move the clock forward, firing every timer that becomes due.

        Returns the number of callbacks run. Timers scheduled by callbacks
        fire in the same call when they fall inside the window.
        """
        target = self._now + ms
        ran = 0
        while self._queue and self._queue[0].due <= target:
            timer = heapq.heappop(self._queue)
            if not timer.active:
                continue
            self._now = timer.due
            timer.fired = True
            timer.callback()
            ran += 1
        self._now = target
        return ran

    def run_all(self, limit: int = 1000) -> int:
        """Drain the queue (bounded to guard against self-rescheduling loops)."""
        ran = 0
        while ran < limit:
            live = [t for t in self._queue if t.active]
            if not live:
                break
            ran += self.advance(min(t.due for t in live) - self._now)
        return ran


class _QtTimerHandle:
    def __init__(self, timer: Any, on_done: Optional[Callable[[Any], None]] = None) -> None:
        self._timer = timer
        self._on_done = on_done
        self._fired = False
        self._cancelled = False

    @property
    def active(self) -> bool:
        return not (self._fired or self._cancelled)

    def cancel(self) -> None:
        if self.active:
            self._cancelled = True
            self._timer.stop()
            self._timer.deleteLater()
            if self._on_done is not None:
                self._on_done(self)


class QtScheduler:
    """Scheduler backed by single-shot QTimers parented to ``parent``."""

    def __init__(self, parent: Optional[Any] = None) -> None:
        from PyQt6.QtCore import QTimer  # local import keeps headless use Qt-free

        self._timer_cls = QTimer
        self._parent = parent
        # Parentless timers are kept referenced until they fire or are cancelled.
        self._live: set = set()

    def pending_count(self) -> int:
        return sum(1 for h in self._live if h.active)

    def call_later(self, delay_ms: int, callback: Callable[[], Any]) -> _QtTimerHandle:
        timer = self._timer_cls(self._parent)
        timer.setSingleShot(True)
        handle = _QtTimerHandle(timer, on_done=self._live.discard)
        self._live.add(handle)

        def _fire() -> None:
            if not handle.active:
                return
            handle._fired = True
            self._live.discard(handle)
            timer.deleteLater()
            try:
                callback()
            except Exception:  # noqa: BLE001 - a timer callback must not kill the Qt loop
                logger.exception("Scheduled callback failed")

        timer.timeout.connect(_fire)  # type: ignore[attr-defined]
        timer.start(max(0, int(delay_ms)))
        return handle
