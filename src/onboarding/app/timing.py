"""Startup timing instrumentation.

Collects named phase durations while ``create_app`` wires the tour engine so
slow phases (SQLite open, config load, Qt application creation) show up in
``AppContext.metadata`` and, optionally, a JSON export.

Phases cannot nest; ``stop()`` closes a dangling phase and freezes the log.
"""

from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Iterator, List, Optional

__all__ = ["TimingEvent", "TimingLogger"]


@dataclass
class TimingEvent:
    name: str
    start: float
    end: float

    @property
    def duration(self) -> float:  # seconds
        return self.end - self.start


class TimingLogger:
    """Usage::

        t = TimingLogger()
        with t.measure("open_store"):
            store = SqliteStateStore.open(path)
        t.stop()
    """

    def __init__(self) -> None:
        self._started_at = perf_counter()
        self._stopped_at: Optional[float] = None
        self._events: List[TimingEvent] = []
        self._phase: Optional[tuple[str, float]] = None

    @property
    def stopped(self) -> bool:
        return self._stopped_at is not None

    def stop(self) -> None:
        if self.stopped:
            return
        if self._phase is not None:
            self.end()
        self._stopped_at = perf_counter()

    def begin(self, name: str) -> None:
        if self.stopped:
            raise RuntimeError("TimingLogger already stopped")
        if self._phase is not None:
            raise RuntimeError(f"Cannot begin '{name}' while '{self._phase[0]}' is active")
        self._phase = (name, perf_counter())

    def end(self) -> None:
        if self._phase is None:
            raise RuntimeError("No active timing phase to end")
        name, start = self._phase
        self._events.append(TimingEvent(name, start, perf_counter()))
        self._phase = None

    class _PhaseCtx:
        def __init__(self, timing: "TimingLogger", name: str) -> None:
            self._timing = timing
            self._name = name

        def __enter__(self) -> "TimingLogger._PhaseCtx":
            self._timing.begin(self._name)
            return self

        def __exit__(self, exc_type, exc, tb) -> None:
            # Failed phases are still recorded.
            self._timing.end()

    def measure(self, name: str) -> "TimingLogger._PhaseCtx":
        return TimingLogger._PhaseCtx(self, name)

    @property
    def events(self) -> List[TimingEvent]:
        return list(self._events)

    @property
    def total_duration(self) -> float:
        end = self._stopped_at if self._stopped_at is not None else perf_counter()
        return end - self._started_at

    def phase_names(self) -> List[str]:
        return [e.name for e in self._events]

    def as_dict(self) -> dict:
        return {
            "total_duration": self.total_duration,
            "events": [{"name": e.name, "duration": e.duration} for e in self._events],
        }

    def __iter__(self) -> Iterator[TimingEvent]:
        return iter(self._events)
