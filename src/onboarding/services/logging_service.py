"""Logging service.

In-process logging handler that keeps recent records in a ring buffer and
announces each one as ``TourEvent.LOG_RECORD_ADDED`` on the context's
EventBus, so a diagnostics panel can follow tour activity live.

Design goals:
 - Headless testability (no Qt dependency here)
 - Filtering by level name or logger name substring
 - Capacity-bound ring buffer with O(1) append
 - JSON Lines export for bug reports
"""

from __future__ import annotations

import json
import logging
import os
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional

from .event_bus import EventBus, TourEvent

__all__ = ["LogEntry", "LoggingService"]


@dataclass(frozen=True)
class LogEntry:
    level: str
    name: str
    message: str
    created: float
    pathname: str
    lineno: int


class _RingBufferHandler(logging.Handler):
    def __init__(self, svc: "LoggingService") -> None:
        super().__init__()
        self._svc = svc

    def emit(self, record: logging.LogRecord) -> None:  # noqa: D401
        self._svc._ingest_record(record)


class LoggingService:
    def __init__(
        self,
        capacity: int = 500,
        *,
        event_bus: EventBus | None = None,
        level: int = logging.DEBUG,
        logger_name: str = "",
    ) -> None:
        self._entries: Deque[LogEntry] = deque(maxlen=capacity)
        self._handler = _RingBufferHandler(self)
        self._handler.setLevel(level)
        self._event_bus = event_bus
        self._logger_name = logger_name
        self._attached = False

    # Lifecycle --------------------------------------------------------
    def attach(self) -> None:
        """Attach to ``logger_name`` (root logger by default)."""
        if self._attached:
            return
        target = logging.getLogger(self._logger_name)
        target.addHandler(self._handler)
        if target.level == logging.NOTSET or target.level > self._handler.level:
            target.setLevel(self._handler.level)
        self._attached = True

    def detach(self) -> None:
        if not self._attached:
            return
        logging.getLogger(self._logger_name).removeHandler(self._handler)
        self._attached = False

    @property
    def attached(self) -> bool:
        return self._attached

    # Internal ingestion -----------------------------------------------
    def _ingest_record(self, record: logging.LogRecord) -> None:
        entry = LogEntry(
            level=record.levelname,
            name=record.name,
            message=record.getMessage(),
            created=record.created,
            pathname=record.pathname,
            lineno=record.lineno,
        )
        self._entries.append(entry)
        if self._event_bus is not None:
            self._event_bus.publish(
                TourEvent.LOG_RECORD_ADDED,
                {"level": entry.level, "name": entry.name, "message": entry.message[:120]},
            )

    # Query ------------------------------------------------------------
    def recent(self, limit: Optional[int] = None) -> List[LogEntry]:
        data = list(self._entries)
        return data[-limit:] if limit is not None else data

    def filter(
        self, *, level: str | None = None, name_contains: str | None = None
    ) -> List[LogEntry]:
        out: List[LogEntry] = []
        for e in self._entries:
            if level and e.level != level:
                continue
            if name_contains and name_contains not in e.name:
                continue
            out.append(e)
        return out

    def clear(self) -> None:
        self._entries.clear()

    # Export ------------------------------------------------------------
    def export_jsonl(
        self,
        path: str | None = None,
        *,
        level: str | None = None,
        name_contains: str | None = None,
        append: bool = False,
    ) -> int:
        """Export filtered entries as JSON Lines; returns the number of lines written."""
        entries = self.filter(level=level, name_contains=name_contains)
        file_path = path or os.path.join(os.getcwd(), "onboarding_logs.jsonl")
        with open(file_path, "a" if append else "w", encoding="utf-8") as f:
            for e in entries:
                f.write(
                    json.dumps(
                        {
                            "level": e.level,
                            "name": e.name,
                            "message": e.message,
                            "created": e.created,
                            "file": e.pathname,
                            "line": e.lineno,
                        },
                        sort_keys=True,
                    )
                    + "\n"
                )
        return len(entries)
