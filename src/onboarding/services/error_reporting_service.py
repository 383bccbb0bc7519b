"""Failure reporting for the tour engine.

Nothing in the tour subsystem may take the host application down, so the
failures it tolerates (persistence writes that did not land, optional
enhancements that failed to render) are captured here instead of being
raised: structured ``FailureRecord`` entries in a ring buffer, aggregated per
(kind, operation, exception type) so a flaky store shows up as one group with
a count rather than a wall of repeats.

Each report is also logged and published as an EventBus event so the UI can
surface it (e.g. a "progress not saved" hint).
"""

from __future__ import annotations

import logging
import traceback
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from .event_bus import EventBus, TourEvent

__all__ = ["FailureKind", "FailureRecord", "FailureGroup", "ErrorReportingService"]

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    PERSISTENCE = "persistence"
    ENHANCEMENT = "enhancement"


@dataclass(frozen=True)
class FailureRecord:
    """One captured failure.

    Attributes
    ----------
    kind: Which tolerated failure class this is.
    operation: Logical operation name (``set_fields``, ``media`` ...).
    exc_type: Exception class.
    message: ``str(exc)``.
    traceback_str: Formatted traceback (empty when the exception was never raised).
    timestamp: POSIX timestamp.
    iso_time: ISO 8601 UTC form of ``timestamp``.
    context: Free-form details (user id, tour id, fields).
    """

    kind: FailureKind
    operation: str
    exc_type: type
    message: str
    traceback_str: str
    timestamp: float
    iso_time: str
    context: Dict[str, Any]

    def summary(self, max_len: int = 120) -> str:
        msg = f"{self.kind.value}/{self.operation} {self.exc_type.__name__}: {self.message}"
        return msg if len(msg) <= max_len else msg[: max_len - 3] + "..."


@dataclass
class FailureGroup:
    key: str
    first: FailureRecord
    count: int
    last_timestamp: float


class ErrorReportingService:
    def __init__(self, *, capacity: int = 20, event_bus: EventBus | None = None) -> None:
        self._records: Deque[FailureRecord] = deque(maxlen=max(1, capacity))
        self._groups: Dict[str, FailureGroup] = {}
        self._group_order: List[str] = []
        self._event_bus = event_bus

    def report(
        self,
        kind: FailureKind,
        operation: str,
        exc: BaseException,
        *,
        context: Optional[Dict[str, Any]] = None,
    ) -> FailureRecord:
        ts = datetime.now(timezone.utc)
        record = FailureRecord(
            kind=kind,
            operation=operation,
            exc_type=type(exc),
            message=str(exc),
            traceback_str="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            timestamp=ts.timestamp(),
            iso_time=ts.isoformat().replace("+00:00", "Z"),
            context=dict(context or {}),
        )
        self._records.append(record)
        key = f"{kind.value}|{operation}|{record.exc_type.__name__}"
        group = self._groups.get(key)
        if group is None:
            self._groups[key] = FailureGroup(key=key, first=record, count=1, last_timestamp=record.timestamp)
            self._group_order.append(key)
        else:
            group.count += 1
            group.last_timestamp = record.timestamp

        if kind is FailureKind.PERSISTENCE:
            logger.error("Onboarding write failed (%s): %s", operation, record.message)
            event = TourEvent.PERSISTENCE_FAILED
        else:
            logger.warning("Step enhancement '%s' failed, using fallback: %s", operation, record.message)
            event = TourEvent.ENHANCEMENT_FAILED
        if self._event_bus is not None:
            self._event_bus.publish(
                event,
                {
                    "operation": operation,
                    "type": record.exc_type.__name__,
                    "message": record.message,
                    "iso_time": record.iso_time,
                    **record.context,
                },
            )
        return record

    # Introspection ----------------------------------------------------
    def recent(self, kind: FailureKind | None = None) -> List[FailureRecord]:
        return [r for r in self._records if kind is None or r.kind is kind]

    def groups(self) -> List[FailureGroup]:
        """Aggregated groups in first-seen order."""
        return [self._groups[k] for k in self._group_order]

    def clear(self) -> None:
        self._records.clear()
        self._groups.clear()
        self._group_order.clear()
