"""Service layer exports.

Responsibilities:
 - EventBus publish/subscribe core (tour + viewport events)
 - Per-application service locator
 - Scheduler abstraction (Qt timers in the app, virtual clock in tests)

Higher level services (controller, resolver, help menu, checklist) are
imported from their own modules to keep this package import cheap.
"""

from .event_bus import EventBus, TourEvent, ViewportEvent  # noqa: F401
from .service_locator import ServiceLocator  # noqa: F401
from .scheduler import ManualScheduler, QtScheduler, Scheduler  # noqa: F401

__all__ = [
    "EventBus",
    "TourEvent",
    "ViewportEvent",
    "ServiceLocator",
    "Scheduler",
    "ManualScheduler",
    "QtScheduler",
]
