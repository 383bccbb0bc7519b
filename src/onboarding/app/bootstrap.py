"""Application bootstrap for the onboarding tour engine.

Responsibilities:
 - Optional QApplication creation (skipped headless or when PyQt6 is missing)
 - Loading ``TourConfig`` from the data directory
 - Opening the SQLite onboarding store (in-memory store when no data dir)
 - Building the service graph and registering it in a context-owned
   ``ServiceLocator`` (no process-wide singleton, so several contexts can
   coexist in one test session)
 - Attaching the ``LoggingService`` ring buffer to the root logger

Host integration points (element registry, navigation, scheduler) are
injectable; headless defaults are a static registry, an in-memory navigator
and a ``ManualScheduler``.

The module avoids importing PyQt6 widgets eagerly beyond the availability
probe so headless test collection stays fast.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Optional

from onboarding import settings
from onboarding.db.state_store import InMemoryStateStore, SqliteStateStore, StateStore
from onboarding.models import OnboardingState
from onboarding.services.checklist_service import ChecklistService
from onboarding.services.enhancement_supervisor import EnhancementSupervisor
from onboarding.services.error_reporting_service import ErrorReportingService
from onboarding.services.event_bus import EventBus
from onboarding.services.help_menu_service import (
    HelpMenuService,
    InMemoryNavigation,
    NavigationService,
)
from onboarding.services.logging_service import LoggingService
from onboarding.services.onboarding_state_service import OnboardingStateService, WriteDispatcher
from onboarding.services.scheduler import ManualScheduler, QtScheduler, Scheduler
from onboarding.services.service_locator import ServiceLocator
from onboarding.services.target_resolver import (
    ElementRegistry,
    StaticElementRegistry,
    TargetResolver,
)
from onboarding.services.tour_controller import TourController

from .config_store import TourConfig, load_config
from .timing import TimingLogger

try:  # Lazy / optional Qt import
    from PyQt6.QtWidgets import QApplication  # type: ignore

    _QT_AVAILABLE = True
except Exception:  # noqa: BLE001
    QApplication = None  # type: ignore
    _QT_AVAILABLE = False

__all__ = ["AppContext", "create_app"]

logger = logging.getLogger(__name__)


def _log_level() -> int:
    level = getattr(logging, settings.LOG_LEVEL.upper(), None)
    return level if isinstance(level, int) else logging.INFO


@dataclass
class AppContext:
    """References created during bootstrap.

    Attributes
    ----------
    qt_app: QApplication instance (None when headless)
    headless: Whether headless bootstrap was used
    config: Effective ``TourConfig``
    services: Context-owned service locator holding everything below
    event_bus / scheduler / store / onboarding / controller / help_menu /
    checklist / errors / logs: the wired services, also exposed directly
    timing: Startup phase timings
    """

    qt_app: Optional[Any]
    headless: bool
    config: TourConfig
    services: ServiceLocator
    event_bus: EventBus
    scheduler: Scheduler
    store: StateStore
    onboarding: OnboardingStateService
    controller: TourController
    help_menu: HelpMenuService
    checklist: ChecklistService
    errors: ErrorReportingService
    logs: LoggingService
    timing: TimingLogger
    metadata: dict[str, Any] = field(default_factory=dict)

    def login(self, user_id: str) -> OnboardingState:
        return self.onboarding.login(user_id)

    def logout(self) -> None:
        """End any running tour, then drop the user's record."""
        self.help_menu.cancel_pending()
        self.controller.end()
        self.onboarding.logout()

    def shutdown(self) -> None:
        self.logout()
        self.help_menu.dispose()
        self.logs.detach()
        if isinstance(self.store, SqliteStateStore):
            self.store.close()


def create_app(
    *,
    headless: bool | None = None,
    data_dir: str | None = None,
    store: StateStore | None = None,
    registry: ElementRegistry | None = None,
    navigation: NavigationService | None = None,
    scheduler: Scheduler | None = None,
    config: TourConfig | None = None,
    attach_logging: bool = True,
) -> AppContext:
    """Create and wire an onboarding application context.

    Parameters
    ----------
    headless: Force headless (no QApplication, ``ManualScheduler`` default).
        If None, inferred from PyQt6 availability.
    data_dir: Directory for ``tour_config.json`` and the SQLite database.
        None keeps everything in memory with default config.
    store / registry / navigation / scheduler / config: explicit overrides.
    """
    started = perf_counter()
    if headless is None:
        headless = not _QT_AVAILABLE
    timing = TimingLogger()

    qt_app = None
    if not headless and _QT_AVAILABLE:
        with timing.measure("create_qapplication"):
            qt_app = QApplication.instance() or QApplication(sys.argv[:1])

    with timing.measure("load_config"):
        if config is None:
            config = load_config(data_dir) if data_dir else TourConfig()

    bus = EventBus()
    logs = LoggingService(event_bus=bus, level=_log_level())
    if attach_logging:
        logs.attach()
    errors = ErrorReportingService(event_bus=bus)

    with timing.measure("open_store"):
        if store is None:
            if data_dir:
                os.makedirs(data_dir, exist_ok=True)
                store = SqliteStateStore.open(os.path.join(data_dir, settings.DB_FILENAME))
            else:
                store = InMemoryStateStore()

    if scheduler is None:
        scheduler = ManualScheduler() if headless else QtScheduler()
    if registry is None:
        registry = StaticElementRegistry()
    if navigation is None:
        navigation = InMemoryNavigation()

    with timing.measure("wire_services"):
        onboarding = OnboardingStateService(
            WriteDispatcher(store, scheduler, errors), event_bus=bus
        )
        resolver = TargetResolver(
            registry, bus, scheduler, retry_delay_ms=config.target_retry_delay_ms
        )
        controller = TourController(
            onboarding,
            resolver,
            scheduler,
            bus,
            config=config,
            supervisor=EnhancementSupervisor(reporter=errors),
        )
        help_menu = HelpMenuService(
            onboarding, controller, navigation, scheduler, event_bus=bus, config=config
        )
        checklist = ChecklistService(onboarding, controller)

        locator = ServiceLocator()
        for name, value in [
            ("config", config),
            ("event_bus", bus),
            ("scheduler", scheduler),
            ("state_store", store),
            ("element_registry", registry),
            ("navigation", navigation),
            ("error_reporting", errors),
            ("logging_service", logs),
            ("onboarding_state", onboarding),
            ("target_resolver", resolver),
            ("tour_controller", controller),
            ("help_menu", help_menu),
            ("checklist", checklist),
        ]:
            locator.register(name, value, origin="bootstrap")

    timing.stop()

    export_path = os.environ.get("ONBOARDING_STARTUP_TIMING_JSON")
    if export_path:
        try:
            with open(export_path, "w", encoding="utf-8") as f:
                json.dump(timing.as_dict(), f, indent=2, sort_keys=True)
        except OSError as exc:
            logger.warning("Could not export startup timing to %s: %s", export_path, exc)

    logger.info(
        "Onboarding context ready (headless=%s, store=%s) in %.1f ms",
        headless,
        type(store).__name__,
        (perf_counter() - started) * 1000,
    )
    return AppContext(
        qt_app=qt_app,
        headless=headless,
        config=config,
        services=locator,
        event_bus=bus,
        scheduler=scheduler,
        store=store,
        onboarding=onboarding,
        controller=controller,
        help_menu=help_menu,
        checklist=checklist,
        errors=errors,
        logs=logs,
        timing=timing,
        metadata={
            "qt_available": _QT_AVAILABLE,
            "data_dir": data_dir,
            "startup_timing": timing.as_dict(),
            "config": config.to_dict(),
        },
    )
