"""Application layer: configuration persistence and bootstrap.

Only the config store is re-exported here; ``create_app`` lives in
``onboarding.app.bootstrap`` because it wires every service and importing it
from the package root would cycle through the services that read
``TourConfig``.
"""

from .config_store import (  # noqa: F401
    TourConfig,
    load_config,
    save_config,
    CONFIG_VERSION,
    DEFAULT_FILENAME,
)

__all__ = [
    "TourConfig",
    "load_config",
    "save_config",
    "CONFIG_VERSION",
    "DEFAULT_FILENAME",
]
