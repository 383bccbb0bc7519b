"""Global constants for the onboarding engine."""

from __future__ import annotations

import os
from typing import Final

DATA_DIR: Final = os.environ.get("ONBOARDING_DATA_DIR", "data")
DB_FILENAME: Final = "onboarding.sqlite"
LOG_LEVEL: Final = os.environ.get("ONBOARDING_LOG_LEVEL", "INFO")

# Overlay geometry (cut-out and highlight ring around the target)
CUTOUT_INFLATE: Final = 8
CUTOUT_RADIUS: Final = 8
HIGHLIGHT_INFLATE: Final = 4
BACKDROP_RGBA: Final = (0, 0, 0, 153)  # 60% black
