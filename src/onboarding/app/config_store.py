"""Tour engine configuration persistence.

Stores the tunables of the tour engine (tooltip metrics, placement padding,
timer delays, behaviour toggles) as a small versioned JSON file.

Design principles:
- Pure logic (no Qt import) so it can be unit-tested headless.
- Explicit schema with version field to enable future migrations.
- Graceful fallback: corrupt or incompatible files produce defaults instead of raising.
- Atomic save (temp file + replace).
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict

__all__ = ["TourConfig", "load_config", "save_config", "CONFIG_VERSION", "DEFAULT_FILENAME"]

logger = logging.getLogger(__name__)

CONFIG_VERSION = 1

DEFAULT_FILENAME = "tour_config.json"


@dataclass(slots=True)
class TourConfig:
    """Runtime configuration of the tour engine.

    Attributes
    ----------
    padding: Gap between target edge and tooltip, also the auto-side space slack.
    edge_margin: Minimum distance between tooltip and viewport edge after clamping.
    tooltip_width, tooltip_base_height: Tooltip box size without optional blocks.
    media_height, pro_tip_height, keyboard_hint_height: Extra height per optional block.
    target_retry_delay_ms: Delay before the single target-resolution retry.
    content_reveal_delay_ms: Delay between step render and content reveal.
    celebration_delay_ms: Delay before a deferred completion returns to Idle.
    launch_delay_ms: Delay between help-menu navigation and tour start.
    auto_skip_missing_targets: Advance past steps whose target never resolves.
    keyboard_navigation: Arrow/Enter/Escape keys drive the active tour.
    """

    version: int = CONFIG_VERSION
    padding: int = 16
    edge_margin: int = 12
    tooltip_width: int = 380
    tooltip_base_height: int = 200
    media_height: int = 136
    pro_tip_height: int = 64
    keyboard_hint_height: int = 28
    target_retry_delay_ms: int = 50
    content_reveal_delay_ms: int = 150
    celebration_delay_ms: int = 1200
    launch_delay_ms: int = 100
    auto_skip_missing_targets: bool = False
    keyboard_navigation: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TourConfig":
        defaults = cls()
        values: Dict[str, Any] = {}
        for f in fields(cls):
            default = getattr(defaults, f.name)
            raw = data.get(f.name, default)
            # Coerce to the default's type; bool first since bool is an int subclass.
            if isinstance(default, bool):
                values[f.name] = bool(raw)
            else:
                values[f.name] = int(raw)
        return cls(**values)


def _resolve_path(base_dir: str | Path | None) -> Path:
    base = Path(base_dir) if base_dir else Path.cwd()
    return base / DEFAULT_FILENAME


def load_config(base_dir: str | Path | None = None) -> TourConfig:
    path = _resolve_path(base_dir)
    if not path.exists():
        return TourConfig()
    try:
        cfg = TourConfig.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError, TypeError) as exc:
        logger.warning("Ignoring unreadable tour config %s: %s", path, exc)
        return TourConfig()
    if cfg.version != CONFIG_VERSION:
        logger.info("Tour config version %s != %s, using defaults", cfg.version, CONFIG_VERSION)
        return TourConfig()
    return cfg


def save_config(cfg: TourConfig, base_dir: str | Path | None = None) -> Path:
    path = _resolve_path(base_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(cfg.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)
    return path
