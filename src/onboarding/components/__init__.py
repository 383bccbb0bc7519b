"""Presentation components for the tour engine.

``overlay_model`` is pure geometry and always importable. The Qt widgets
(``tour_overlay``, ``qt_registry``, ``viewport_feed``) need PyQt6 and are
imported from their modules directly.
"""

from __future__ import annotations

from .overlay_model import OverlayFrame, HitZone, build_overlay_frame, hit_test  # noqa: F401

__all__ = ["OverlayFrame", "HitZone", "build_overlay_frame", "hit_test"]
