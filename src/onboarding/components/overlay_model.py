"""Overlay frame model.

Turns the controller's ``StepView`` into the concrete shapes the overlay
paints: a dimmed backdrop covering the viewport, a rounded cut-out around the
target, a thinner highlight ring, and the tooltip box with its arrow and
navigation labels.

Kept free of Qt so the geometry can be asserted headless; ``TourOverlay``
only translates an ``OverlayFrame`` into QPainter calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from onboarding import settings
from onboarding.services.placement import Rect, Side, Size
from onboarding.services.tour_controller import StepStatus, StepView

__all__ = ["OverlayFrame", "build_overlay_frame", "HitZone", "hit_test"]


@dataclass(frozen=True)
class OverlayFrame:
    backdrop: Rect
    cutout: Optional[Rect]
    cutout_radius: float
    highlight: Optional[Rect]
    tooltip: Optional[Rect]
    arrow_side: Optional[Side]
    title: str
    progress_label: str
    back_enabled: bool
    primary_label: str
    target_missing: bool = False
    revealed: bool = False


class HitZone:
    TOOLTIP = "tooltip"
    CUTOUT = "cutout"
    BACKDROP = "backdrop"


def build_overlay_frame(view: StepView, viewport: Optional[Size] = None) -> OverlayFrame:
    """Shapes for one step.

    ``viewport`` defaults to the size the step was last measured against.
    Before the target resolves (or when it is missing) only the backdrop and
    labels are populated.
    """
    size = viewport or view.viewport or Size(0, 0)
    target = view.target_rect if view.status is StepStatus.VISIBLE else None
    tooltip = None
    arrow = None
    if target is not None and view.placement is not None:
        tooltip = view.placement.tooltip_rect(view.tooltip_size)
        arrow = view.placement.arrow_side
    return OverlayFrame(
        backdrop=Rect(0, 0, size.width, size.height),
        cutout=target.inflate(settings.CUTOUT_INFLATE) if target else None,
        cutout_radius=settings.CUTOUT_RADIUS,
        highlight=target.inflate(settings.HIGHLIGHT_INFLATE) if target else None,
        tooltip=tooltip,
        arrow_side=arrow,
        title=view.content.title,
        progress_label=view.progress_label,
        back_enabled=not view.is_first,
        primary_label="Finish" if view.is_last else "Next",
        target_missing=view.status is StepStatus.TARGET_MISSING,
        revealed=view.revealed,
    )


def hit_test(frame: OverlayFrame, x: float, y: float) -> str:
    # Tooltip sits above the cut-out; clicks inside the cut-out reach neither.
    if frame.tooltip is not None and frame.tooltip.contains(x, y):
        return HitZone.TOOLTIP
    if frame.cutout is not None and frame.cutout.contains(x, y):
        return HitZone.CUTOUT
    return HitZone.BACKDROP
