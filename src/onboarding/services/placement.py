"""Tooltip placement engine.

Pure geometry: given the target's bounding rectangle, the tooltip size and
the viewport size, decide which side of the target the tooltip goes on, where
its top-left corner lands, and which edge of the tooltip carries the arrow.

Algorithm
---------
1. An explicit preferred side is used as-is.
2. ``auto`` evaluates free space below, above, right and left of the target
   in that fixed priority order and picks the first side whose space is at
   least the tooltip dimension plus ``padding``. No side fits -> ``bottom``.
3. The tooltip is centred on the target along the perpendicular axis and
   offset by ``padding`` outside the target edge along the primary axis.
4. Coordinates are clamped into ``[edge_margin, viewport - tooltip - edge_margin]``
   so nothing renders off-screen, even when step 2 fell back to ``bottom``.
5. The arrow sits on the tooltip edge facing the target.

Everything here is deterministic and side-effect free; callers re-invoke
``place`` whenever target geometry, tooltip size or viewport size changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from onboarding.app.config_store import TourConfig
    from onboarding.tours.catalog import StepSpec

__all__ = [
    "Side",
    "Rect",
    "Size",
    "PlacementResult",
    "AUTO_PRIORITY",
    "DEFAULT_PADDING",
    "DEFAULT_EDGE_MARGIN",
    "available_space",
    "choose_side",
    "place",
    "estimate_tooltip_size",
]

DEFAULT_PADDING = 16
DEFAULT_EDGE_MARGIN = 12


class Side(str, Enum):
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"
    AUTO = "auto"

    def opposite(self) -> "Side":
        if self is Side.AUTO:
            raise ValueError("auto has no opposite side")
        return _OPPOSITE[self]


_OPPOSITE = {
    Side.TOP: Side.BOTTOM,
    Side.BOTTOM: Side.TOP,
    Side.LEFT: Side.RIGHT,
    Side.RIGHT: Side.LEFT,
}

AUTO_PRIORITY: tuple[Side, ...] = (Side.BOTTOM, Side.TOP, Side.RIGHT, Side.LEFT)


@dataclass(frozen=True)
class Size:
    width: float
    height: float


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in viewport coordinates."""

    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def center_x(self) -> float:
        return self.left + self.width / 2

    @property
    def center_y(self) -> float:
        return self.top + self.height / 2

    def inflate(self, amount: float) -> "Rect":
        return Rect(
            self.left - amount,
            self.top - amount,
            self.width + 2 * amount,
            self.height + 2 * amount,
        )

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom


@dataclass(frozen=True)
class PlacementResult:
    x: float
    y: float
    chosen_side: Side
    arrow_side: Side

    def tooltip_rect(self, tooltip: Size) -> Rect:
        return Rect(self.x, self.y, tooltip.width, tooltip.height)


def available_space(target: Rect, viewport: Size) -> dict[Side, float]:
    return {
        Side.BOTTOM: viewport.height - target.bottom,
        Side.TOP: target.top,
        Side.RIGHT: viewport.width - target.right,
        Side.LEFT: target.left,
    }


def choose_side(
    target: Rect, tooltip: Size, viewport: Size, preferred: Side | str, padding: float
) -> Side:
    preferred = Side(preferred)
    if preferred is not Side.AUTO:
        return preferred
    space = available_space(target, viewport)
    for side in AUTO_PRIORITY:
        needed = tooltip.height if side in (Side.TOP, Side.BOTTOM) else tooltip.width
        if space[side] >= needed + padding:
            return side
    return Side.BOTTOM


def _clamp(value: float, low: float, high: float) -> float:
    # Lower bound wins when the tooltip is larger than the viewport.
    return max(low, min(value, high))


def place(
    target: Rect,
    tooltip: Size,
    viewport: Size,
    preferred: Side | str = Side.AUTO,
    padding: float = DEFAULT_PADDING,
    edge_margin: Optional[float] = DEFAULT_EDGE_MARGIN,
) -> PlacementResult:
    """Compute the tooltip placement for one step.

    ``edge_margin`` is the inset used when clamping to the viewport; ``None``
    reuses ``padding``.
    """
    margin = padding if edge_margin is None else edge_margin
    side = choose_side(target, tooltip, viewport, preferred, padding)

    if side is Side.TOP:
        x = target.center_x - tooltip.width / 2
        y = target.top - tooltip.height - padding
    elif side is Side.BOTTOM:
        x = target.center_x - tooltip.width / 2
        y = target.bottom + padding
    elif side is Side.LEFT:
        x = target.left - tooltip.width - padding
        y = target.center_y - tooltip.height / 2
    else:
        x = target.right + padding
        y = target.center_y - tooltip.height / 2

    x = _clamp(x, margin, viewport.width - tooltip.width - margin)
    y = _clamp(y, margin, viewport.height - tooltip.height - margin)
    return PlacementResult(x=x, y=y, chosen_side=side, arrow_side=side.opposite())


def estimate_tooltip_size(step: "StepSpec", config: "TourConfig") -> Size:
    """Tooltip box size for a step; optional blocks add height."""
    height = config.tooltip_base_height
    if step.media_ref:
        height += config.media_height
    if step.pro_tip_text:
        height += config.pro_tip_height
    if step.keyboard_hint_text:
        height += config.keyboard_hint_height
    return Size(config.tooltip_width, height)
