"""Static tour definitions."""

from .catalog import (  # noqa: F401
    CATALOG,
    StepSpec,
    TourDefinition,
    get_tour,
    has_steps,
    iter_tours,
    tour_key,
)

__all__ = ["CATALOG", "StepSpec", "TourDefinition", "get_tour", "has_steps", "iter_tours", "tour_key"]
