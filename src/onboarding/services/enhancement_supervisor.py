"""Supervised rendering of optional step enhancements.

A step's title and body always render. Everything else (illustration media,
pro-tip block, showcase widget, keyboard hint, highlighted body terms) is an
optional enhancement whose failure must not stall the tour: each one is
rendered through ``EnhancementSupervisor.render`` which substitutes a static
fallback when the renderer raises.

Media and showcase assets are loaded lazily by injectable loaders; the
controller and the placement engine never wait on them.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Sequence, TypeVar

from onboarding.tours.catalog import StepSpec

from .error_reporting_service import ErrorReportingService, FailureKind

__all__ = [
    "TextSegment",
    "StepContent",
    "MediaLoader",
    "EnhancementSupervisor",
    "highlight_segments",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class TextSegment:
    text: str
    highlighted: bool = False


@dataclass(frozen=True)
class StepContent:
    title: str
    body: tuple[TextSegment, ...]
    media: Any = None
    pro_tip: Optional[str] = None
    showcase: Any = None
    keyboard_hint: Optional[str] = None
    degraded: tuple[str, ...] = ()

    @property
    def plain_body(self) -> str:
        return "".join(s.text for s in self.body)


class MediaLoader(Protocol):
    def load(self, ref: str) -> Any: ...  # pragma: no cover


def highlight_segments(text: str, terms: Sequence[str]) -> tuple[TextSegment, ...]:
    """Split ``text`` into plain and highlighted runs.

    Matching is case-insensitive; when two terms start at the same offset the
    one listed first wins.
    """
    wanted = [t for t in terms if t]
    if not wanted:
        return (TextSegment(text),)
    pattern = re.compile("|".join(re.escape(t) for t in wanted), re.IGNORECASE)
    segments: list[TextSegment] = []
    pos = 0
    for match in pattern.finditer(text):
        if match.start() > pos:
            segments.append(TextSegment(text[pos : match.start()]))
        segments.append(TextSegment(match.group(0), highlighted=True))
        pos = match.end()
    if pos < len(text):
        segments.append(TextSegment(text[pos:]))
    return tuple(segments)


class EnhancementSupervisor:
    def __init__(
        self,
        *,
        reporter: Optional[ErrorReportingService] = None,
        media_loader: Optional[MediaLoader] = None,
        showcase_factory: Optional[Callable[[str], Any]] = None,
    ) -> None:
        self._reporter = reporter
        self._media_loader = media_loader
        self._showcase_factory = showcase_factory

    def render(self, name: str, renderer: Callable[[], T], fallback: T) -> tuple[T, bool]:
        """Run ``renderer``; on failure return ``(fallback, False)``."""
        try:
            return renderer(), True
        except Exception as exc:  # noqa: BLE001 - enhancement failures are isolated
            if self._reporter is not None:
                self._reporter.report(FailureKind.ENHANCEMENT, name, exc)
            else:
                logger.warning("Step enhancement '%s' failed: %s", name, exc)
            return fallback, False

    def build_step_content(self, step: StepSpec) -> StepContent:
        degraded: list[str] = []

        def supervised(name: str, renderer: Callable[[], T], fallback: T) -> T:
            value, ok = self.render(name, renderer, fallback)
            if not ok:
                degraded.append(name)
            return value

        plain = (TextSegment(step.content),)
        body = supervised(
            "highlight", lambda: highlight_segments(step.content, step.highlight_terms), plain
        )
        media = None
        if step.media_ref and self._media_loader is not None:
            loader = self._media_loader
            media = supervised("media", lambda: loader.load(step.media_ref), None)
        showcase = None
        if step.showcase_kind and self._showcase_factory is not None:
            factory = self._showcase_factory
            showcase = supervised("showcase", lambda: factory(step.showcase_kind), None)
        pro_tip = supervised("pro_tip", lambda: _clean(step.pro_tip_text), None)
        keyboard_hint = supervised("keyboard_hint", lambda: _clean(step.keyboard_hint_text), None)
        return StepContent(
            title=step.title,
            body=body,
            media=media,
            pro_tip=pro_tip,
            showcase=showcase,
            keyboard_hint=keyboard_hint,
            degraded=tuple(degraded),
        )


def _clean(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    stripped = " ".join(text.split())
    return stripped or None
