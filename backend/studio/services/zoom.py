"""
Zoom level selection.

The selectable zoom levels depend on the fit scale (the multiplier at which
the output canvas exactly fills the viewer), which changes with the window
size. Levels that are not clearly larger than fit are hidden so two
visually indistinguishable steps never sit next to each other.
"""

import logging
from typing import List, Optional, Sequence

from studio.config import settings
from studio.models.viewport import FIT, ZoomValue

logger = logging.getLogger(__name__)


def get_effective_zoom_levels(
    fit_scale: float,
    levels: Optional[Sequence[float]] = None,
    min_distance: Optional[float] = None,
) -> List[ZoomValue]:
    """
    Return ``['fit', ...]`` followed by the ladder levels exceeding
    ``fit_scale`` by more than ``min_distance``.
    """
    levels = sorted(set(levels if levels is not None else settings.zoom_levels))
    min_distance = min_distance if min_distance is not None else settings.zoom_min_distance
    return [FIT] + [level for level in levels if level > fit_scale + min_distance]


class ZoomLevelSelector:
    """
    Tracks the current zoom and steps through the effective level list.

    The fit scale used for filtering is the last one measured while in fit
    mode; while zoomed the live scale no longer reflects fit, so it is only
    used before fit has ever been measured.
    """

    def __init__(
        self,
        levels: Optional[Sequence[float]] = None,
        min_distance: Optional[float] = None,
    ):
        self.levels = sorted(set(levels if levels is not None else settings.zoom_levels))
        self.min_distance = min_distance if min_distance is not None else settings.zoom_min_distance
        self.zoom: ZoomValue = FIT
        self._live_scale: Optional[float] = None
        self._last_fit_scale: Optional[float] = None

    def measure(self, live_scale: float) -> None:
        """Record the actual preview-to-output scale reported by the viewer."""
        self._live_scale = live_scale
        if self.zoom == FIT:
            self._last_fit_scale = live_scale

    @property
    def fit_scale(self) -> float:
        if self._last_fit_scale is not None:
            return self._last_fit_scale
        if self._live_scale is not None:
            return self._live_scale
        return 1.0

    @property
    def effective_levels(self) -> List[ZoomValue]:
        return get_effective_zoom_levels(self.fit_scale, self.levels, self.min_distance)

    def _neighbour(self, direction: int) -> Optional[ZoomValue]:
        levels = self.effective_levels
        if self.zoom in levels:
            index = levels.index(self.zoom) + direction
            return levels[index] if 0 <= index < len(levels) else None

        # A numeric zoom that was filtered out: step to the nearest level
        numeric = levels[1:]
        if direction > 0:
            larger = [level for level in numeric if level > self.zoom]
            return larger[0] if larger else None
        smaller = [level for level in numeric if level < self.zoom]
        return smaller[-1] if smaller else FIT

    @property
    def can_zoom_in(self) -> bool:
        return self._neighbour(1) is not None

    @property
    def can_zoom_out(self) -> bool:
        return self._neighbour(-1) is not None

    def zoom_in(self) -> ZoomValue:
        target = self._neighbour(1)
        if target is not None:
            self.zoom = target
        return self.zoom

    def zoom_out(self) -> ZoomValue:
        target = self._neighbour(-1)
        if target is not None:
            self.zoom = target
        return self.zoom

    def set_zoom(self, zoom: ZoomValue) -> ZoomValue:
        if zoom != FIT and zoom <= 0:
            raise ValueError("zoom must be 'fit' or a positive multiplier")
        logger.debug(f"Zoom set to {zoom}")
        self.zoom = zoom
        return self.zoom
