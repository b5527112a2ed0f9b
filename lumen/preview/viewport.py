"""
Zoom and pan state for the preview surface.

Values are plain mutable cells updated synchronously from input events; the
owner requests a coalesced redraw after each change.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

logger = logging.getLogger(__name__)

WHEEL_ZOOM_IN = 1.1
WHEEL_ZOOM_OUT = 0.9


@dataclass
class Viewport:
    """
    Zoom factor relative to fit-to-surface, plus pan offset in surface pixels.

    Pan is measured from the centred position, so (0, 0) with zoom 1 is the
    whole image fitted and centred.
    """
    zoom: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0
    min_zoom: float = 0.1
    max_zoom: float = 20.0

    def zoom_at(self, factor: float, anchor: Tuple[float, float] = (0.0, 0.0)) -> bool:
        """
        Scale the zoom by ``factor`` keeping the point under ``anchor`` fixed.

        Args:
            factor: Multiplicative zoom step
            anchor: Cursor position relative to the surface centre, in pixels

        Returns:
            True if the zoom changed
        """
        new_zoom = min(self.max_zoom, max(self.min_zoom, self.zoom * factor))
        if new_zoom == self.zoom:
            return False

        ratio = new_zoom / self.zoom
        ax, ay = anchor
        self.pan_x = ax - (ax - self.pan_x) * ratio
        self.pan_y = ay - (ay - self.pan_y) * ratio
        self.zoom = new_zoom
        return True

    def wheel(self, delta_y: float, anchor: Tuple[float, float] = (0.0, 0.0)) -> bool:
        """Mouse wheel step: scrolling up (negative delta) zooms in."""
        if delta_y == 0:
            return False
        return self.zoom_at(WHEEL_ZOOM_IN if delta_y < 0 else WHEEL_ZOOM_OUT, anchor)

    def pan_by(self, dx: float, dy: float) -> None:
        self.pan_x += dx
        self.pan_y += dy

    def reset(self) -> None:
        """Double-click: back to fitted and centred."""
        self.zoom = 1.0
        self.pan_x = 0.0
        self.pan_y = 0.0

    def needs_full_resolution(self, threshold: float) -> bool:
        return self.zoom > threshold
