"""
Display surface the pipeline's output pass draws into.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Region:
    """Axis-aligned rectangle on the surface, in pixels."""
    x: int
    y: int
    width: int
    height: int

    @property
    def empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


class DisplaySurface:
    """
    8-bit RGB canvas standing in for the on-screen drawing area.

    ``last_viewport`` is the region the most recent frame's image covers,
    clipped to the surface. The histogram samples that region.
    """

    def __init__(self, width: int, height: int):
        self.pixels = np.zeros((0, 0, 3), dtype=np.uint8)
        self.last_viewport: Optional[Region] = None
        self.frame_count = 0
        self.resize(width, height)

    @property
    def size(self) -> Tuple[int, int]:
        return self.pixels.shape[1], self.pixels.shape[0]

    def resize(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid surface size {width}x{height}")
        self.pixels = np.zeros((height, width, 3), dtype=np.uint8)
        self.last_viewport = None

    def present(self, frame: np.ndarray, zoom: float = 1.0,
                pan: Tuple[float, float] = (0.0, 0.0)) -> Region:
        """
        Draw ``frame`` fitted to the surface, scaled by ``zoom`` and offset by ``pan``.

        Returns:
            The visible region the image occupies
        """
        sw, sh = self.size
        fh, fw = frame.shape[:2]
        scale = min(sw / fw, sh / fh) * zoom
        tx = (sw - fw * scale) / 2.0 + pan[0]
        ty = (sh - fh * scale) / 2.0 + pan[1]

        M = np.float32([[scale, 0, tx], [0, scale, ty]])
        self.pixels = cv2.warpAffine(frame, M, (sw, sh), flags=cv2.INTER_LINEAR,
                                     borderMode=cv2.BORDER_CONSTANT, borderValue=(0, 0, 0))

        x0 = max(0, int(np.floor(tx)))
        y0 = max(0, int(np.floor(ty)))
        x1 = min(sw, int(np.ceil(tx + fw * scale)))
        y1 = min(sh, int(np.ceil(ty + fh * scale)))
        self.last_viewport = Region(x0, y0, max(0, x1 - x0), max(0, y1 - y0))
        self.frame_count += 1
        return self.last_viewport

    def read_region(self, region: Optional[Region] = None) -> np.ndarray:
        """Copy of the pixels in ``region`` (whole surface when omitted)."""
        if region is None:
            return self.pixels.copy()
        return self.pixels[region.y:region.y + region.height,
                           region.x:region.x + region.width].copy()
