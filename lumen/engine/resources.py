"""
Render resources: source textures, offscreen targets and the target arena.

Pixel storage is float32 numpy arrays. Every allocation is counted by a
ResourceTracker so teardown can be verified to release everything it owns.
"""

import logging
from collections import Counter
from typing import Iterable, Optional, Tuple

import numpy as np

from ..exceptions import PipelineError

logger = logging.getLogger(__name__)


class ResourceTracker:
    """Counts live render resources by kind."""

    def __init__(self):
        self.live = Counter()
        self.allocated = Counter()

    def allocate(self, kind: str) -> None:
        self.live[kind] += 1
        self.allocated[kind] += 1

    def release(self, kind: str) -> None:
        if self.live[kind] <= 0:
            raise PipelineError(f"Released more {kind} resources than were allocated")
        self.live[kind] -= 1

    @property
    def total_live(self) -> int:
        return sum(self.live.values())


class Texture:
    """Read-only pixel buffer sampled by render passes."""

    kind = 'texture'

    def __init__(self, tracker: ResourceTracker, pixels: np.ndarray, name: str = ''):
        self.tracker = tracker
        self.name = name
        self.pixels = pixels
        self.released = False
        tracker.allocate(self.kind)

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.pixels.shape

    def release(self) -> None:
        if not self.released:
            self.released = True
            self.pixels = None
            self.tracker.release(self.kind)


class RenderTarget(Texture):
    """Offscreen RGB float target that passes render into."""

    kind = 'target'

    def __init__(self, tracker: ResourceTracker, width: int, height: int, name: str = ''):
        super().__init__(tracker, np.zeros((height, width, 3), dtype=np.float32), name)
        self.width = width
        self.height = height

    def write(self, pixels: np.ndarray) -> None:
        if pixels.shape != self.pixels.shape:
            raise PipelineError(
                f"Pass output shape {pixels.shape} does not match target {self.name} {self.pixels.shape}")
        np.copyto(self.pixels, pixels)


class TargetArena:
    """
    Fixed set of same-size offscreen targets used in ping-pong order.

    Targets 0 and 1 are general purpose; target 2 holds the first leg of a
    separable blur. Passes address targets by index, and ``run_pass`` refuses
    any pass whose write target is also one of its inputs.
    """

    GENERAL = (0, 1)
    BLUR_TEMP = 2

    def __init__(self, tracker: ResourceTracker, width: int, height: int):
        if width <= 0 or height <= 0:
            raise PipelineError(f"Invalid target size {width}x{height}")
        self.width = width
        self.height = height
        self.targets = [RenderTarget(tracker, width, height, name=f"target{i}") for i in range(3)]
        logger.debug(f"Allocated target arena {width}x{height}")

    @staticmethod
    def other(index: int) -> int:
        """The general-purpose target that is not ``index``."""
        if index not in TargetArena.GENERAL:
            raise PipelineError(f"Target {index} is not a general-purpose target")
        return 1 - index

    def read(self, index: int) -> np.ndarray:
        return self.targets[index].pixels

    def run_pass(self, name: str, reads: Iterable[int], write: int, pixels_fn) -> int:
        """
        Execute one pass, storing ``pixels_fn(*inputs)`` into target ``write``.

        Returns:
            The index written
        """
        reads = tuple(reads)
        if write in reads:
            raise PipelineError(f"Pass {name} would read and write target {write}")
        result = pixels_fn(*(self.read(i) for i in reads))
        self.targets[write].write(result)
        return write

    def release(self) -> None:
        for target in self.targets:
            target.release()
        logger.debug(f"Released target arena {self.width}x{self.height}")


def crop_rect_pixels(crop, width: int, height: int) -> Optional[Tuple[int, int, int, int]]:
    """Crop rectangle in pixels as (x, y, w, h), at least one pixel each way."""
    if crop is None:
        return None
    x = int(round(crop.x * width))
    y = int(round(crop.y * height))
    x = min(max(x, 0), width - 1)
    y = min(max(y, 0), height - 1)
    w = max(1, min(int(round(crop.width * width)), width - x))
    h = max(1, min(int(round(crop.height * height)), height - y))
    return x, y, w, h
