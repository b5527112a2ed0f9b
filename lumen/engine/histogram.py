"""
Histogram sampling of the rendered frame.

Computation is throttled: calls arriving within ``min_interval`` of the last
computation are dropped, not queued.
"""

import time
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np

logger = logging.getLogger(__name__)

BINS = 256


@dataclass
class HistogramData:
    """Per-channel 256-bin counts of an 8-bit RGB region."""
    red: np.ndarray
    green: np.ndarray
    blue: np.ndarray
    luminance: np.ndarray
    sample_count: int


@dataclass
class DisplayHistogram:
    """Log-scaled, peak-normalised curves trimmed to the occupied bin range."""
    start: int
    end: int
    red: np.ndarray
    green: np.ndarray
    blue: np.ndarray
    luminance: np.ndarray


def compute_histogram(pixels: np.ndarray, stride: int = 4) -> HistogramData:
    """
    Bucket every ``stride``-th pixel of an (H, W, 3+) uint8 array.

    Luminance is ``round(0.2126 R + 0.7152 G + 0.0722 B)``.
    """
    channels = pixels.shape[-1] if pixels.ndim == 3 else 1
    samples = pixels.reshape(-1, channels)[::max(1, stride)]
    if samples.shape[0] == 0:
        empty = np.zeros(BINS, dtype=np.int64)
        return HistogramData(empty, empty.copy(), empty.copy(), empty.copy(), 0)

    rgb = samples[:, :3].astype(np.int64)
    r, g, b = rgb[:, 0], rgb[:, 1], rgb[:, 2]
    lum = np.floor(0.2126 * r + 0.7152 * g + 0.0722 * b + 0.5).astype(np.int64)
    lum = np.minimum(lum, BINS - 1)

    return HistogramData(
        red=np.bincount(r, minlength=BINS),
        green=np.bincount(g, minlength=BINS),
        blue=np.bincount(b, minlength=BINS),
        luminance=np.bincount(lum, minlength=BINS),
        sample_count=int(samples.shape[0]),
    )


def display_transform(data: HistogramData) -> DisplayHistogram:
    """Prepare histogram counts for plotting."""
    logs = {name: np.log1p(getattr(data, name).astype(np.float64))
            for name in ('red', 'green', 'blue', 'luminance')}

    # Clipped extremes would otherwise dwarf everything else
    interior = np.concatenate([values[1:BINS - 1] for values in logs.values()])
    peak = interior.max() if interior.size else 0.0
    if peak <= 0:
        peak = max(values.max() for values in logs.values()) or 1.0

    total = data.red + data.green + data.blue
    occupied = np.nonzero(total)[0]
    if occupied.size:
        start, end = int(occupied[0]), int(occupied[-1])
    else:
        start, end = 0, BINS - 1

    def trim(values):
        return np.minimum(values[start:end + 1] / peak, 1.0)

    return DisplayHistogram(start, end, trim(logs['red']), trim(logs['green']),
                            trim(logs['blue']), trim(logs['luminance']))


class HistogramSampler:
    """
    Throttled histogram computation with publish/subscribe delivery.

    Args:
        min_interval: Minimum seconds between computations
        stride: Pixel subsampling step
        clock: Monotonic time source
    """

    def __init__(self, min_interval: float = 0.1, stride: int = 4,
                 clock: Callable[[], float] = time.monotonic):
        self.min_interval = min_interval
        self.stride = stride
        self.clock = clock
        self._last_run: Optional[float] = None
        self._latest: Optional[HistogramData] = None
        self._subscribers: List[Callable[[HistogramData], None]] = []

    def update(self, source, region=None) -> Optional[HistogramData]:
        """
        Sample ``region`` of ``source`` unless throttled.

        ``source`` is a DisplaySurface (anything with ``read_region``) or a
        uint8 array.

        Returns:
            The new data, or None when the call was dropped
        """
        now = self.clock()
        if self._last_run is not None and now - self._last_run < self.min_interval:
            return None
        self._last_run = now

        if hasattr(source, 'read_region'):
            pixels = source.read_region(region)
        else:
            pixels = source
            if region is not None:
                pixels = pixels[region.y:region.y + region.height, region.x:region.x + region.width]

        data = compute_histogram(pixels, self.stride)
        self._latest = data
        for callback in list(self._subscribers):
            callback(data)
        return data

    def get_latest(self) -> Optional[HistogramData]:
        return self._latest

    def subscribe(self, callback: Callable[[HistogramData], None]) -> Callable[[], None]:
        """
        Receive every new histogram.

        Returns:
            A callable that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe
