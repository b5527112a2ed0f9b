"""
Shared fixtures for the Lumen test suite.
"""

import io
import heapq
import itertools

import numpy as np
import pytest
from PIL import Image

from lumen.config import get_default_config


class FakeHandle:
    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Manually advanced clock implementing the Scheduler interface."""

    def __init__(self):
        self.time = 0.0
        self._queue = []
        self._counter = itertools.count()

    def now(self):
        return self.time

    def call_later(self, delay, callback):
        handle = FakeHandle(self.time + delay, callback)
        heapq.heappush(self._queue, (handle.when, next(self._counter), handle))
        return handle

    @property
    def pending(self):
        return [h for _, _, h in self._queue if not h.cancelled]

    def advance(self, seconds):
        """Move time forward, running every callback that comes due."""
        target = self.time + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            self.time = max(self.time, when)
            if not handle.cancelled:
                handle.callback()
        self.time = target


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def config():
    return get_default_config()


@pytest.fixture
def gradient_image():
    """Linear-light 48x64 image with a colour gradient."""
    h, w = 48, 64
    y, x = np.mgrid[0:h, 0:w].astype(np.float32)
    img = np.dstack([x / (w - 1), y / (h - 1), np.full((h, w), 0.3, np.float32)])
    return (img * 0.8 + 0.05).astype(np.float32)


@pytest.fixture
def flat_image():
    """Uniform mid-grey linear image."""
    return np.full((32, 40, 3), 0.18, dtype=np.float32)


def make_ppm(pixels, maxval=65535, comment=None):
    """Encode an (H, W, 3) float array in [0, 1] as binary P6."""
    h, w = pixels.shape[:2]
    header = b'P6\n'
    if comment:
        header += b'# ' + comment.encode() + b'\n'
    header += f"{w} {h}\n{maxval}\n".encode()
    samples = np.round(pixels * maxval)
    if maxval > 255:
        body = samples.astype('>u2').tobytes()
    else:
        body = samples.astype(np.uint8).tobytes()
    return header + body


def make_jpeg(width, height, color=(200, 120, 40), quality=90):
    buf = io.BytesIO()
    Image.new('RGB', (width, height), color).save(buf, format='JPEG', quality=quality)
    return buf.getvalue()


def make_jpeg_stream(width, height, payload_bytes, sof=0xC3):
    """SOI + frame header + fake scan. SOF3 mimics a lossless sensor dump."""
    frame = bytes((0xFF, sof)) + b'\x00\x0b\x0e' + height.to_bytes(2, 'big') + width.to_bytes(2, 'big') + \
        b'\x01\x01\x11\x00'
    sos = b'\xff\xda\x00\x08\x01\x01\x00\x00\x3f\x00'
    body = bytes((i * 7) % 255 for i in range(payload_bytes))
    return b'\xff\xd8' + frame + sos + body + b'\xff\xd9'


def make_raw_container(*chunks):
    """Concatenate chunks with filler bytes, like a RAW file with embedded JPEGs."""
    filler = b'\x00RAWDATA' * 16
    return filler + filler.join(chunks) + filler


@pytest.fixture
def ppm_factory():
    return make_ppm


@pytest.fixture
def jpeg_factory():
    return make_jpeg


@pytest.fixture
def container_factory():
    return make_raw_container


@pytest.fixture
def stream_factory():
    return make_jpeg_stream
