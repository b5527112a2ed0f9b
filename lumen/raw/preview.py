"""
Embedded JPEG preview extraction from RAW containers.

Most RAW formats carry one or more JPEG previews. Candidates are found by
their start-of-image marker and validated by walking the JPEG segment
structure: a genuine preview has a lossy frame header with plausible
dimensions and is far smaller than its pixel count. Lossless sensor dumps
(SOF3 and friends) share the same marker bytes and are rejected.
"""

import io
import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from PIL import Image

from ..processing.color import srgb_to_linear

logger = logging.getLogger(__name__)

SOI = b'\xff\xd8\xff'
EOI = 0xD9
SOS = 0xDA

# Frame headers that carry image dimensions
SOF_MARKERS = {0xC0, 0xC1, 0xC2, 0xC3, 0xC5, 0xC6, 0xC7, 0xC9, 0xCA, 0xCB, 0xCD, 0xCE, 0xCF}
LOSSLESS_SOF = {0xC3, 0xC7, 0xCB, 0xCF}
# Markers without a length field
STANDALONE = {0x01} | set(range(0xD0, 0xD8))

MIN_DIMENSION = 16
MAX_DIMENSION = 20000
MAX_BYTES_PER_PIXEL = 1.5


@dataclass(frozen=True)
class EmbeddedPreview:
    """Location and frame size of a validated embedded JPEG."""
    offset: int
    length: int
    width: int
    height: int

    @property
    def pixels(self) -> int:
        return self.width * self.height


@dataclass
class _Frame:
    end: int
    width: int = 0
    height: int = 0
    lossless: bool = False


def _scan_entropy(data: bytes, pos: int) -> int:
    """Skip entropy-coded data, returning the offset of the next real marker."""
    length = len(data)
    while True:
        pos = data.find(b'\xff', pos)
        if pos < 0 or pos + 1 >= length:
            return -1
        nxt = data[pos + 1]
        # Stuffed zero byte, restart marker or fill byte
        if nxt == 0x00 or 0xD0 <= nxt <= 0xD7 or nxt == 0xFF:
            pos += 1 if nxt == 0xFF else 2
            continue
        return pos


def _walk_jpeg(data: bytes, start: int) -> Optional[_Frame]:
    """Follow the segment chain from the SOI at ``start`` to its EOI."""
    frame = _Frame(end=-1)
    pos = start + 2
    length = len(data)

    while pos + 1 < length:
        if data[pos] != 0xFF:
            return None
        marker = data[pos + 1]
        if marker == 0xFF:
            pos += 1
            continue
        if marker == EOI:
            frame.end = pos + 2
            return frame
        if marker in STANDALONE:
            pos += 2
            continue
        if pos + 4 > length:
            return None

        seg_len = (data[pos + 2] << 8) | data[pos + 3]
        if seg_len < 2:
            return None
        if marker in SOF_MARKERS:
            if pos + 9 > length:
                return None
            frame.height = (data[pos + 5] << 8) | data[pos + 6]
            frame.width = (data[pos + 7] << 8) | data[pos + 8]
            frame.lossless = marker in LOSSLESS_SOF

        pos += 2 + seg_len
        if marker == SOS:
            pos = _scan_entropy(data, pos)
            if pos < 0:
                return None
    return None


def find_embedded_previews(data: bytes) -> List[EmbeddedPreview]:
    """All embedded JPEGs in ``data`` that look like displayable previews."""
    previews = []
    pos = data.find(SOI)
    while pos >= 0:
        frame = _walk_jpeg(data, pos)
        next_search = pos + 2
        if frame is not None:
            next_search = frame.end
            size = frame.end - pos
            if _is_display_preview(frame, size):
                previews.append(EmbeddedPreview(pos, size, frame.width, frame.height))
            else:
                logger.debug(f"Rejected embedded JPEG at {pos}: {frame.width}x{frame.height}, "
                             f"{size} bytes, lossless={frame.lossless}")
        pos = data.find(SOI, next_search)
    return previews


def _is_display_preview(frame: _Frame, size: int) -> bool:
    if frame.lossless:
        return False
    if not (MIN_DIMENSION <= frame.width <= MAX_DIMENSION and
            MIN_DIMENSION <= frame.height <= MAX_DIMENSION):
        return False
    return size / float(frame.width * frame.height) < MAX_BYTES_PER_PIXEL


def extract_largest_preview(data: bytes) -> Optional[bytes]:
    """Bytes of the largest validated preview, or None."""
    previews = find_embedded_previews(data)
    if not previews:
        return None
    best = max(previews, key=lambda p: (p.pixels, p.length))
    logger.debug(f"Selected embedded preview {best.width}x{best.height} at offset {best.offset}")
    return data[best.offset:best.offset + best.length]


def decode_preview(jpeg: bytes) -> np.ndarray:
    """
    Decode preview JPEG bytes to linear-light float32 RGB.

    The inverse sRGB transform only approximates linear light: any tone
    mapping the camera baked into the preview is not undone.
    """
    with Image.open(io.BytesIO(jpeg)) as img:
        rgb = np.asarray(img.convert('RGB'), dtype=np.float32) / 255.0
    return srgb_to_linear(rgb)
