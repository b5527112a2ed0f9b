"""
Portable pixel-map (PPM/PGM) parsing.

RAW converters emit binary P6 (RGB) or P5 (greyscale) maps: an ASCII header
of magic, width, height and maxval separated by whitespace (with optional
``#`` comments), a single whitespace byte, then 8-bit samples or big-endian
16-bit samples when maxval exceeds 255.
"""

from typing import Tuple
import numpy as np


def _read_token(data: bytes, pos: int) -> Tuple[bytes, int]:
    """Return the next header token and the position just after it."""
    length = len(data)
    while pos < length:
        c = data[pos:pos + 1]
        if c == b'#':
            end = data.find(b'\n', pos)
            pos = length if end < 0 else end + 1
        elif c.isspace():
            pos += 1
        else:
            break

    start = pos
    while pos < length and not data[pos:pos + 1].isspace() and data[pos:pos + 1] != b'#':
        pos += 1
    if start == pos:
        raise ValueError("Truncated PPM header")
    return data[start:pos], pos


def parse_ppm(data: bytes) -> np.ndarray:
    """
    Decode a binary PPM/PGM into float32 RGB normalised to [0, 1].

    Returns:
        Array of shape (height, width, 3)

    Raises:
        ValueError: for unsupported or malformed input
    """
    magic, pos = _read_token(data, 0)
    if magic not in (b'P6', b'P5'):
        raise ValueError(f"Unsupported pixel map type {magic!r}")
    channels = 3 if magic == b'P6' else 1

    fields = []
    for _ in range(3):
        token, pos = _read_token(data, pos)
        try:
            fields.append(int(token))
        except ValueError:
            raise ValueError(f"Invalid PPM header field {token!r}") from None
    width, height, maxval = fields
    if width <= 0 or height <= 0 or not 0 < maxval < 65536:
        raise ValueError(f"Invalid PPM dimensions {width}x{height} maxval {maxval}")

    # Exactly one whitespace byte separates the header from the samples
    pos += 1
    dtype = np.dtype('>u2') if maxval > 255 else np.dtype('u1')
    count = width * height * channels
    needed = count * dtype.itemsize
    if len(data) - pos < needed:
        raise ValueError(f"PPM payload truncated: need {needed} bytes, have {len(data) - pos}")

    samples = np.frombuffer(data, dtype=dtype, count=count, offset=pos)
    pixels = samples.reshape(height, width, channels).astype(np.float32) / float(maxval)
    if channels == 1:
        pixels = np.repeat(pixels, 3, axis=2)
    return pixels
