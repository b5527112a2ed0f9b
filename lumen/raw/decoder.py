"""
RAW decoding with a fallback chain.

Strategies are tried in order until one succeeds:

1. LibRaw via rawpy: linear gamma, AHD demosaic, camera white balance, 16-bit
2. The dcraw executable, when installed, parsed from its PPM output
3. The largest embedded JPEG preview, converted back to linear light

Only when every strategy fails does the caller see a DecodeError.
"""

import io
import os
import logging
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import rawpy

from ..exceptions import DecodeError
from ..utils.logging import StructuredLogger
from .ppm import parse_ppm
from .preview import extract_largest_preview, decode_preview

logger = logging.getLogger(__name__)
slog = StructuredLogger(__name__)

DEFAULT_COLOR_TEMP = 5500


@dataclass
class DecodedImage:
    """Linear-light RGB pixels in [0, 1] plus capture white balance."""
    pixels: np.ndarray
    width: int
    height: int
    white_balance: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    color_temp: int = DEFAULT_COLOR_TEMP
    strategy: str = ''
    half_size: bool = False

    @property
    def pixel_count(self) -> int:
        return self.width * self.height


def estimate_color_temp(cam_mul: Optional[Sequence[float]]) -> int:
    """
    Rough colour temperature from camera white-balance multipliers.

    A higher red/green ratio means bluer light, hence a higher temperature.
    """
    if cam_mul is None or len(cam_mul) < 3 or not cam_mul[1]:
        return DEFAULT_COLOR_TEMP
    return int(round(4000 + (cam_mul[0] / cam_mul[1]) * 2000))


def _from_pixels(pixels: np.ndarray, strategy: str, half_size: bool,
                 cam_mul: Optional[Sequence[float]] = None) -> DecodedImage:
    height, width = pixels.shape[:2]
    if cam_mul is not None and len(cam_mul) >= 3 and cam_mul[1]:
        wb = (float(cam_mul[0]), float(cam_mul[1]), float(cam_mul[2]))
    else:
        wb = (1.0, 1.0, 1.0)
        cam_mul = None
    return DecodedImage(
        pixels=np.ascontiguousarray(pixels, dtype=np.float32),
        width=width,
        height=height,
        white_balance=wb,
        color_temp=estimate_color_temp(cam_mul),
        strategy=strategy,
        half_size=half_size,
    )


class StrategyUnavailable(Exception):
    """The strategy cannot run in this environment."""
    pass


class DecodeStrategy:
    """One way of turning a RAW buffer into a DecodedImage."""

    name = 'strategy'

    def decode(self, buffer: bytes, half_size: bool) -> DecodedImage:
        raise NotImplementedError


class LibRawStrategy(DecodeStrategy):
    """Full demosaic through LibRaw."""

    name = 'libraw'

    def decode(self, buffer, half_size):
        with rawpy.imread(io.BytesIO(buffer)) as raw:
            rgb = raw.postprocess(
                gamma=(1, 1),
                no_auto_bright=True,
                output_bps=16,
                use_camera_wb=True,
                half_size=half_size,
                demosaic_algorithm=rawpy.DemosaicAlgorithm.AHD,
                output_color=rawpy.ColorSpace.sRGB,
            )
            cam_mul = list(raw.camera_whitebalance)

        pixels = rgb.astype(np.float32) / 65535.0
        return _from_pixels(pixels, self.name, half_size, cam_mul)


class DcrawStrategy(DecodeStrategy):
    """The dcraw executable writing a 16-bit linear PPM to stdout."""

    name = 'dcraw'

    def __init__(self, executable: str = 'dcraw', timeout: float = 300.0):
        self.executable = executable
        self.timeout = timeout

    def command(self, path: str, half_size: bool) -> List[str]:
        args = [self.executable, '-c', '-4', '-q', '3', '-w']
        if half_size:
            args.append('-h')
        args.append(path)
        return args

    def decode(self, buffer, half_size):
        executable = shutil.which(self.executable)
        if executable is None:
            raise StrategyUnavailable(f"{self.executable} not found on PATH")

        fd, path = tempfile.mkstemp(suffix='.raw')
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(buffer)
            cmd = self.command(path, half_size)
            cmd[0] = executable
            result = subprocess.run(cmd, capture_output=True, timeout=self.timeout)
        finally:
            os.unlink(path)

        if result.returncode != 0 or not result.stdout:
            stderr = result.stderr.decode('utf-8', errors='replace').strip()
            raise RuntimeError(f"dcraw exited with {result.returncode}: {stderr or 'no output'}")
        return _from_pixels(parse_ppm(result.stdout), self.name, half_size)


class EmbeddedPreviewStrategy(DecodeStrategy):
    """Largest embedded JPEG preview, approximated back to linear light."""

    name = 'embedded_preview'

    def decode(self, buffer, half_size):
        jpeg = extract_largest_preview(buffer)
        if jpeg is None:
            raise ValueError("no displayable embedded preview found")
        pixels = decode_preview(jpeg)
        logger.warning("Using embedded preview: colours are reconstructed from a "
                       "display-encoded JPEG and only approximate a true RAW decode")
        return _from_pixels(pixels, self.name, half_size)


class RawDecoder:
    """
    Runs decode strategies in order until one succeeds.

    Args:
        strategies: Explicit strategy list; built from the flags when omitted
        use_dcraw: Include the dcraw strategy in the default chain
        dcraw_path: Executable name or path for dcraw
    """

    def __init__(self, strategies: Optional[Sequence[DecodeStrategy]] = None,
                 use_dcraw: bool = True, dcraw_path: str = 'dcraw'):
        if strategies is None:
            strategies = [LibRawStrategy()]
            if use_dcraw:
                strategies.append(DcrawStrategy(dcraw_path))
            strategies.append(EmbeddedPreviewStrategy())
        self.strategies = list(strategies)

    @classmethod
    def from_config(cls, config: Dict) -> 'RawDecoder':
        decoder_config = config.get('decoder', {})
        return cls(use_dcraw=decoder_config.get('use_dcraw', True),
                   dcraw_path=decoder_config.get('dcraw_path', 'dcraw'))

    def decode(self, buffer: bytes, half_size: bool = True) -> DecodedImage:
        """
        Decode ``buffer`` with the first strategy that works.

        Raises:
            DecodeError: if every strategy failed, with the per-strategy reasons
        """
        attempts: List[Tuple[str, str]] = []
        for strategy in self.strategies:
            try:
                image = strategy.decode(buffer, half_size)
            except StrategyUnavailable as e:
                attempts.append((strategy.name, f"unavailable: {e}"))
                slog.debug("Decode strategy unavailable", strategy=strategy.name, reason=str(e))
                continue
            except Exception as e:
                attempts.append((strategy.name, str(e)))
                slog.warning("Decode strategy failed", strategy=strategy.name,
                             error=str(e), half_size=half_size)
                continue

            logger.info(f"Decoded {image.width}x{image.height} with {strategy.name}"
                        f"{' (half size)' if half_size else ''}")
            return image

        slog.error("All decode strategies failed", attempts=attempts, bytes=len(buffer))
        raise DecodeError("No decode strategy succeeded", attempts)


def decode_buffer(buffer: bytes, half_size: bool, use_dcraw: bool = True,
                  dcraw_path: str = 'dcraw') -> DecodedImage:
    """Module-level entry point so worker processes can unpickle the call."""
    return RawDecoder(use_dcraw=use_dcraw, dcraw_path=dcraw_path).decode(buffer, half_size)
