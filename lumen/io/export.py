"""
JPEG export with optional border.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

import cv2
import numpy as np

from ..processing.edits import EditParameters

logger = logging.getLogger(__name__)

BORDER_COLORS = {
    'white': (255, 255, 255),
    'black': (0, 0, 0),
}
MAX_BORDER_PERCENT = 20.0


@dataclass(frozen=True)
class ExportOptions:
    """
    Export settings.

    ``border_width`` is a percentage of the image's shorter side.
    """
    quality: int = 92
    border: str = 'none'
    border_width: float = 0.0

    def __post_init__(self):
        if self.border not in ('none',) + tuple(BORDER_COLORS):
            raise ValueError(f"Unknown border kind: {self.border!r}")
        object.__setattr__(self, 'quality', int(min(100, max(1, round(self.quality)))))
        object.__setattr__(self, 'border_width',
                           float(min(MAX_BORDER_PERCENT, max(0.0, self.border_width))))

    @classmethod
    def from_config(cls, config: dict, **overrides) -> 'ExportOptions':
        values = dict(config.get('export', {}))
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(quality=values.get('quality', 92),
                   border=values.get('border', 'none'),
                   border_width=values.get('border_width', 0.0))


def calc_border_dimensions(width: int, height: int, options: ExportOptions) -> Tuple[int, int, int]:
    """
    Output size after adding the border.

    Returns:
        (width, height, border_px); border_px is computed from the shorter side
        and rounded to whole pixels
    """
    if options.border == 'none' or options.border_width == 0:
        return width, height, 0
    border_px = int(round(min(width, height) * options.border_width * 0.01))
    return width + 2 * border_px, height + 2 * border_px, border_px


def add_border(image: np.ndarray, options: ExportOptions) -> np.ndarray:
    """Pad an RGB image with a solid border. Returns the input when no border applies."""
    height, width = image.shape[:2]
    _, _, border_px = calc_border_dimensions(width, height, options)
    if border_px == 0:
        return image
    return cv2.copyMakeBorder(image, border_px, border_px, border_px, border_px,
                              cv2.BORDER_CONSTANT, value=BORDER_COLORS[options.border])


def encode_jpeg(image: np.ndarray, quality: int) -> bytes:
    """Encode an 8-bit RGB image as JPEG bytes."""
    bgr = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)
    ok, encoded = cv2.imencode('.jpg', bgr, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return encoded.tobytes()


def export_image(pipeline, params: EditParameters, full_resolution: np.ndarray,
                 options: ExportOptions) -> bytes:
    """
    Render ``params`` over a full-resolution decode and encode it.

    Args:
        pipeline: ColorPipeline used for the offscreen render
        params: Edit parameters to apply (crop included)
        full_resolution: Linear-light (H, W, 3) source pixels
        options: Border and quality settings

    Returns:
        JPEG bytes
    """
    rendered = pipeline.render_to_buffer(params, source=full_resolution)
    framed = add_border(rendered, options)
    data = encode_jpeg(framed, options.quality)
    logger.info(f"Exported {framed.shape[1]}x{framed.shape[0]} JPEG "
                f"(quality {options.quality}, border {options.border})")
    return data


def write_export(path: Union[str, Path], data: bytes) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path
