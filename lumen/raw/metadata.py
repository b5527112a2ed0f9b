"""
Best-effort metadata extraction for RAW buffers.

Nothing here raises: any parse failure leaves the affected fields as None.
"""

import io
import os
import re
import logging
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

import exifread

logger = logging.getLogger(__name__)


@dataclass
class ImageMetadata:
    """Display-ready capture details."""
    camera: Optional[str] = None
    iso: Optional[int] = None
    shutter_speed: Optional[str] = None  # "1/250"
    aperture: Optional[str] = None       # "f/2.8"
    focal_length: Optional[str] = None   # "50mm"
    width: Optional[int] = None
    height: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def empty(self) -> bool:
        return all(value is None for value in asdict(self).values())


def _to_float(value) -> float:
    if hasattr(value, 'num') and hasattr(value, 'den'):
        return float(value.num) / float(value.den)
    return float(value)


def _first(tags, *names):
    for name in names:
        tag = tags.get(name)
        if tag is not None and getattr(tag, 'values', None):
            return tag.values[0] if isinstance(tag.values, list) else tag.values
    return None


def format_shutter(seconds: float) -> str:
    """Exposure time as "1/250" below one second, "2" or "2.5" above."""
    if 0 < seconds < 1:
        return f"1/{round(1.0 / seconds)}"
    return f"{seconds:g}"


def format_aperture(f_number: float) -> str:
    return f"f/{f_number:g}"


def format_focal_length(mm: float) -> str:
    return f"{round(mm, 1):g}mm"


def _from_exif(buffer: bytes) -> ImageMetadata:
    tags = exifread.process_file(io.BytesIO(buffer), details=False)
    meta = ImageMetadata()

    make = tags.get('Image Make')
    model = tags.get('Image Model')
    if model is not None:
        model_text = str(model).strip()
        make_text = str(make).strip() if make is not None else ''
        if make_text and not model_text.lower().startswith(make_text.lower()):
            model_text = f"{make_text} {model_text}"
        meta.camera = model_text or None

    iso = _first(tags, 'EXIF ISOSpeedRatings', 'EXIF PhotographicSensitivity')
    if iso is not None:
        meta.iso = int(_to_float(iso))

    exposure = _first(tags, 'EXIF ExposureTime')
    if exposure is not None:
        meta.shutter_speed = format_shutter(_to_float(exposure))

    f_number = _first(tags, 'EXIF FNumber')
    if f_number is not None:
        meta.aperture = format_aperture(_to_float(f_number))

    focal = _first(tags, 'EXIF FocalLength')
    if focal is not None:
        meta.focal_length = format_focal_length(_to_float(focal))

    width = _first(tags, 'EXIF ExifImageWidth', 'Image ImageWidth')
    height = _first(tags, 'EXIF ExifImageLength', 'Image ImageLength')
    if width is not None and height is not None:
        meta.width, meta.height = int(width), int(height)

    return meta


def parse_dcraw_identify(text: str) -> ImageMetadata:
    """Parse the output of ``dcraw -i -v``."""
    meta = ImageMetadata()
    for line in text.splitlines():
        line = line.strip()
        key, _, value = line.partition(':')
        value = value.strip()
        if not value:
            continue

        if key == 'Camera':
            meta.camera = value
        elif key == 'ISO speed':
            try:
                meta.iso = int(float(value))
            except ValueError:
                pass
        elif key == 'Shutter':
            seconds = value.split()[0]
            if '/' in seconds:
                meta.shutter_speed = seconds.replace('.0', '')
            else:
                try:
                    meta.shutter_speed = format_shutter(float(seconds))
                except ValueError:
                    pass
        elif key == 'Aperture':
            meta.aperture = value
        elif key == 'Focal length':
            match = re.match(r'([\d.]+)\s*mm', value)
            if match:
                meta.focal_length = format_focal_length(float(match.group(1)))
        elif key == 'Image size':
            match = re.match(r'(\d+)\s*x\s*(\d+)', value)
            if match:
                meta.width, meta.height = int(match.group(1)), int(match.group(2))
    return meta


def _from_dcraw(buffer: bytes, dcraw_path: str) -> ImageMetadata:
    executable = shutil.which(dcraw_path)
    if executable is None:
        return ImageMetadata()

    fd, path = tempfile.mkstemp(suffix='.raw')
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(buffer)
        result = subprocess.run([executable, '-i', '-v', path],
                                capture_output=True, timeout=30)
        return parse_dcraw_identify(result.stdout.decode('utf-8', errors='replace'))
    finally:
        os.unlink(path)


def extract_metadata(buffer: bytes, dcraw_path: Optional[str] = None) -> ImageMetadata:
    """
    Extract camera, exposure and size details from a RAW buffer.

    EXIF tags are read first; when they yield nothing and ``dcraw_path`` is
    given, dcraw's identify output is used instead. Never raises.
    """
    try:
        meta = _from_exif(buffer)
    except Exception as e:
        logger.debug(f"EXIF metadata unavailable: {e}")
        meta = ImageMetadata()

    if meta.empty and dcraw_path:
        try:
            meta = _from_dcraw(buffer, dcraw_path)
        except Exception as e:
            logger.debug(f"dcraw identify failed: {e}")
            meta = ImageMetadata()

    return meta
