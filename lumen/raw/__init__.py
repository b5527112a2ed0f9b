"""
RAW decoding for Lumen

Strategy chain (LibRaw, dcraw, embedded preview), metadata side channel and
the off-loop full-resolution loader.
"""

from .decoder import RawDecoder, DecodedImage, estimate_color_temp
from .metadata import ImageMetadata, extract_metadata
from .ppm import parse_ppm
from .worker import FullResolutionLoader

__all__ = [
    "RawDecoder",
    "DecodedImage",
    "estimate_color_temp",
    "ImageMetadata",
    "extract_metadata",
    "parse_ppm",
    "FullResolutionLoader",
]
