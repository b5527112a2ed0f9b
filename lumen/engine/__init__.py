"""
Rendering engine for Lumen

Multi-pass colour pipeline over ping-pong offscreen targets, the display
surface it draws into, and the histogram sampler that reads it back.
"""

from .pipeline import ColorPipeline
from .surface import DisplaySurface, Region
from .histogram import HistogramSampler, HistogramData, compute_histogram, display_transform
from .resources import ResourceTracker, TargetArena

__all__ = [
    "ColorPipeline",
    "DisplaySurface",
    "Region",
    "HistogramSampler",
    "HistogramData",
    "compute_histogram",
    "display_transform",
    "ResourceTracker",
    "TargetArena",
]
