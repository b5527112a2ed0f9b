"""
Tone curve lookup-table baking.

User-drawn curves are stored as sparse control points and evaluated on the
render path through a dense, linearly interpolated lookup table.
"""

from typing import Sequence, Union, Tuple, Dict
import numpy as np

from .edits import CurvePoint

LUT_SIZE = 256

PointLike = Union[CurvePoint, Tuple[float, float], Dict[str, float]]


def _coords(point: PointLike) -> Tuple[float, float]:
    if isinstance(point, CurvePoint):
        return point.x, point.y
    if isinstance(point, dict):
        return point['x'], point['y']
    return point[0], point[1]


def identity_lut(size: int = LUT_SIZE) -> np.ndarray:
    """Identity ramp ``i / (size - 1)``."""
    return np.linspace(0.0, 1.0, size, dtype=np.float32)


def bake_curve_lut(points: Sequence[PointLike], size: int = LUT_SIZE) -> np.ndarray:
    """
    Sample a piecewise-linear tone curve into a lookup table.

    Args:
        points: Control points; need not be sorted
        size: Number of samples

    Returns:
        float32 array of ``size`` values in [0, 1]. Fewer than two points give
        the identity ramp; samples outside the first/last control point take
        that end point's y.
    """
    if size < 2:
        raise ValueError(f"LUT size must be at least 2, got {size}")
    if len(points) < 2:
        return identity_lut(size)

    coords = sorted((_coords(p) for p in points), key=lambda c: c[0])
    xs = np.array([c[0] for c in coords], dtype=np.float64)
    ys = np.array([c[1] for c in coords], dtype=np.float64)
    t = np.arange(size, dtype=np.float64) / (size - 1)

    # lo = first segment whose upper x reaches t
    lo = np.searchsorted(xs[1:], t, side='left')
    lo = np.minimum(lo, len(xs) - 2)
    hi = lo + 1

    span = xs[hi] - xs[lo]
    safe_span = np.where(span > 0, span, 1.0)
    frac = np.where(span > 0, (t - xs[lo]) / safe_span, 0.0)
    lut = ys[lo] + frac * (ys[hi] - ys[lo])

    lut = np.where(t <= xs[0], ys[0], lut)
    lut = np.where(t >= xs[-1], ys[-1], lut)
    return np.clip(lut, 0.0, 1.0).astype(np.float32)


def apply_lut(values: np.ndarray, lut: np.ndarray) -> np.ndarray:
    """Evaluate ``lut`` at ``values`` (in [0, 1]) with linear filtering."""
    grid = np.linspace(0.0, 1.0, len(lut), dtype=np.float32)
    return np.interp(values, grid, lut).astype(np.float32)
