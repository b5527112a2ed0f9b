"""
Colour math for the adjustment passes.

All functions take and return float32 RGB arrays of shape (H, W, 3) in
linear light unless stated otherwise. Each adjustment is the identity at its
neutral value.
"""

from typing import Tuple
import numpy as np
import cv2

from .edits import HSLAdjustment, ColorGrading, GradingZone, HSL_BAND_CENTERS

# ITU-R BT.709 luma coefficients
LUMA_WEIGHTS = np.array([0.2126, 0.7152, 0.0722], dtype=np.float32)

MIDDLE_GREY = 0.18
REFERENCE_TEMPERATURE = 5500.0

# Planckian locus approximation (relative RGB of a black body at each temperature)
_TEMPERATURE_TABLE = (
    (2000, (1.000, 0.549, 0.081)),
    (2500, (1.000, 0.616, 0.213)),
    (3000, (1.000, 0.673, 0.337)),
    (3500, (1.000, 0.724, 0.446)),
    (4000, (1.000, 0.770, 0.544)),
    (4500, (1.000, 0.812, 0.630)),
    (5000, (1.000, 0.851, 0.708)),
    (5500, (1.000, 0.887, 0.778)),
    (6000, (1.000, 0.920, 0.843)),
    (6500, (1.000, 0.952, 0.903)),
    (7000, (0.949, 0.944, 1.000)),
    (7500, (0.913, 0.918, 1.000)),
    (8000, (0.883, 0.896, 1.000)),
    (8500, (0.858, 0.877, 1.000)),
    (9000, (0.835, 0.860, 1.000)),
    (9500, (0.815, 0.846, 1.000)),
    (10000, (0.798, 0.833, 1.000)),
    (11000, (0.768, 0.812, 1.000)),
    (12000, (0.745, 0.795, 1.000)),
)
_TEMPS = np.array([t for t, _ in _TEMPERATURE_TABLE], dtype=np.float64)
_TEMP_RGB = np.array([rgb for _, rgb in _TEMPERATURE_TABLE], dtype=np.float64)


def luminance(rgb: np.ndarray) -> np.ndarray:
    """Rec. 709 luminance, shape (H, W)."""
    return rgb @ LUMA_WEIGHTS


def linear_to_srgb(values: np.ndarray) -> np.ndarray:
    """sRGB transfer function (encode)."""
    v = np.clip(values, 0.0, 1.0)
    return np.where(v <= 0.0031308, v * 12.92,
                    1.055 * np.power(v, 1.0 / 2.4) - 0.055).astype(np.float32)


def srgb_to_linear(values: np.ndarray) -> np.ndarray:
    """Inverse sRGB transfer function (decode)."""
    v = np.clip(values, 0.0, 1.0)
    return np.where(v <= 0.04045, v / 12.92,
                    np.power((v + 0.055) / 1.055, 2.4)).astype(np.float32)


def temperature_to_rgb(kelvin: float) -> np.ndarray:
    """Relative RGB of a black-body illuminant, interpolated from the locus table."""
    return np.array([np.interp(kelvin, _TEMPS, _TEMP_RGB[:, c]) for c in range(3)])


def white_balance_multipliers(temperature: float, tint: float) -> np.ndarray:
    """
    RGB gains for a white-balance setting.

    Temperature is the illuminant the image should be corrected for: values
    above the 5500 K reference warm the image, values below cool it. Positive
    tint moves towards magenta. Gains are normalised to green = 1 and limited
    to [0.4, 2.5].
    """
    if temperature == REFERENCE_TEMPERATURE and tint == 0:
        return np.ones(3, dtype=np.float32)

    mult = temperature_to_rgb(REFERENCE_TEMPERATURE) / temperature_to_rgb(temperature)
    mult[1] *= 1.0 - tint / 300.0
    mult = mult / mult[1]
    return np.clip(mult, 0.4, 2.5).astype(np.float32)


def apply_white_balance(rgb: np.ndarray, temperature: float, tint: float) -> np.ndarray:
    return rgb * white_balance_multipliers(temperature, tint)


def apply_exposure(rgb: np.ndarray, ev: float) -> np.ndarray:
    """Power-of-two gain: +1 EV doubles linear values."""
    if ev == 0:
        return rgb
    return rgb * np.float32(2.0 ** ev)


def apply_contrast(rgb: np.ndarray, amount: float) -> np.ndarray:
    """Power curve pivoting on middle grey."""
    if amount == 0:
        return rgb
    k = 1.0 + amount / 200.0
    return (MIDDLE_GREY * np.power(np.maximum(rgb, 0.0) / MIDDLE_GREY, k)).astype(np.float32)


def _perceptual_luminance(rgb: np.ndarray) -> np.ndarray:
    return linear_to_srgb(luminance(rgb))


def apply_tone_regions(rgb: np.ndarray, highlights: float, shadows: float,
                       whites: float, blacks: float) -> np.ndarray:
    """
    Remap tonal regions with smooth luminosity masks.

    Each slider at +/-100 moves its region by one stop.
    """
    if highlights == 0 and shadows == 0 and whites == 0 and blacks == 0:
        return rgb

    lp = _perceptual_luminance(rgb)
    shadow_mask = np.maximum(0.0, 1.0 - lp * 2.0) ** 2
    highlight_mask = np.maximum(0.0, lp * 2.0 - 1.0) ** 2
    black_mask = np.maximum(0.0, 1.0 - lp * 4.0) ** 2
    white_mask = np.maximum(0.0, lp * 4.0 - 3.0) ** 2

    stops = (shadows * shadow_mask + highlights * highlight_mask +
             blacks * black_mask + whites * white_mask) / 100.0
    return (rgb * np.power(2.0, stops)[:, :, np.newaxis]).astype(np.float32)


def _band_interp(hue: np.ndarray, values: Tuple[float, ...]) -> np.ndarray:
    """Blend per-band values at each hue, triangular falloff between band centres."""
    centers = np.array(HSL_BAND_CENTERS + (360.0,), dtype=np.float32)
    ext = np.array(tuple(values) + (values[0],), dtype=np.float32)
    return np.interp(hue, centers, ext).astype(np.float32)


def apply_hsl(rgb: np.ndarray, hsl: HSLAdjustment) -> np.ndarray:
    """Per-band hue, saturation and luminance shifts."""
    if hsl.is_neutral():
        return rgb

    clipped = np.clip(rgb, 0.0, 1.0).astype(np.float32)
    hls = cv2.cvtColor(clipped, cv2.COLOR_RGB2HLS)
    h, l, s = hls[:, :, 0], hls[:, :, 1], hls[:, :, 2]

    if any(hsl.hue):
        h = np.mod(h + _band_interp(h, hsl.hue) * 0.3, 360.0)
    new_s = s
    if any(hsl.saturation):
        new_s = np.clip(s * (1.0 + _band_interp(h, hsl.saturation) / 100.0), 0.0, 1.0)
    if any(hsl.luminance):
        # Scaled by saturation so neutral greys are untouched
        l = np.clip(l * np.power(2.0, _band_interp(h, hsl.luminance) / 100.0 * s), 0.0, 1.0)

    result = cv2.cvtColor(np.dstack([h, l, new_s]).astype(np.float32), cv2.COLOR_HLS2RGB)
    # Keep headroom above 1.0 for pixels the shift did not touch
    overflow = rgb - clipped
    return (result + overflow).astype(np.float32)


def hue_to_rgb(hue: float) -> np.ndarray:
    """Convert hue (0-360) to a fully saturated RGB colour"""
    h = (hue % 360.0) / 60.0
    c = 1.0
    x = c * (1 - abs(h % 2 - 1))

    if h < 1:
        r, g, b = c, x, 0
    elif h < 2:
        r, g, b = x, c, 0
    elif h < 3:
        r, g, b = 0, c, x
    elif h < 4:
        r, g, b = 0, x, c
    elif h < 5:
        r, g, b = x, 0, c
    else:
        r, g, b = c, 0, x

    return np.array((r, g, b), dtype=np.float32)


def _zone_tint(zone: GradingZone) -> np.ndarray:
    """Luminance-normalised tint colour for a grading zone."""
    color = hue_to_rgb(zone.hue)
    return color / float(color @ LUMA_WEIGHTS)


def apply_color_grading(rgb: np.ndarray, grading: ColorGrading) -> np.ndarray:
    """Three-way colour wheels plus a global wheel."""
    if grading.is_neutral():
        return rgb

    lp = _perceptual_luminance(rgb)
    shadow_mask = np.maximum(0.0, 1.0 - lp * 2.0) ** 2
    highlight_mask = np.maximum(0.0, lp * 2.0 - 1.0) ** 2
    midtone_mask = np.maximum(0.0, 1.0 - shadow_mask - highlight_mask)
    global_mask = np.ones_like(lp)

    result = rgb
    for zone, mask in ((grading.shadows, shadow_mask),
                       (grading.midtones, midtone_mask),
                       (grading.highlights, highlight_mask),
                       (grading.global_, global_mask)):
        if zone.is_neutral():
            continue
        weight = mask[:, :, np.newaxis]
        if zone.saturation:
            strength = weight * (zone.saturation / 100.0 * 0.5)
            result = result * (1.0 + strength * (_zone_tint(zone) - 1.0))
        if zone.luminance:
            result = result * np.power(2.0, weight * (zone.luminance / 100.0 * 0.5))
    return result.astype(np.float32)


def apply_vibrance_saturation(rgb: np.ndarray, vibrance: float, saturation: float) -> np.ndarray:
    """
    Luminance-preserving saturation.

    Vibrance boosts muted colours more than saturated ones; saturation -100
    collapses every pixel onto its luminance.
    """
    if vibrance == 0 and saturation == 0:
        return rgb

    gray = luminance(rgb)[:, :, np.newaxis]
    factor = np.float32(1.0 + saturation / 100.0)
    if vibrance != 0:
        peak = rgb.max(axis=2)
        chroma = (peak - rgb.min(axis=2)) / np.maximum(peak, 1e-6)
        factor = factor * (1.0 + vibrance / 100.0 * (1.0 - np.clip(chroma, 0.0, 1.0)))[:, :, np.newaxis]
    return (gray + (rgb - gray) * factor).astype(np.float32)
