"""
Render pass programs for the colour pipeline.

Each program is compiled once when the pipeline is built and then run per
frame against targets in the arena. Blur-based effects use a two-leg
separable Gaussian: a horizontal leg into the blur temp target, then a
vertical leg fused with the effect's blend.
"""

import math
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import cv2
import numpy as np

from ..exceptions import ProgramCompileError
from ..processing.edits import EditParameters, ToneCurves, CURVE_CHANNELS
from ..processing.curves import LUT_SIZE, bake_curve_lut, identity_lut, apply_lut
from ..processing import color
from .resources import ResourceTracker, Texture

logger = logging.getLogger(__name__)

# Parameters closer to neutral than this skip their pass
NEAR_ZERO = 0.01
MIN_SHARPEN_AMOUNT = 1.0


@dataclass
class RenderContext:
    """Per-frame inputs shared by every pass."""
    params: EditParameters
    luts: 'CurveLuts'
    crop_rect: Optional[Tuple[int, int, int, int]] = None


class CurveLuts:
    """
    Persistent lookup textures for the four tone curves.

    Tables start at identity and are re-baked only for channels whose control
    points changed since the previous frame.
    """

    def __init__(self, tracker: ResourceTracker, size: int = LUT_SIZE):
        self.size = size
        self.textures = {channel: Texture(tracker, identity_lut(size), name=f"lut_{channel}")
                         for channel in CURVE_CHANNELS}
        self._points: Dict[str, Tuple] = {}
        self.identity = {channel: True for channel in CURVE_CHANNELS}
        self.bake_count = 0

    def update(self, curves: ToneCurves) -> None:
        for channel in CURVE_CHANNELS:
            points = getattr(curves, channel)
            if self._points.get(channel) == points:
                continue
            self._points[channel] = points
            lut = bake_curve_lut(points, self.size)
            self.textures[channel].pixels[:] = lut
            self.identity[channel] = bool(np.allclose(lut, identity_lut(self.size), atol=1e-6))
            self.bake_count += 1

    def lut(self, channel: str) -> np.ndarray:
        return self.textures[channel].pixels

    def release(self) -> None:
        for texture in self.textures.values():
            texture.release()


def gaussian_kernel(sigma: float) -> np.ndarray:
    """1D Gaussian kernel covering three standard deviations."""
    ksize = 2 * int(math.ceil(3.0 * sigma)) + 1
    return cv2.getGaussianKernel(ksize, sigma, cv2.CV_32F)


_UNIT = np.ones((1, 1), dtype=np.float32)


def blur_horizontal(image: np.ndarray, sigma: float) -> np.ndarray:
    return cv2.sepFilter2D(image, -1, gaussian_kernel(sigma), _UNIT)


def blur_vertical(image: np.ndarray, sigma: float) -> np.ndarray:
    return cv2.sepFilter2D(image, -1, _UNIT, gaussian_kernel(sigma))


class Program:
    """
    Base class for a compiled render pass.

    Subclasses implement ``render``; ``is_active`` reports whether the pass
    would change the image for the given parameters.
    """

    name = 'program'

    def __init__(self):
        self.compiled = False
        self._tracker: Optional[ResourceTracker] = None

    def compile(self, tracker: ResourceTracker) -> None:
        """
        Validate and link the program.

        Raises:
            ProgramCompileError: if the program cannot be built
        """
        self.validate()
        tracker.allocate('program')
        self._tracker = tracker
        self.compiled = True
        logger.debug(f"Compiled program {self.name}")

    def validate(self) -> None:
        if type(self).render is Program.render:
            raise ProgramCompileError(self.name, "no render entry point")

    def is_active(self, ctx: RenderContext) -> bool:
        return True

    def render(self, *inputs, ctx: RenderContext) -> np.ndarray:
        raise NotImplementedError

    def release(self) -> None:
        if self.compiled:
            self.compiled = False
            self._tracker.release('program')


class MainProgram(Program):
    """Global colour adjustments in linear light, then display encoding and curves."""

    name = 'main'

    def render(self, source, ctx):
        p = ctx.params
        rgb = source.astype(np.float32, copy=False)
        rgb = color.apply_white_balance(rgb, p.temperature, p.tint)
        rgb = color.apply_exposure(rgb, p.exposure)
        rgb = color.apply_contrast(rgb, p.contrast)
        rgb = color.apply_tone_regions(rgb, p.highlights, p.shadows, p.whites, p.blacks)
        rgb = color.apply_hsl(rgb, p.hsl)
        rgb = color.apply_color_grading(rgb, p.color_grading)
        rgb = color.apply_vibrance_saturation(rgb, p.vibrance, p.saturation)

        encoded = color.linear_to_srgb(rgb)

        # Per-channel curves first, then the RGB curve on top
        for index, channel in enumerate(('red', 'green', 'blue')):
            if not ctx.luts.identity[channel]:
                encoded[:, :, index] = apply_lut(encoded[:, :, index], ctx.luts.lut(channel))
        if not ctx.luts.identity['rgb']:
            encoded = apply_lut(encoded, ctx.luts.lut('rgb'))
        return encoded


class DehazeProgram(Program):
    """Dark-channel haze removal (positive) or haze addition (negative)."""

    name = 'dehaze'

    def is_active(self, ctx):
        return abs(ctx.params.dehaze) > NEAR_ZERO

    def render(self, current, ctx):
        amount = ctx.params.dehaze / 100.0
        h, w = current.shape[:2]
        patch = max(3, int(min(h, w) * 0.02) | 1)
        dark = cv2.erode(current.min(axis=2), np.ones((patch, patch), np.uint8))

        # Atmospheric light: mean colour of the haziest 0.1% of pixels
        flat_dark = dark.reshape(-1)
        count = max(1, flat_dark.size // 1000)
        brightest = np.argpartition(flat_dark, -count)[-count:]
        atmosphere = current.reshape(-1, 3)[brightest].mean(axis=0)
        atmosphere = np.maximum(atmosphere, 1e-3)

        if amount > 0:
            transmission = 1.0 - amount * 0.95 * dark / atmosphere.max()
            transmission = np.maximum(transmission, 0.1)[:, :, np.newaxis]
            result = (current - atmosphere) / transmission + atmosphere
        else:
            haze = -amount * 0.5
            result = current * (1.0 - haze) + atmosphere * haze
        return np.clip(result, 0.0, 1.0).astype(np.float32)


class BlurHorizontalProgram(Program):
    """First leg of the separable blur, written to the blur temp target."""

    name = 'blur_h'

    def __init__(self, sigma_fn):
        super().__init__()
        self.sigma_fn = sigma_fn

    def render(self, current, ctx):
        return blur_horizontal(current, self.sigma_fn(current, ctx))


class BlendProgram(Program):
    """Second blur leg fused with a blend against the unblurred input."""

    def sigma(self, current: np.ndarray, ctx: RenderContext) -> float:
        raise NotImplementedError

    def render(self, temp, current, ctx):
        blurred = blur_vertical(temp, self.sigma(current, ctx))
        return self.blend(current, blurred, ctx)

    def blend(self, current: np.ndarray, blurred: np.ndarray, ctx: RenderContext) -> np.ndarray:
        raise NotImplementedError

    def validate(self):
        if type(self).blend is BlendProgram.blend:
            raise ProgramCompileError(self.name, "no blend entry point")


class ClarityProgram(BlendProgram):
    """Local contrast: clarity weighted to midtones, texture applied evenly."""

    name = 'clarity'

    def is_active(self, ctx):
        return abs(ctx.params.clarity) > NEAR_ZERO or abs(ctx.params.texture) > NEAR_ZERO

    def sigma(self, current, ctx):
        return max(2.0, min(current.shape[:2]) * 0.01)

    def blend(self, current, blurred, ctx):
        detail = current - blurred
        lum = color.luminance(current)
        midtones = np.clip(1.0 - (2.0 * lum - 1.0) ** 2, 0.0, 1.0)[:, :, np.newaxis]
        strength = ctx.params.clarity / 100.0 * 0.8 * midtones + ctx.params.texture / 100.0 * 0.5
        return np.clip(current + detail * strength, 0.0, 1.0).astype(np.float32)


class SharpenProgram(BlendProgram):
    """Unsharp mask with a detail threshold suppressing low-contrast noise."""

    name = 'sharpen'

    def is_active(self, ctx):
        return ctx.params.sharpening.amount >= MIN_SHARPEN_AMOUNT

    def sigma(self, current, ctx):
        return ctx.params.sharpening.radius

    def blend(self, current, blurred, ctx):
        s = ctx.params.sharpening
        detail = current - blurred
        threshold = (1.0 - s.detail / 100.0) * 0.05
        if threshold > 0:
            edge = np.abs(color.luminance(detail)) / threshold
            mask = np.clip(edge, 0.0, 1.0)[:, :, np.newaxis]
        else:
            mask = 1.0
        return np.clip(current + s.amount / 100.0 * detail * mask, 0.0, 1.0).astype(np.float32)


class DenoiseProgram(BlendProgram):
    """Chroma smoothing plus range-weighted luminance smoothing."""

    name = 'denoise'

    def is_active(self, ctx):
        nr = ctx.params.noise_reduction
        return nr.luminance > NEAR_ZERO or nr.color > NEAR_ZERO

    def sigma(self, current, ctx):
        nr = ctx.params.noise_reduction
        return 0.5 + 2.0 * max(nr.luminance, nr.color) / 100.0

    def blend(self, current, blurred, ctx):
        nr = ctx.params.noise_reduction
        ycc = cv2.cvtColor(current, cv2.COLOR_RGB2YCrCb)
        ycc_blur = cv2.cvtColor(blurred, cv2.COLOR_RGB2YCrCb)

        if nr.color > NEAR_ZERO:
            mix = nr.color / 100.0
            ycc[:, :, 1:] += (ycc_blur[:, :, 1:] - ycc[:, :, 1:]) * mix

        if nr.luminance > NEAR_ZERO:
            strength = nr.luminance / 100.0
            spread = 0.02 + strength * 0.1
            delta = ycc_blur[:, :, 0] - ycc[:, :, 0]
            weight = np.exp(-(delta * delta) / (2.0 * spread * spread))
            ycc[:, :, 0] += delta * weight * strength

        result = cv2.cvtColor(ycc, cv2.COLOR_YCrCb2RGB)
        return np.clip(result, 0.0, 1.0).astype(np.float32)


def vignette_falloff(shape: Tuple[int, int], rect: Tuple[int, int, int, int],
                     midpoint: float, roundness: float, feather: float) -> np.ndarray:
    """
    Radial falloff in [0, 1], zero inside the midpoint and one at the corners.

    Coordinates are normalised to ``rect`` so the falloff is centred on the
    visible crop.
    """
    h, w = shape
    rx, ry, rw, rh = rect
    cx, cy = rx + rw / 2.0, ry + rh / 2.0

    Y, X = np.ogrid[:h, :w]
    # roundness +100 is a circle, -100 follows the rectangle's aspect
    circle = min(rw, rh) / 2.0
    blend = (roundness + 100.0) / 200.0
    sx = (rw / 2.0) * (1.0 - blend) + circle * blend
    sy = (rh / 2.0) * (1.0 - blend) + circle * blend
    dist = np.sqrt(((X - cx) / sx) ** 2 + ((Y - cy) / sy) ** 2)
    corner = math.sqrt((rw / 2.0 / sx) ** 2 + (rh / 2.0 / sy) ** 2)

    start = midpoint / 100.0 * corner
    width = max(1e-3, feather / 100.0 * (corner - start + 1e-3))
    t = np.clip((dist - start) / width, 0.0, 1.0)
    return (t * t * (3.0 - 2.0 * t)).astype(np.float32)


class VignetteProgram(Program):
    """Darken (negative) or lighten (positive) towards the crop edges."""

    name = 'vignette'

    def is_active(self, ctx):
        return abs(ctx.params.vignette.amount) > NEAR_ZERO

    def render(self, current, ctx):
        v = ctx.params.vignette
        h, w = current.shape[:2]
        rect = ctx.crop_rect or (0, 0, w, h)
        falloff = vignette_falloff((h, w), rect, v.midpoint, v.roundness, v.feather)[:, :, np.newaxis]
        factor = abs(v.amount) / 100.0
        if v.amount < 0:
            result = current * (1.0 - factor * falloff)
        else:
            result = current + (1.0 - current) * factor * falloff
        return np.clip(result, 0.0, 1.0).astype(np.float32)


class OutputProgram(Program):
    """Final crop/straighten and quantisation to 8-bit display values."""

    name = 'output'

    def render(self, current, ctx):
        frame = current
        if ctx.crop_rect is not None:
            frame = apply_crop(current, ctx.crop_rect, ctx.params.crop.rotation)
        return np.clip(frame * 255.0 + 0.5, 0, 255).astype(np.uint8)


def apply_crop(image: np.ndarray, rect: Tuple[int, int, int, int], rotation: float) -> np.ndarray:
    """Straighten around the crop centre, then cut out the crop rectangle."""
    x, y, w, h = rect
    if rotation:
        center = (x + w / 2.0, y + h / 2.0)
        M = cv2.getRotationMatrix2D(center, rotation, 1.0)
        image = cv2.warpAffine(image, M, (image.shape[1], image.shape[0]),
                               flags=cv2.INTER_LINEAR, borderMode=cv2.BORDER_REFLECT_101)
    return image[y:y + h, x:x + w]


def default_programs() -> Dict[str, Program]:
    """One program per pass type, in pipeline order."""
    clarity = ClarityProgram()
    sharpen = SharpenProgram()
    denoise = DenoiseProgram()
    return {
        'main': MainProgram(),
        'dehaze': DehazeProgram(),
        'clarity_h': _leg(clarity),
        'clarity': clarity,
        'sharpen_h': _leg(sharpen),
        'sharpen': sharpen,
        'denoise_h': _leg(denoise),
        'denoise': denoise,
        'vignette': VignetteProgram(),
        'output': OutputProgram(),
    }


def _leg(blend: BlendProgram) -> BlurHorizontalProgram:
    leg = BlurHorizontalProgram(blend.sigma)
    leg.name = f"{blend.name}_h"
    return leg
