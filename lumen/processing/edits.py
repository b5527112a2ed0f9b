"""
Edit parameter model for Lumen

Every adjustable quantity of a non-destructive edit lives in one immutable
value object. Mutations are expressed as typed change records that produce a
new EditParameters from the previous one, so history snapshots can be held
without copying.
"""

import math
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional, Tuple, Any, Sequence, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParamRange:
    """Valid range and default for a numeric parameter."""
    min: float
    max: float
    step: float
    default: float

    def clamp(self, value: float) -> float:
        return min(self.max, max(self.min, value))


PARAM_RANGES: Dict[str, ParamRange] = {
    'temperature': ParamRange(2000, 12000, 50, 5500),
    'tint': ParamRange(-150, 150, 1, 0),
    'exposure': ParamRange(-5, 5, 0.01, 0),
    'contrast': ParamRange(-100, 100, 1, 0),
    'highlights': ParamRange(-100, 100, 1, 0),
    'shadows': ParamRange(-100, 100, 1, 0),
    'whites': ParamRange(-100, 100, 1, 0),
    'blacks': ParamRange(-100, 100, 1, 0),
    'texture': ParamRange(-100, 100, 1, 0),
    'clarity': ParamRange(-100, 100, 1, 0),
    'dehaze': ParamRange(-100, 100, 1, 0),
    'vibrance': ParamRange(-100, 100, 1, 0),
    'saturation': ParamRange(-100, 100, 1, 0),
    'sharpening.amount': ParamRange(0, 150, 1, 0),
    'sharpening.radius': ParamRange(0.5, 3.0, 0.1, 1.0),
    'sharpening.detail': ParamRange(0, 100, 1, 25),
    'noise_reduction.luminance': ParamRange(0, 100, 1, 0),
    'noise_reduction.color': ParamRange(0, 100, 1, 0),
    'vignette.amount': ParamRange(-100, 100, 1, 0),
    'vignette.midpoint': ParamRange(0, 100, 1, 50),
    'vignette.roundness': ParamRange(-100, 100, 1, 0),
    'vignette.feather': ParamRange(0, 100, 1, 50),
    'hsl': ParamRange(-100, 100, 1, 0),
    'color_grading.hue': ParamRange(0, 360, 1, 0),
    'color_grading.saturation': ParamRange(0, 100, 1, 0),
    'color_grading.luminance': ParamRange(-100, 100, 1, 0),
    'crop.rotation': ParamRange(-45, 45, 0.1, 0),
}

HSL_BANDS = ('Red', 'Orange', 'Yellow', 'Green', 'Aqua', 'Blue', 'Purple', 'Magenta')
HSL_BAND_CENTERS = (0.0, 30.0, 60.0, 120.0, 180.0, 240.0, 270.0, 300.0)


def clamp_param(name: str, value: Any, current: Optional[float] = None) -> float:
    """
    Clamp a user-supplied value into the valid range of ``name``.

    Malformed input (non-numeric, NaN) falls back to ``current`` when given,
    otherwise to the parameter default. Out-of-range input is clamped, never
    rejected.
    """
    rng = PARAM_RANGES[name]
    fallback = rng.default if current is None else current
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring malformed value for {name}: {value!r}")
        return fallback
    if math.isnan(number):
        return fallback
    return rng.clamp(number)


@dataclass(frozen=True)
class CurvePoint:
    """A tone curve control point, both coordinates in [0, 1]."""
    x: float
    y: float


def _identity_curve() -> Tuple[CurvePoint, ...]:
    return (CurvePoint(0.0, 0.0), CurvePoint(1.0, 1.0))


def _zero_bands() -> Tuple[float, ...]:
    return tuple(0.0 for _ in HSL_BANDS)


def normalize_curve(points: Sequence[Union[CurvePoint, Tuple[float, float], Dict[str, float]]]
                    ) -> Tuple[CurvePoint, ...]:
    """
    Normalise user-drawn control points into a valid tone curve.

    Points are clamped to [0, 1], sorted by x, duplicate x values collapse to
    the last one given, and the end points are pinned to x=0 and x=1.

    Raises:
        ValueError: if fewer than two distinct points remain
    """
    by_x: Dict[float, float] = {}
    for point in points:
        if isinstance(point, CurvePoint):
            x, y = point.x, point.y
        elif isinstance(point, dict):
            x, y = point['x'], point['y']
        else:
            x, y = point
        by_x[min(1.0, max(0.0, float(x)))] = min(1.0, max(0.0, float(y)))

    if len(by_x) < 2:
        raise ValueError("A tone curve needs at least two control points")

    ordered = sorted(by_x.items())
    ordered[0] = (0.0, ordered[0][1])
    ordered[-1] = (1.0, ordered[-1][1])
    return tuple(CurvePoint(x, y) for x, y in ordered)


@dataclass(frozen=True)
class ToneCurves:
    """RGB curve plus one curve per channel."""
    rgb: Tuple[CurvePoint, ...] = field(default_factory=_identity_curve)
    red: Tuple[CurvePoint, ...] = field(default_factory=_identity_curve)
    green: Tuple[CurvePoint, ...] = field(default_factory=_identity_curve)
    blue: Tuple[CurvePoint, ...] = field(default_factory=_identity_curve)


@dataclass(frozen=True)
class HSLAdjustment:
    """Eight-band hue/saturation/luminance shifts, one entry per HSL_BANDS."""
    hue: Tuple[float, ...] = field(default_factory=_zero_bands)
    saturation: Tuple[float, ...] = field(default_factory=_zero_bands)
    luminance: Tuple[float, ...] = field(default_factory=_zero_bands)

    def is_neutral(self) -> bool:
        return not any(self.hue) and not any(self.saturation) and not any(self.luminance)


@dataclass(frozen=True)
class GradingZone:
    hue: float = 0.0
    saturation: float = 0.0
    luminance: float = 0.0

    def is_neutral(self) -> bool:
        return self.saturation == 0 and self.luminance == 0


@dataclass(frozen=True)
class ColorGrading:
    """Colour wheels for shadows, midtones, highlights and the whole image."""
    shadows: GradingZone = field(default_factory=GradingZone)
    midtones: GradingZone = field(default_factory=GradingZone)
    highlights: GradingZone = field(default_factory=GradingZone)
    global_: GradingZone = field(default_factory=GradingZone)

    def is_neutral(self) -> bool:
        return all(zone.is_neutral() for zone in
                   (self.shadows, self.midtones, self.highlights, self.global_))


@dataclass(frozen=True)
class Sharpening:
    amount: float = 0.0
    radius: float = 1.0
    detail: float = 25.0


@dataclass(frozen=True)
class NoiseReduction:
    luminance: float = 0.0
    color: float = 0.0


@dataclass(frozen=True)
class Vignette:
    amount: float = 0.0
    midpoint: float = 50.0
    roundness: float = 0.0
    feather: float = 50.0


@dataclass(frozen=True)
class Crop:
    """Crop rectangle in image-normalised coordinates, rotation in degrees."""
    x: float
    y: float
    width: float
    height: float
    rotation: float = 0.0


@dataclass(frozen=True)
class EditParameters:
    """
    Complete, immutable set of edit parameters for one image.

    Produce modified copies with ``dataclasses.replace`` or a ParamChange;
    instances are never mutated in place.
    """
    # Basic
    temperature: float = 5500.0
    tint: float = 0.0
    exposure: float = 0.0
    contrast: float = 0.0
    highlights: float = 0.0
    shadows: float = 0.0
    whites: float = 0.0
    blacks: float = 0.0

    # Presence
    texture: float = 0.0
    clarity: float = 0.0
    dehaze: float = 0.0
    vibrance: float = 0.0
    saturation: float = 0.0

    tone_curve: ToneCurves = field(default_factory=ToneCurves)
    hsl: HSLAdjustment = field(default_factory=HSLAdjustment)
    color_grading: ColorGrading = field(default_factory=ColorGrading)

    # Detail
    sharpening: Sharpening = field(default_factory=Sharpening)
    noise_reduction: NoiseReduction = field(default_factory=NoiseReduction)

    # Effects
    vignette: Vignette = field(default_factory=Vignette)

    crop: Optional[Crop] = None

    def without_crop(self) -> 'EditParameters':
        return self if self.crop is None else replace(self, crop=None)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible representation with lists for arrays."""
        return {name: _field_to_json(name, getattr(self, name)) for name in FIELD_NAMES}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EditParameters':
        """
        Build parameters from a (possibly partial) JSON dictionary.

        Missing fields keep their defaults and unknown keys are ignored, so
        records written by other versions still load. A field whose value
        cannot be parsed is logged and left at its default.
        """
        values = {}
        for name in FIELD_NAMES:
            if name not in data:
                continue
            try:
                values[name] = _field_from_json(name, data[name])
            except (TypeError, ValueError, KeyError, AttributeError) as e:
                logger.warning(f"Ignoring malformed edit field {name!r}: {e}")
        return cls(**values)


SCALAR_FIELDS = (
    'temperature', 'tint', 'exposure', 'contrast', 'highlights', 'shadows',
    'whites', 'blacks', 'texture', 'clarity', 'dehaze', 'vibrance', 'saturation',
)
FIELD_NAMES = SCALAR_FIELDS + (
    'tone_curve', 'hsl', 'color_grading', 'sharpening', 'noise_reduction',
    'vignette', 'crop',
)
CURVE_CHANNELS = ('rgb', 'red', 'green', 'blue')
GRADING_ZONES = ('shadows', 'midtones', 'highlights', 'global')


def create_default() -> EditParameters:
    """Return a fresh default parameter set."""
    return EditParameters()


def _curve_to_json(points: Tuple[CurvePoint, ...]):
    return [{'x': p.x, 'y': p.y} for p in points]


def _field_to_json(name: str, value: Any) -> Any:
    if name in SCALAR_FIELDS:
        return value
    if name == 'tone_curve':
        return {channel: _curve_to_json(getattr(value, channel)) for channel in CURVE_CHANNELS}
    if name == 'hsl':
        return {
            'hue': list(value.hue),
            'saturation': list(value.saturation),
            'luminance': list(value.luminance),
        }
    if name == 'color_grading':
        return {
            zone: {
                'hue': getattr(value, _zone_attr(zone)).hue,
                'saturation': getattr(value, _zone_attr(zone)).saturation,
                'luminance': getattr(value, _zone_attr(zone)).luminance,
            }
            for zone in GRADING_ZONES
        }
    if name == 'crop':
        if value is None:
            return None
        return {'x': value.x, 'y': value.y, 'width': value.width,
                'height': value.height, 'rotation': value.rotation}
    # sharpening, noise_reduction, vignette are flat records
    return dict(value.__dict__)


def _zone_attr(zone: str) -> str:
    return 'global_' if zone == 'global' else zone


def _merge_record(cls, data: Dict[str, Any]):
    defaults = cls()
    known = {k: v for k, v in data.items() if k in defaults.__dict__}
    return replace(defaults, **{k: float(v) for k, v in known.items()})


def _field_from_json(name: str, value: Any) -> Any:
    if name in SCALAR_FIELDS:
        return float(value)
    if name == 'tone_curve':
        curves = {channel: normalize_curve(value[channel])
                  for channel in CURVE_CHANNELS if channel in value}
        return ToneCurves(**curves)
    if name == 'hsl':
        bands = {}
        for component in ('hue', 'saturation', 'luminance'):
            if component in value:
                entries = [float(v) for v in value[component]][:len(HSL_BANDS)]
                entries += [0.0] * (len(HSL_BANDS) - len(entries))
                bands[component] = tuple(entries)
        return HSLAdjustment(**bands)
    if name == 'color_grading':
        zones = {_zone_attr(zone): _merge_record(GradingZone, value[zone])
                 for zone in GRADING_ZONES if zone in value}
        return ColorGrading(**zones)
    if name == 'sharpening':
        return _merge_record(Sharpening, value)
    if name == 'noise_reduction':
        return _merge_record(NoiseReduction, value)
    if name == 'vignette':
        return _merge_record(Vignette, value)
    if name == 'crop':
        if value is None:
            return None
        return Crop(x=float(value['x']), y=float(value['y']),
                    width=float(value['width']), height=float(value['height']),
                    rotation=float(value.get('rotation', 0.0)))
    raise KeyError(name)


# ---------------------------------------------------------------------------
# Typed changes
# ---------------------------------------------------------------------------

class Scalar(Enum):
    """Top-level slider parameters."""
    TEMPERATURE = 'temperature'
    TINT = 'tint'
    EXPOSURE = 'exposure'
    CONTRAST = 'contrast'
    HIGHLIGHTS = 'highlights'
    SHADOWS = 'shadows'
    WHITES = 'whites'
    BLACKS = 'blacks'
    TEXTURE = 'texture'
    CLARITY = 'clarity'
    DEHAZE = 'dehaze'
    VIBRANCE = 'vibrance'
    SATURATION = 'saturation'


class GroupField(Enum):
    """Fields of the flat detail/effect records, valued (record, attribute)."""
    SHARPENING_AMOUNT = ('sharpening', 'amount')
    SHARPENING_RADIUS = ('sharpening', 'radius')
    SHARPENING_DETAIL = ('sharpening', 'detail')
    NOISE_LUMINANCE = ('noise_reduction', 'luminance')
    NOISE_COLOR = ('noise_reduction', 'color')
    VIGNETTE_AMOUNT = ('vignette', 'amount')
    VIGNETTE_MIDPOINT = ('vignette', 'midpoint')
    VIGNETTE_ROUNDNESS = ('vignette', 'roundness')
    VIGNETTE_FEATHER = ('vignette', 'feather')

    @property
    def path(self) -> str:
        return f"{self.value[0]}.{self.value[1]}"


class CurveChannel(Enum):
    RGB = 'rgb'
    RED = 'red'
    GREEN = 'green'
    BLUE = 'blue'


class HslComponent(Enum):
    HUE = 'hue'
    SATURATION = 'saturation'
    LUMINANCE = 'luminance'


class Zone(Enum):
    SHADOWS = 'shadows'
    MIDTONES = 'midtones'
    HIGHLIGHTS = 'highlights'
    GLOBAL = 'global'


class ZoneField(Enum):
    HUE = 'hue'
    SATURATION = 'saturation'
    LUMINANCE = 'luminance'


def _format_value(name: str, value: float) -> str:
    rng = PARAM_RANGES[name]
    decimals = 2 if rng.step < 0.1 else 1 if rng.step < 1 else 0
    text = f"{value:.{decimals}f}"
    if rng.min < 0 and value > 0:
        text = '+' + text
    return text


def _title(name: str) -> str:
    return name.replace('_', ' ').title()


class ParamChange:
    """
    One leaf-level edit. Subclasses carry a typed target and value.

    ``key`` identifies the leaf for debounced grouping: consecutive changes
    with the same key collapse into one history entry.
    """

    @property
    def key(self) -> str:
        raise NotImplementedError

    def apply(self, params: EditParameters) -> EditParameters:
        raise NotImplementedError

    def label(self, params: EditParameters) -> str:
        """History label describing this change resolved against ``params``."""
        raise NotImplementedError


@dataclass(frozen=True)
class ScalarChange(ParamChange):
    param: Scalar
    value: Any

    @property
    def key(self) -> str:
        return self.param.value

    def apply(self, params):
        name = self.param.value
        return replace(params, **{name: clamp_param(name, self.value, getattr(params, name))})

    def label(self, params):
        name = self.param.value
        return f"{_title(name)} {_format_value(name, getattr(params, name))}"


@dataclass(frozen=True)
class GroupChange(ParamChange):
    param: GroupField
    value: Any

    @property
    def key(self) -> str:
        return self.param.path

    def apply(self, params):
        record_name, attr = self.param.value
        record = getattr(params, record_name)
        value = clamp_param(self.param.path, self.value, getattr(record, attr))
        return replace(params, **{record_name: replace(record, **{attr: value})})

    def label(self, params):
        record_name, attr = self.param.value
        value = getattr(getattr(params, record_name), attr)
        return f"{_title(record_name)} {_title(attr)} {_format_value(self.param.path, value)}"


@dataclass(frozen=True)
class CurveChange(ParamChange):
    channel: CurveChannel
    points: Tuple[Any, ...]

    @property
    def key(self) -> str:
        return f"tone_curve.{self.channel.value}"

    def apply(self, params):
        curve = normalize_curve(self.points)
        curves = replace(params.tone_curve, **{self.channel.value: curve})
        return replace(params, tone_curve=curves)

    def label(self, params):
        channel = 'RGB' if self.channel is CurveChannel.RGB else _title(self.channel.value)
        return f"Tone Curve ({channel})"


@dataclass(frozen=True)
class HslChange(ParamChange):
    component: HslComponent
    band: int
    value: Any

    def __post_init__(self):
        if not 0 <= self.band < len(HSL_BANDS):
            raise ValueError(f"HSL band out of range: {self.band}")

    @property
    def key(self) -> str:
        return f"hsl.{self.component.value}.{self.band}"

    def apply(self, params):
        bands = list(getattr(params.hsl, self.component.value))
        bands[self.band] = clamp_param('hsl', self.value, bands[self.band])
        hsl = replace(params.hsl, **{self.component.value: tuple(bands)})
        return replace(params, hsl=hsl)

    def label(self, params):
        value = getattr(params.hsl, self.component.value)[self.band]
        return (f"HSL {_title(self.component.value)}: {HSL_BANDS[self.band]} "
                f"{_format_value('hsl', value)}")


@dataclass(frozen=True)
class GradingChange(ParamChange):
    zone: Zone
    param: ZoneField
    value: Any

    @property
    def key(self) -> str:
        return f"color_grading.{self.zone.value}.{self.param.value}"

    def apply(self, params):
        attr = _zone_attr(self.zone.value)
        zone = getattr(params.color_grading, attr)
        name = f"color_grading.{self.param.value}"
        value = clamp_param(name, self.value, getattr(zone, self.param.value))
        grading = replace(params.color_grading, **{attr: replace(zone, **{self.param.value: value})})
        return replace(params, color_grading=grading)

    def label(self, params):
        zone = getattr(params.color_grading, _zone_attr(self.zone.value))
        value = getattr(zone, self.param.value)
        return (f"Color Grading: {_title(self.zone.value)} {_title(self.param.value)} "
                f"{_format_value(f'color_grading.{self.param.value}', value)}")


@dataclass(frozen=True)
class CropChange(ParamChange):
    crop: Optional[Crop]

    @property
    def key(self) -> str:
        return 'crop'

    def apply(self, params):
        if self.crop is None:
            return replace(params, crop=None)
        x = min(1.0, max(0.0, self.crop.x))
        y = min(1.0, max(0.0, self.crop.y))
        crop = Crop(
            x=x,
            y=y,
            width=min(1.0 - x, max(0.0, self.crop.width)),
            height=min(1.0 - y, max(0.0, self.crop.height)),
            rotation=clamp_param('crop.rotation', self.crop.rotation, 0.0),
        )
        return replace(params, crop=crop)

    def label(self, params):
        return 'Crop' if params.crop is not None else 'Clear Crop'
