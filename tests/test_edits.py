"""
Tests for the edit parameter model and typed changes.
"""

import math

import pytest
from dataclasses import FrozenInstanceError

from lumen.processing.edits import (
    EditParameters, create_default, clamp_param, normalize_curve, CurvePoint, Crop,
    ScalarChange, GroupChange, CurveChange, HslChange, GradingChange, CropChange,
    Scalar, GroupField, CurveChannel, HslComponent, Zone, ZoneField, PARAM_RANGES,
)


class TestDefaults:
    """Test default parameter values."""

    def test_neutral_defaults(self):
        params = create_default()
        assert params.temperature == 5500
        assert params.exposure == 0
        assert params.sharpening.radius == 1.0
        assert params.sharpening.detail == 25
        assert params.vignette.midpoint == 50
        assert params.crop is None
        assert params.tone_curve.rgb == (CurvePoint(0.0, 0.0), CurvePoint(1.0, 1.0))
        assert len(params.hsl.hue) == 8

    def test_defaults_are_equal_values(self):
        assert create_default() == create_default()

    def test_immutable(self):
        params = create_default()
        with pytest.raises(FrozenInstanceError):
            params.exposure = 1.0


class TestClamping:
    """Test user input clamping."""

    def test_out_of_range_is_clamped(self):
        assert clamp_param('exposure', 12) == 5
        assert clamp_param('exposure', -12) == -5
        assert clamp_param('temperature', 100) == 2000

    def test_malformed_falls_back_to_current(self):
        assert clamp_param('contrast', 'abc', current=20) == 20
        assert clamp_param('contrast', None, current=-5) == -5

    def test_malformed_falls_back_to_default(self):
        assert clamp_param('sharpening.detail', 'x') == PARAM_RANGES['sharpening.detail'].default

    def test_nan_rejected(self):
        assert clamp_param('exposure', math.nan, current=1.5) == 1.5

    def test_numeric_strings_accepted(self):
        assert clamp_param('exposure', '1.25') == 1.25


class TestNormalizeCurve:
    """Test tone curve normalisation."""

    def test_sorts_and_pins_endpoints(self):
        curve = normalize_curve([(0.9, 0.8), (0.1, 0.2), (0.5, 0.5)])
        assert [p.x for p in curve] == [0.0, 0.5, 1.0]
        assert curve[0].y == 0.2
        assert curve[-1].y == 0.8

    def test_duplicate_x_last_wins(self):
        curve = normalize_curve([(0.0, 0.0), (0.5, 0.2), (0.5, 0.7), (1.0, 1.0)])
        assert len(curve) == 3
        assert curve[1] == CurvePoint(0.5, 0.7)

    def test_clamps_coordinates(self):
        curve = normalize_curve([(-1.0, -0.5), (2.0, 3.0)])
        assert curve == (CurvePoint(0.0, 0.0), CurvePoint(1.0, 1.0))

    def test_too_few_points(self):
        with pytest.raises(ValueError):
            normalize_curve([(0.3, 0.3)])


class TestChanges:
    """Test typed parameter changes."""

    def test_scalar_change_applies_and_clamps(self):
        params = ScalarChange(Scalar.EXPOSURE, 9).apply(create_default())
        assert params.exposure == 5

    def test_scalar_change_label(self):
        change = ScalarChange(Scalar.EXPOSURE, 1.5)
        params = change.apply(create_default())
        assert change.label(params) == 'Exposure +1.50'
        assert change.key == 'exposure'

    def test_negative_label(self):
        change = ScalarChange(Scalar.CONTRAST, -20)
        assert change.label(change.apply(create_default())) == 'Contrast -20'

    def test_temperature_label_has_no_sign(self):
        change = ScalarChange(Scalar.TEMPERATURE, 6500)
        assert change.label(change.apply(create_default())) == 'Temperature 6500'

    def test_group_change(self):
        change = GroupChange(GroupField.SHARPENING_AMOUNT, 50)
        params = change.apply(create_default())
        assert params.sharpening.amount == 50
        assert params.sharpening.radius == 1.0
        assert change.key == 'sharpening.amount'
        assert change.label(params) == 'Sharpening Amount 50'

    def test_group_change_clamps(self):
        params = GroupChange(GroupField.SHARPENING_RADIUS, 10).apply(create_default())
        assert params.sharpening.radius == 3.0

    def test_curve_change_normalises(self):
        change = CurveChange(CurveChannel.RED, ((1.0, 0.9), (0.0, 0.1)))
        params = change.apply(create_default())
        assert params.tone_curve.red == (CurvePoint(0.0, 0.1), CurvePoint(1.0, 0.9))
        assert params.tone_curve.rgb == create_default().tone_curve.rgb
        assert change.label(params) == 'Tone Curve (Red)'
        assert CurveChange(CurveChannel.RGB, ()).label(params) == 'Tone Curve (RGB)'

    def test_hsl_change(self):
        change = HslChange(HslComponent.HUE, 1, 10)
        params = change.apply(create_default())
        assert params.hsl.hue[1] == 10
        assert params.hsl.hue[0] == 0
        assert change.label(params) == 'HSL Hue: Orange +10'
        assert change.key == 'hsl.hue.1'

    def test_hsl_change_rejects_bad_band(self):
        with pytest.raises(ValueError):
            HslChange(HslComponent.SATURATION, 8, 10)

    def test_grading_change(self):
        change = GradingChange(Zone.SHADOWS, ZoneField.HUE, 220)
        params = change.apply(create_default())
        assert params.color_grading.shadows.hue == 220
        assert change.label(params) == 'Color Grading: Shadows Hue 220'

    def test_grading_global_zone(self):
        params = GradingChange(Zone.GLOBAL, ZoneField.SATURATION, 150).apply(create_default())
        assert params.color_grading.global_.saturation == 100

    def test_crop_change_clamps_rect(self):
        change = CropChange(Crop(0.5, 0.5, 0.9, 0.2, rotation=60))
        params = change.apply(create_default())
        assert params.crop.width == pytest.approx(0.5)
        assert params.crop.height == pytest.approx(0.2)
        assert params.crop.rotation == 45
        assert change.label(params) == 'Crop'

    def test_clear_crop(self):
        params = CropChange(Crop(0.1, 0.1, 0.5, 0.5)).apply(create_default())
        params = CropChange(None).apply(params)
        assert params.crop is None

    def test_change_does_not_mutate_input(self):
        original = create_default()
        ScalarChange(Scalar.SHADOWS, 40).apply(original)
        assert original == create_default()


class TestSerialization:
    """Test dict conversion."""

    def test_round_trip(self):
        params = create_default()
        for change in (ScalarChange(Scalar.EXPOSURE, 0.7),
                       HslChange(HslComponent.LUMINANCE, 5, -30),
                       CurveChange(CurveChannel.RGB, ((0, 0.1), (0.5, 0.6), (1, 1))),
                       CropChange(Crop(0.1, 0.2, 0.5, 0.6, 3.5))):
            params = change.apply(params)
        assert EditParameters.from_dict(params.to_dict()) == params

    def test_partial_dict(self):
        params = EditParameters.from_dict({'exposure': 1.0, 'vignette': {'amount': -30}})
        assert params.exposure == 1.0
        assert params.vignette.amount == -30
        assert params.vignette.midpoint == 50

    def test_unknown_keys_ignored(self):
        params = EditParameters.from_dict({'future_field': 3, 'contrast': 10})
        assert params.contrast == 10

    def test_json_shape(self):
        data = create_default().to_dict()
        assert data['crop'] is None
        assert data['tone_curve']['rgb'] == [{'x': 0.0, 'y': 0.0}, {'x': 1.0, 'y': 1.0}]
        assert set(data['color_grading']) == {'shadows', 'midtones', 'highlights', 'global'}
        assert isinstance(data['hsl']['hue'], list)
