"""
Tests for tone curve lookup-table baking.
"""

import pytest
import numpy as np

from lumen.processing.curves import bake_curve_lut, apply_lut, identity_lut
from lumen.processing.edits import CurvePoint


class TestBakeCurveLut:
    """Test curve sampling."""

    def test_diagonal_is_identity(self):
        """Two-point diagonal bakes to the identity ramp."""
        lut = bake_curve_lut([(0.0, 0.0), (1.0, 1.0)])
        assert lut.shape == (256,)
        assert lut[0] == pytest.approx(0.0, abs=1e-6)
        assert lut[-1] == pytest.approx(1.0, abs=1e-6)
        assert lut[128] == pytest.approx(128 / 255, abs=1e-5)
        np.testing.assert_allclose(lut, identity_lut(256), atol=1e-6)

    def test_flat_curve(self):
        lut = bake_curve_lut([(0.0, 0.5), (1.0, 0.5)])
        np.testing.assert_allclose(lut, 0.5)

    def test_single_point_gives_identity(self):
        lut = bake_curve_lut([(0.3, 0.9)])
        np.testing.assert_allclose(lut, identity_lut(256), atol=1e-6)

    def test_empty_gives_identity(self):
        np.testing.assert_allclose(bake_curve_lut([], size=16), identity_lut(16), atol=1e-6)

    def test_unsorted_points(self):
        """Point order does not matter."""
        a = bake_curve_lut([(1.0, 1.0), (0.0, 0.0), (0.5, 0.8)])
        b = bake_curve_lut([(0.0, 0.0), (0.5, 0.8), (1.0, 1.0)])
        np.testing.assert_allclose(a, b)

    def test_clamps_outside_point_range(self):
        """Samples before the first or after the last x take the end point's y."""
        lut = bake_curve_lut([(0.25, 0.2), (0.75, 0.6)], size=101)
        assert lut[0] == pytest.approx(0.2)
        assert lut[20] == pytest.approx(0.2)
        assert lut[100] == pytest.approx(0.6)
        assert lut[90] == pytest.approx(0.6)
        assert lut[50] == pytest.approx(0.4, abs=1e-6)

    def test_linear_interpolation_between_points(self):
        lut = bake_curve_lut([(0.0, 0.0), (0.5, 1.0), (1.0, 1.0)], size=11)
        assert lut[2] == pytest.approx(0.4, abs=1e-6)
        assert lut[5] == pytest.approx(1.0, abs=1e-6)
        assert lut[8] == pytest.approx(1.0, abs=1e-6)

    def test_accepts_curve_points_and_dicts(self):
        a = bake_curve_lut([CurvePoint(0.0, 0.1), CurvePoint(1.0, 0.9)])
        b = bake_curve_lut([{'x': 0.0, 'y': 0.1}, {'x': 1.0, 'y': 0.9}])
        np.testing.assert_allclose(a, b)

    def test_custom_size(self):
        assert bake_curve_lut([(0, 0), (1, 1)], size=1024).shape == (1024,)

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            bake_curve_lut([(0, 0), (1, 1)], size=1)

    def test_values_stay_in_unit_range(self):
        lut = bake_curve_lut([(0.0, 0.0), (0.5, 1.0), (1.0, 0.0)])
        assert lut.min() >= 0.0
        assert lut.max() <= 1.0
        assert lut.dtype == np.float32

    def test_deterministic(self):
        points = [(0.0, 0.1), (0.3, 0.5), (1.0, 0.95)]
        np.testing.assert_array_equal(bake_curve_lut(points), bake_curve_lut(points))


class TestApplyLut:
    """Test LUT evaluation."""

    def test_identity_lut_is_noop(self):
        values = np.linspace(0, 1, 37, dtype=np.float32)
        np.testing.assert_allclose(apply_lut(values, identity_lut()), values, atol=1e-6)

    def test_inverting_lut(self):
        lut = bake_curve_lut([(0.0, 1.0), (1.0, 0.0)])
        values = np.array([0.0, 0.25, 1.0], dtype=np.float32)
        np.testing.assert_allclose(apply_lut(values, lut), [1.0, 0.75, 0.0], atol=1e-5)
