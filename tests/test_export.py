"""
Tests for JPEG export and borders.
"""

import io

import pytest
import numpy as np
from PIL import Image
from dataclasses import replace

from lumen.engine.pipeline import ColorPipeline
from lumen.io.export import (
    ExportOptions, calc_border_dimensions, add_border, encode_jpeg, export_image, write_export,
)
from lumen.processing.edits import create_default, Crop


class TestExportOptions:
    """Test option validation."""

    def test_defaults(self):
        options = ExportOptions()
        assert options.quality == 92
        assert options.border == 'none'
        assert options.border_width == 0.0

    def test_quality_clamped(self):
        assert ExportOptions(quality=250).quality == 100
        assert ExportOptions(quality=0).quality == 1

    def test_border_width_clamped(self):
        assert ExportOptions(border='white', border_width=55).border_width == 20.0
        assert ExportOptions(border='white', border_width=-3).border_width == 0.0

    def test_unknown_border(self):
        with pytest.raises(ValueError):
            ExportOptions(border='red')

    def test_from_config_with_overrides(self, config):
        config['export']['quality'] = 80
        options = ExportOptions.from_config(config, border='black', border_width=None)
        assert options.quality == 80
        assert options.border == 'black'
        assert options.border_width == 0.0


class TestBorders:
    """Test border geometry."""

    def test_five_percent_white(self):
        options = ExportOptions(border='white', border_width=5)
        assert calc_border_dimensions(100, 80, options) == (108, 88, 4)

    def test_no_border(self):
        assert calc_border_dimensions(100, 80, ExportOptions()) == (100, 80, 0)
        assert calc_border_dimensions(100, 80, ExportOptions(border='white', border_width=0)) == (100, 80, 0)
        assert calc_border_dimensions(100, 80, ExportOptions(border='none', border_width=10)) == (100, 80, 0)

    def test_add_border_pixels(self):
        image = np.full((80, 100, 3), 128, np.uint8)
        framed = add_border(image, ExportOptions(border='white', border_width=5))
        assert framed.shape == (88, 108, 3)
        assert tuple(framed[0, 0]) == (255, 255, 255)
        assert tuple(framed[44, 54]) == (128, 128, 128)

    def test_black_border(self):
        image = np.full((50, 50, 3), 200, np.uint8)
        framed = add_border(image, ExportOptions(border='black', border_width=10))
        assert framed.shape == (60, 60, 3)
        assert tuple(framed[0, 0]) == (0, 0, 0)

    def test_no_border_returns_input(self):
        image = np.zeros((10, 10, 3), np.uint8)
        assert add_border(image, ExportOptions()) is image


class TestEncoding:
    """Test JPEG output."""

    def test_encode_preserves_channel_order(self):
        image = np.zeros((32, 32, 3), np.uint8)
        image[..., 0] = 220
        data = encode_jpeg(image, 95)
        decoded = np.asarray(Image.open(io.BytesIO(data)).convert('RGB'))
        assert decoded[16, 16, 0] > 200
        assert decoded[16, 16, 2] < 30

    def test_export_image_applies_crop_and_border(self, gradient_image):
        params = replace(create_default(), crop=Crop(0.0, 0.0, 0.5, 0.5))
        with ColorPipeline() as pipeline:
            data = export_image(pipeline, params, gradient_image,
                                ExportOptions(border='white', border_width=10))
        with Image.open(io.BytesIO(data)) as img:
            assert img.format == 'JPEG'
            # 32x24 crop, 10% of 24 rounds to 2 px per side
            assert img.size == (36, 28)

    def test_write_export_creates_folders(self, tmp_path):
        path = write_export(tmp_path / 'exports' / 'a.jpg', b'\xff\xd8\xff\xd9')
        assert path.read_bytes() == b'\xff\xd8\xff\xd9'
