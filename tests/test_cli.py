"""
Tests for the command line interface.
"""

import json
import logging

import pytest
from click.testing import CliRunner

from lumen import __version__
from lumen.cli import main
from lumen.io.sidecar import serialize_record
from lumen.io.store import FolderEditStore
from lumen.processing.edits import create_default, ScalarChange, Scalar


@pytest.fixture(autouse=True)
def drop_console_handlers():
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, '_lumen_console', False):
            root.removeHandler(handler)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def no_dcraw_config(tmp_path):
    path = tmp_path / 'lumen.yaml'
    path.write_text("decoder:\n  use_dcraw: false\n")
    return str(path)


@pytest.fixture
def raw_file(tmp_path, jpeg_factory, container_factory):
    """A RAW-like container whose only decodable content is an embedded preview."""
    path = tmp_path / 'photos' / 'IMG_0001.CR2'
    path.parent.mkdir()
    path.write_bytes(container_factory(jpeg_factory(160, 120, color=(90, 90, 90))))
    return path


class TestCli:
    """Test CLI commands."""

    def test_version(self, runner):
        result = runner.invoke(main, ['version'])
        assert result.exit_code == 0
        assert f"Lumen v{__version__}" in result.output

    def test_edits_none_saved(self, runner, raw_file):
        result = runner.invoke(main, ['-q', 'edits', str(raw_file)])
        assert result.exit_code == 0
        assert "No edits saved for IMG_0001.CR2" in result.output

    def test_edits_prints_diff(self, runner, raw_file):
        params = ScalarChange(Scalar.EXPOSURE, 1.25).apply(create_default())
        FolderEditStore(raw_file.parent).save(raw_file.name, serialize_record(params))
        result = runner.invoke(main, ['-q', 'edits', str(raw_file)])
        assert result.exit_code == 0
        assert json.loads(result.output) == {'exposure': 1.25}

    def test_edits_corrupt_store(self, runner, raw_file):
        (raw_file.parent / 'lumen-edits.json').write_text('garbage')
        result = runner.invoke(main, ['-q', 'edits', str(raw_file)])
        assert result.exit_code == 1

    def test_info_json(self, runner, raw_file, no_dcraw_config):
        result = runner.invoke(main, ['-q', '-c', no_dcraw_config, 'info', str(raw_file), '--json'])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert set(data) == {'camera', 'iso', 'shutter_speed', 'aperture', 'focal_length',
                             'width', 'height'}

    def test_info_text(self, runner, raw_file, no_dcraw_config):
        result = runner.invoke(main, ['-q', '-c', no_dcraw_config, 'info', str(raw_file)])
        assert result.exit_code == 0
        assert "File:         IMG_0001.CR2" in result.output
        assert "Camera:       unknown" in result.output

    def test_export_from_preview(self, runner, raw_file, no_dcraw_config, tmp_path):
        output = tmp_path / 'out' / 'a.jpg'
        result = runner.invoke(main, ['-q', '-c', no_dcraw_config, 'export', str(raw_file),
                                      str(output), '--border', 'white', '--border-width', '5'])
        assert result.exit_code == 0, result.output
        assert output.read_bytes()[:2] == b'\xff\xd8'

    def test_export_undecodable(self, runner, tmp_path, no_dcraw_config):
        bad = tmp_path / 'bad.nef'
        bad.write_bytes(b'\x00' * 512)
        result = runner.invoke(main, ['-q', '-c', no_dcraw_config, 'export', str(bad),
                                      str(tmp_path / 'bad.jpg')])
        assert result.exit_code == 1
        assert not (tmp_path / 'bad.jpg').exists()

    def test_export_quality_range(self, runner, raw_file, tmp_path):
        result = runner.invoke(main, ['export', str(raw_file), str(tmp_path / 'a.jpg'),
                                      '--quality', '150'])
        assert result.exit_code == 2

    def test_histogram(self, runner, raw_file, no_dcraw_config):
        result = runner.invoke(main, ['-q', '-c', no_dcraw_config, 'histogram', str(raw_file)])
        assert result.exit_code == 0, result.output
        assert "Samples:" in result.output
        assert "Luminance" in result.output
