"""
Tests for configuration loading and logging helpers.
"""

import logging

import pytest

from lumen.config import load_config, get_default_config
from lumen.utils.logging import StructuredLogger, setup_console_logging


class TestConfig:
    """Test configuration loading."""

    def test_packaged_config_matches_defaults(self):
        assert load_config() == get_default_config()

    def test_partial_override_keeps_defaults(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text("history:\n  capacity: 10\nexport:\n  border: white\n")
        config = load_config(path)
        assert config['history']['capacity'] == 10
        assert config['history']['debounce_seconds'] == 0.5
        assert config['export']['border'] == 'white'
        assert config['decoder']['dcraw_path'] == 'dcraw'

    def test_env_expansion(self, tmp_path, monkeypatch):
        monkeypatch.setenv('LUMEN_TEST_DCRAW', '/opt/bin/dcraw')
        path = tmp_path / 'config.yaml'
        path.write_text("decoder:\n  dcraw_path: ${LUMEN_TEST_DCRAW}\n")
        assert load_config(path)['decoder']['dcraw_path'] == '/opt/bin/dcraw'

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(tmp_path / 'nope.yaml') == get_default_config()

    def test_invalid_yaml_gives_defaults(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text("- just\n- a list\n")
        assert load_config(path) == get_default_config()

    def test_defaults_are_fresh_copies(self):
        config = get_default_config()
        config['history']['capacity'] = 1
        assert get_default_config()['history']['capacity'] == 100


class TestLogging:
    """Test logging helpers."""

    def test_structured_message(self, caplog):
        slog = StructuredLogger('lumen.test', {'image': 'a.cr2'})
        with caplog.at_level(logging.INFO, logger='lumen.test'):
            slog.info("Decoded", strategy='libraw')
        assert 'Decoded | {"image": "a.cr2", "strategy": "libraw"}' in caplog.text

    def test_bind_adds_metadata(self, caplog):
        slog = StructuredLogger('lumen.test').bind(generation=3)
        with caplog.at_level(logging.WARNING, logger='lumen.test'):
            slog.warning("Stale result")
        assert '"generation": 3' in caplog.text

    def test_plain_message_without_metadata(self, caplog):
        with caplog.at_level(logging.DEBUG, logger='lumen.test'):
            StructuredLogger('lumen.test').debug("plain")
        assert 'plain' in caplog.text
        assert '|' not in caplog.text

    def test_console_setup_replaces_previous_handler(self):
        root = logging.getLogger()
        level = root.level
        try:
            first = setup_console_logging('DEBUG', color=False)
            second = setup_console_logging('WARNING', color=False)
            assert first not in root.handlers
            assert second in root.handlers
            assert root.level == logging.WARNING
        finally:
            root.removeHandler(second)
            root.setLevel(level)
