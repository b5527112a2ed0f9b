"""
Configuration management for Lumen
"""

import yaml
import os
import re
import copy
from pathlib import Path
from typing import Dict, Any, Optional, Union
import logging

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"


def _expand_env_vars(obj: Union[Dict, Any]) -> Union[Dict, Any]:
    """
    Recursively expand environment variables in config values.
    Supports ${VAR_NAME} syntax.
    """
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        pattern = r'\$\{([^}]+)\}'
        def replace_var(match):
            var_name = match.group(1)
            return os.getenv(var_name, match.group(0))  # Return original if not found
        return re.sub(pattern, replace_var, obj)
    else:
        return obj


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into a copy of ``base``, recursing into dicts."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load configuration from YAML file

    Args:
        config_path: Path to config file. If None, uses the packaged config.yaml

    Returns:
        Configuration dictionary, always containing every default key
    """
    config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        logger.warning(f"Config file not found: {config_path}. Using defaults.")
        return get_default_config()

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f) or {}
        if not isinstance(config, dict):
            raise ValueError("top-level YAML value must be a mapping")
        logger.info(f"Loaded configuration from {config_path}")
        config = _expand_env_vars(config)
        return _deep_merge(get_default_config(), config)
    except Exception as e:
        logger.error(f"Failed to load config from {config_path}: {e}")
        return get_default_config()


def get_default_config() -> Dict[str, Any]:
    """
    Get default configuration values

    Returns:
        Default configuration dictionary
    """
    return {
        'history': {
            'debounce_seconds': 0.5,
            'capacity': 100,
        },
        'autosave': {
            'delay_seconds': 0.5,
            'store_filename': 'lumen-edits.json',
        },
        'histogram': {
            'min_interval_seconds': 0.1,
            'sample_stride': 4,
        },
        'decoder': {
            'full_resolution_pixel_budget': 20_000_000,
            'use_dcraw': True,
            'dcraw_path': 'dcraw',
        },
        'viewport': {
            'full_resolution_zoom': 1.0,
            'min_zoom': 0.1,
            'max_zoom': 20.0,
            'refresh_hz': 60,
        },
        'export': {
            'quality': 92,
            'border': 'none',
            'border_width': 0,
        },
        'logging': {
            'level': 'INFO',
            'color': True,
        },
    }
