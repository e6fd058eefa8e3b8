"""
Engine configuration loaded from config/engine.yaml.

Missing files and missing keys fall back to the module defaults.
"""

import logging
import os
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_DIFFERENCE_THRESHOLD = 0.001
DEFAULT_MAX_RUNS = 100
DEFAULT_LOGGING_LEVEL = "INFO"

CONFIG_FILE = "config/engine.yaml"


def load_engine_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load engine configuration from config/engine.yaml.

    Args:
        path: Explicit config file; searched for under the working directory
            and the repository root when omitted

    Returns:
        Config dict or empty dict if file not found
    """
    if path is not None:
        config_paths = [path]
    else:
        config_paths = [
            CONFIG_FILE,
            os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))), CONFIG_FILE),
        ]

    for config_path in config_paths:
        if os.path.exists(config_path):
            try:
                with open(config_path, 'r') as f:
                    return yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load engine config from {config_path}: {e}")

    return {}


def get_em_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Get EM settings, preferring config/engine.yaml over defaults.

    Returns:
        Dict with difference_threshold and max_runs
    """
    em_config = load_engine_config(path).get('em') or {}

    return {
        'difference_threshold': float(em_config.get('difference_threshold', DEFAULT_DIFFERENCE_THRESHOLD)),
        'max_runs': int(em_config.get('max_runs', DEFAULT_MAX_RUNS)),
    }


def get_logging_level(path: Optional[str] = None) -> int:
    """Root log level from config/engine.yaml as a logging constant."""
    name = (load_engine_config(path).get('logging') or {}).get('level', DEFAULT_LOGGING_LEVEL)
    level = logging.getLevelName(str(name).upper())
    if not isinstance(level, int):
        logger.warning(f"Unknown logging level {name!r}, using {DEFAULT_LOGGING_LEVEL}")
        return logging.INFO
    return level
