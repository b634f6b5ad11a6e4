"""
Configuration management module for the budget tracker.

Loads YAML configuration merged over built-in defaults and saves user
preferences back to disk.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from exceptions import ConfigError

logger = logging.getLogger(__name__)

# Default configuration values
DEFAULT_CONFIG: Dict[str, Any] = {
    "database": {
        "data_dir": "data",
        "path": "budget.db",
    },
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    },
    "ledger": {
        "recent_limit": 100,
        "trend_months": 12,
    },
    "display": {
        "currency_symbol": "৳",
        "uncategorized_label": "Uncategorized",
        "uncategorized_color": "#9ca3af",
    },
}

CONFIG_FILE = "config.yaml"


def _merge(defaults: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Union[str, Path] = CONFIG_FILE) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    A missing file is not an error: the defaults are returned.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Configuration dictionary with defaults for missing values

    Raises:
        ConfigError: If the file cannot be read or is not a YAML mapping
    """
    path = Path(config_path)
    if not path.exists():
        logger.info("Config file %s not found; using defaults", path)
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error loading configuration: {e}", exc_info=True)
        raise ConfigError("Failed to load configuration", details={"config_path": str(path)}, original_error=e) from e

    if not isinstance(loaded, dict):
        raise ConfigError("Configuration root must be a mapping", details={"config_path": str(path)})

    config = _merge(DEFAULT_CONFIG, loaded)
    logger.info("Configuration loaded successfully")
    return config


def save_config(config: Dict[str, Any], config_path: Union[str, Path] = CONFIG_FILE) -> None:
    """
    Save configuration values, preserving keys already present in the file.

    Args:
        config: Configuration values to write
        config_path: Destination YAML file

    Raises:
        ConfigError: If the file cannot be written
    """
    path = Path(config_path)
    try:
        existing: Dict[str, Any] = {}
        if path.exists():
            with open(path, "r", encoding="utf-8") as f:
                existing = yaml.safe_load(f) or {}

        merged = _merge(existing, config)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(merged, f, default_flow_style=False, allow_unicode=True)
        logger.info("Configuration saved successfully")
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error saving configuration: {e}", exc_info=True)
        raise ConfigError("Failed to save configuration", details={"config_path": str(path)}, original_error=e) from e


def get_setting(config: Dict[str, Any], section: str, key: str, default: Any = None) -> Any:
    """Read ``config[section][key]`` falling back to DEFAULT_CONFIG, then ``default``."""
    value = config.get(section, {}).get(key)
    if value is None:
        value = DEFAULT_CONFIG.get(section, {}).get(key, default)
    return value
