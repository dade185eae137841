"""
Configuration Management Module

Handles loading, validating, and updating application configuration from config.json
Supports merging with defaults
"""

import copy
import json
from pathlib import Path
import logging

logger = logging.getLogger("psx_tax_engine")

DEFAULT_CONFIG = {
    "ledger": {
        "default_fee_percent": 0.5,
        "settlement_days": 2,
    },
    "tax": {
        "filer": False,
    },
    "storage": {
        "data_file": "data/psx_tax_data.json",
        "backup_dir": "data/backups",
        "keep_backups": 5,
        "auto_backup": True,
    },
}


def _config_path(config_file=None) -> Path:
    if config_file is not None:
        return Path(config_file)
    from .constants import CONFIG_FILE
    return CONFIG_FILE


def load_config(config_file=None):
    """
    Load configuration from config.json with sensible defaults

    Args:
        config_file: Optional path overriding configs/config.json

    Returns:
        dict: Configuration dictionary
    """
    path = _config_path(config_file)
    defaults = copy.deepcopy(DEFAULT_CONFIG)

    if not path.exists():
        _save_config(path, defaults)
        return defaults

    try:
        with open(path, 'r') as f:
            config = json.load(f)

        if not isinstance(config, dict):
            raise ValueError("top-level value must be an object")

        # Merge with defaults to ensure all keys exist
        merged = _deep_merge(defaults, config)

        # Save merged config back if anything was added
        if merged != config:
            _save_config(path, merged)

        return merged
    except json.JSONDecodeError as e:
        logger.error(f"Config file corrupted: {e}. Using defaults.")
        return defaults
    except (OSError, ValueError) as e:
        logger.error(f"Error loading config: {e}. Using defaults.")
        return defaults


def save_config(config: dict, config_file=None):
    """Persist a full configuration dictionary."""
    _save_config(_config_path(config_file), config)


def _deep_merge(defaults: dict, override: dict) -> dict:
    """
    Deep merge override config into defaults, preserving new defaults

    Args:
        defaults: Default configuration
        override: User-provided configuration

    Returns:
        dict: Merged configuration
    """
    result = defaults.copy()
    for key, value in override.items():
        if key in defaults and isinstance(defaults[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(defaults[key], value)
        else:
            result[key] = value
    return result


def _save_config(config_file: Path, config: dict):
    """
    Save configuration to file

    Args:
        config_file: Path to config file
        config: Configuration dictionary
    """
    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, 'w') as f:
            json.dump(config, f, indent=4)
    except OSError as e:
        logger.error(f"Failed to save config: {e}")
