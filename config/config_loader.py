"""
config_loader.py
-----------------
Singleton config loader. Reads config.yaml once and caches it.
Detection tolerances, integration endpoints and export layout are all read
through here.
"""

import os
import yaml
from typing import Any, Dict


_CONFIG_CACHE: Dict[str, Any] = {}


def load_config(config_path: str | None = None) -> Dict[str, Any]:
    """
    Load and cache the YAML configuration file.

    Args:
        config_path: Path to config.yaml. Defaults to config/ relative to this file.

    Returns:
        Full config dictionary.
    """
    global _CONFIG_CACHE

    if _CONFIG_CACHE:
        return _CONFIG_CACHE

    if config_path is None:
        config_path = os.path.join(os.path.dirname(__file__), "config.yaml")

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r") as f:
        _CONFIG_CACHE = yaml.safe_load(f)

    return _CONFIG_CACHE


def get_duplicate_detection_config() -> Dict[str, Any]:
    """Returns the duplicate_detection block."""
    return load_config()["duplicate_detection"]


def get_default_exclusion_rules() -> list[Dict[str, Any]]:
    """Returns the default exclusion rule records (may be empty)."""
    return load_config().get("exclusion_rules") or []


def get_integration_config(source: str) -> Dict[str, Any]:
    """
    Returns the config block for one accounting integration.

    Raises:
        KeyError: If the source is not configured.
    """
    integrations = load_config()["integrations"]
    if source not in integrations:
        raise KeyError(
            f"No integration config for '{source}'. "
            f"Available: {list(integrations.keys())}"
        )
    return integrations[source]


def get_scan_schedule_config() -> Dict[str, Any]:
    """Returns the scan_schedule block."""
    return load_config()["scan_schedule"]


def get_export_config() -> Dict[str, Any]:
    """Returns the export block."""
    return load_config()["export"]


def reset_config() -> None:
    """Clears cached config. Useful for testing."""
    global _CONFIG_CACHE
    _CONFIG_CACHE = {}
