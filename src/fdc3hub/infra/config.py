"""
Configuration management
"""

from pathlib import Path
from typing import Dict, Any, Optional
import copy
import yaml
import logging

from .system_channels import DEFAULT_SYSTEM_CHANNELS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.fdc3hub/config.yaml"


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the configuration file.

    Args:
        config_path: Config file path; the default path is used when None.

    Returns:
        Config dict. Missing sections are filled from the defaults.
    """
    path = Path(config_path or DEFAULT_CONFIG_PATH).expanduser()

    if not path.exists():
        logger.warning(f"Config file not found: {path}, using defaults")
        return get_default_config()

    try:
        with open(path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
        logger.info(f"Config loaded: {path}")
        return _merge_defaults(config, get_default_config())
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        return get_default_config()


def get_default_config() -> Dict[str, Any]:
    """
    Default configuration.

    Returns:
        Default config dict
    """
    return {
        "fdc3hub": {
            "web": {
                "host": "127.0.0.1",
                "port": 8765,
                "api_key": "",
            },
            "directory": {
                "url": "http://localhost:3000/directory.json",
                "file": "",
                "timeout": 10,
            },
            "channels": copy.deepcopy(DEFAULT_SYSTEM_CHANNELS),
            "intents": {
                "strict_templates": True,
            },
        },
        "logging": {
            "level": "INFO",
            "file": "~/.fdc3hub/logs/fdc3hub.log",
        },
    }


def _merge_defaults(config: Dict[str, Any], defaults: Dict[str, Any]) -> Dict[str, Any]:
    """Fill keys missing from *config* with *defaults*, recursively for dicts."""
    merged = dict(config)
    for key, value in defaults.items():
        if key not in merged or merged[key] is None:
            merged[key] = value
        elif isinstance(value, dict) and isinstance(merged[key], dict):
            merged[key] = _merge_defaults(merged[key], value)
    return merged


def save_config(config: Dict[str, Any], config_path: Optional[str] = None):
    """
    Save the configuration file.

    Args:
        config: Config dict
        config_path: Config file path; the default path is used when None.
    """
    path = Path(config_path or DEFAULT_CONFIG_PATH).expanduser()

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(config, f, default_flow_style=False, allow_unicode=True)
        logger.info(f"Config saved: {path}")
    except Exception as e:
        logger.error(f"Failed to save config: {e}")
        raise


# ---------------------------------------------------------------------------
# Module-level cached config
# ---------------------------------------------------------------------------

_cached_config: Optional[Dict[str, Any]] = None
_cached_config_path: Optional[str] = None


def get_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Return a cached config dict, loading from disk on first call.

    If an explicit *config_path* differs from the cached path the config is
    reloaded automatically; None reuses whatever is cached.
    """
    global _cached_config, _cached_config_path
    if _cached_config is None or (config_path is not None and config_path != _cached_config_path):
        _cached_config = load_config(config_path)
        _cached_config_path = config_path
    return _cached_config


def reload_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Force-reload config from disk and update the cache."""
    global _cached_config, _cached_config_path
    _cached_config = load_config(config_path)
    _cached_config_path = config_path
    return _cached_config


def reset_config_cache() -> None:
    """Clear the cached config (mainly for tests)."""
    global _cached_config, _cached_config_path
    _cached_config = None
    _cached_config_path = None


def hub_section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Return ``config["fdc3hub"][name]`` as a dict, tolerating gaps."""
    section = (config.get("fdc3hub", {}) or {}).get(name, {})
    return section if isinstance(section, dict) else {}
