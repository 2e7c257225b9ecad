"""Infrastructure layer: config, filesystem layout and directory sources."""

from .config import (
    get_config,
    get_default_config,
    hub_section,
    load_config,
    reload_config,
    reset_config_cache,
    save_config,
)
from .directory_source import HttpDirectorySource, StaticDirectorySource, build_directory_source
from .system_channels import DEFAULT_SYSTEM_CHANNELS, load_channel_definitions
from .user_data import UserDataManager, get_user_data_manager, reset_user_data_manager

__all__ = [
    "DEFAULT_SYSTEM_CHANNELS",
    "HttpDirectorySource",
    "StaticDirectorySource",
    "UserDataManager",
    "build_directory_source",
    "get_config",
    "get_default_config",
    "get_user_data_manager",
    "hub_section",
    "load_channel_definitions",
    "load_config",
    "reload_config",
    "reset_config_cache",
    "reset_user_data_manager",
    "save_config",
]
