"""
User data layout under ``~/.fdc3hub``
"""

from pathlib import Path
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class UserDataManager:
    """
    Owns the broker's on-disk locations:
    - config
    - logs
    """

    def __init__(self, hub_home: Optional[Path] = None):
        self.hub_home = hub_home or Path("~/.fdc3hub").expanduser()

    @property
    def config_path(self) -> Path:
        """Main config file path"""
        return self.hub_home / "config.yaml"

    @property
    def logs_dir(self) -> Path:
        return self.hub_home / "logs"

    @property
    def log_file(self) -> Path:
        return self.logs_dir / "fdc3hub.log"

    def ensure_directories(self):
        """Make sure the home and log directories exist."""
        for dir_path in [self.hub_home, self.logs_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Directory ensured: {dir_path}")


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_default_user_data: Optional[UserDataManager] = None


def get_user_data_manager(hub_home: Optional[Path] = None) -> UserDataManager:
    """Return the shared UserDataManager singleton.

    On first call the instance is created (optionally with *hub_home*).
    Subsequent calls return the cached instance regardless of *hub_home*.
    """
    global _default_user_data
    if _default_user_data is None:
        _default_user_data = UserDataManager(hub_home=hub_home)
    return _default_user_data


def reset_user_data_manager() -> None:
    """Reset the singleton (mainly for tests)."""
    global _default_user_data
    _default_user_data = None
