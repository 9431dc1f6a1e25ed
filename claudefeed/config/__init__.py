"""Global configuration management.

Config is loaded at module import time and available globally via:
    from claudefeed.config import config
"""

import os
from pathlib import Path

from claudefeed.config.loader import load_feed_config
from claudefeed.config.schema import FeedConfig

_config_path_env = os.getenv("CLAUDEFEED_CONFIG_PATH")
CONFIG_PATH = Path(_config_path_env).expanduser() if _config_path_env else None

config: FeedConfig = load_feed_config(CONFIG_PATH)


def transcripts_root() -> Path:
    """Directory holding one transcript sub-directory per project."""
    return Path(config.transcripts_dir).expanduser()


def tasks_root() -> Path:
    """Directory holding the assistant's per-session working state."""
    return Path(config.tasks_dir).expanduser()


def preferences_root() -> Path:
    """Directory holding hidden.json and names.json."""
    return Path(config.preferences_dir).expanduser()


__all__ = ["config", "CONFIG_PATH", "FeedConfig", "transcripts_root", "tasks_root", "preferences_root"]
