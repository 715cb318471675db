"""
Environment-driven settings for tmpo
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

APP_DIR_NAME = ".tmpo"
DB_FILE_NAME = "tmpo.db"
PROJECT_FILE_NAME = ".tmporc"
DEFAULT_RELEASES_URL = "https://api.github.com/repos/DylanDevelops/tmpo/releases/latest"

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in _TRUTHY


def data_dir() -> Path:
    """Directory holding the entry database.

    ``TMPO_HOME`` wins; otherwise ``~/.tmpo``. Raises RuntimeError when the
    home directory cannot be determined.
    """
    override = os.getenv("TMPO_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / APP_DIR_NAME


def db_path(directory: Optional[Path] = None) -> Path:
    return (directory or data_dir()) / DB_FILE_NAME


def debug_enabled() -> bool:
    return _flag("TMPO_DEBUG")


def update_check_enabled() -> bool:
    return not _flag("TMPO_NO_UPDATE_CHECK")


def releases_url() -> str:
    return os.getenv("TMPO_RELEASES_URL", DEFAULT_RELEASES_URL)
