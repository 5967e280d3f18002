from __future__ import annotations

import os
from pathlib import Path

from platformdirs import PlatformDirs

APP_NAME = "MixDrop"

# Environment variable overrides (useful for tests and power users)
ENV_SAVE_DIR = "MIXDROP_SAVE_DIR"


def default_save_root() -> Path:
    """Return the directory holding save data.

    Linux: ~/.local/share/MixDrop
    macOS: ~/Library/Application Support/MixDrop
    Windows: %LOCALAPPDATA%\\MixDrop
    """
    override = os.getenv(ENV_SAVE_DIR)
    if override:
        return Path(override).expanduser().resolve()
    dirs = PlatformDirs(appname=APP_NAME, appauthor=False)
    return Path(dirs.user_data_dir)
