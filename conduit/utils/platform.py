"""Per-OS location of the config directory."""

from __future__ import annotations

import os
import sys
from pathlib import Path


def get_config_dir() -> Path:
    env = os.environ.get("CONDUIT_CONFIG_DIR")
    if env:
        return Path(env)
    if sys.platform == "win32":
        return Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming")) / "conduit"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "conduit"
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "conduit"
