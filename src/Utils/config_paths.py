"""
config_paths.py
Where Reliquary keeps its per-user files: the workspace config and the
LOOT metadata cache.

Layout follows the XDG Base Directory Specification:
  Config lives in $XDG_CONFIG_HOME/ReliquaryModManager  (default: ~/.config/ReliquaryModManager)

$RELIQUARY_CONFIG_DIR overrides the whole location (used by tests and
portable installs).
"""

import os
from pathlib import Path

APP_NAME = "ReliquaryModManager"


def get_config_dir() -> Path:
    """The Reliquary config directory (created on first use).

    Respects $RELIQUARY_CONFIG_DIR, then $XDG_CONFIG_HOME; falls back to
    ~/.config/ReliquaryModManager.
    """
    override = os.environ.get("RELIQUARY_CONFIG_DIR")
    if override:
        config_dir = Path(override)
    else:
        xdg = os.environ.get("XDG_CONFIG_HOME")
        base = Path(xdg) if xdg else Path.home() / ".config"
        config_dir = base / APP_NAME
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_workspace_config_path() -> Path:
    """Return the path to the workspace paths.json.

    Result: ~/.config/ReliquaryModManager/paths.json
    """
    return get_config_dir() / "paths.json"


def get_loot_data_dir() -> Path:
    """Return the LOOT metadata directory (masterlists, prelude, userlists),
    creating it if needed.

    Result: ~/.config/ReliquaryModManager/LOOT/data/
    """
    d = get_config_dir() / "LOOT" / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d
