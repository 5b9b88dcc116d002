"""
workspace.py
Workspace configuration: where mods, downloads, tool assets, the registry and
the virtual Data folder live, and how files are projected into it.

paths.json format:
    {
      "workspace":    "/home/me/Reliquary",
      "game_path":    "/games/Skyrim Special Edition",
      "virtual_data": "/home/me/Reliquary/VirtualData",
      "downloads":    "",
      "deploy_mode":  "copy",
      "seven_zip":    "7z"
    }

Missing keys fall back to defaults.  A missing or malformed file yields the
default config rather than an error; only an empty workspace root is refused
(see WorkspaceConfig.validate).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from Utils.config_paths import get_workspace_config_path
from Utils.deploy import LinkMode

log = logging.getLogger(__name__)

_MODE_NAMES: dict[str, LinkMode] = {
    "copy":     LinkMode.COPY,
    "hardlink": LinkMode.HARDLINK,
    "symlink":  LinkMode.SYMLINK,
}


class ConfigError(Exception):
    """Structurally invalid configuration; nothing can proceed."""


@dataclass
class WorkspaceConfig:
    workspace: Path | None = None
    game_path: Path | None = None
    virtual_data: Path | None = None
    downloads: Path | None = None
    deploy_mode: LinkMode = LinkMode.COPY
    seven_zip: str = "7z"
    extra: dict = field(default_factory=dict)

    # -----------------------------------------------------------------------
    # Derived paths
    # -----------------------------------------------------------------------

    @property
    def mods_root(self) -> Path:
        return self._root() / "Mods"

    @property
    def tools_root(self) -> Path:
        return self._root() / "Tools"

    @property
    def downloads_root(self) -> Path:
        return self.downloads or self._root() / "Downloads"

    @property
    def registry_path(self) -> Path:
        return self._root() / "mods.json"

    @property
    def loadorder_path(self) -> Path:
        return self._root() / "loadorder.txt"

    @property
    def virtual_data_root(self) -> Path:
        return self.virtual_data or self._root() / "VirtualData"

    @property
    def game_data_dir(self) -> Path | None:
        if self.game_path is None:
            return None
        return self.game_path / "Data"

    def _root(self) -> Path:
        self.validate()
        return self.workspace

    # -----------------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------------

    def validate(self) -> None:
        """Raise ConfigError if the config cannot be used at all."""
        if self.workspace is None or not str(self.workspace).strip():
            raise ConfigError("No workspace root configured.")

    def ensure_directories(self) -> None:
        for d in (self._root(), self.mods_root, self.downloads_root,
                  self.virtual_data_root):
            d.mkdir(parents=True, exist_ok=True)


def _opt_path(raw) -> Path | None:
    if isinstance(raw, str) and raw.strip():
        return Path(raw)
    return None


def config_from_dict(data: dict) -> WorkspaceConfig:
    known = {"workspace", "game_path", "virtual_data", "downloads",
             "deploy_mode", "seven_zip"}
    return WorkspaceConfig(
        workspace=_opt_path(data.get("workspace")),
        game_path=_opt_path(data.get("game_path")),
        virtual_data=_opt_path(data.get("virtual_data")),
        downloads=_opt_path(data.get("downloads")),
        deploy_mode=_MODE_NAMES.get(str(data.get("deploy_mode", "copy")).lower(),
                                    LinkMode.COPY),
        seven_zip=str(data.get("seven_zip") or "7z"),
        extra={k: v for k, v in data.items() if k not in known},
    )


def config_to_dict(config: WorkspaceConfig) -> dict:
    mode_str = {v: k for k, v in _MODE_NAMES.items()}[config.deploy_mode]
    data = {
        "workspace":    str(config.workspace)    if config.workspace    else "",
        "game_path":    str(config.game_path)    if config.game_path    else "",
        "virtual_data": str(config.virtual_data) if config.virtual_data else "",
        "downloads":    str(config.downloads)    if config.downloads    else "",
        "deploy_mode":  mode_str,
        "seven_zip":    config.seven_zip,
    }
    data.update(config.extra)
    return data


def load_workspace_config(path: Path | None = None) -> WorkspaceConfig:
    """Read paths.json; a missing or malformed file yields the defaults."""
    path = path or get_workspace_config_path()
    if not path.is_file():
        return WorkspaceConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        log.warning("Ignoring unreadable workspace config %s: %s", path, exc)
        return WorkspaceConfig()
    if not isinstance(data, dict):
        log.warning("Ignoring workspace config %s: not a JSON object", path)
        return WorkspaceConfig()
    return config_from_dict(data)


def save_workspace_config(config: WorkspaceConfig, path: Path | None = None) -> None:
    path = path or get_workspace_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config_to_dict(config), indent=2), encoding="utf-8")
