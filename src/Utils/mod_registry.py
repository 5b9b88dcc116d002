"""
mod_registry.py
Read and write the installed-mod registry (mods.json).

Format: a JSON array, one object per installed mod:

    {
      "id":           "SkyUI_5_2_SE",
      "name":         "SkyUI_5_2_SE",
      "archive":      "SkyUI_5_2_SE.7z",
      "modPath":      "/home/me/Reliquary/Mods/SkyUI_5_2_SE",
      "dataPath":     "/home/me/Reliquary/Mods/SkyUI_5_2_SE/Data",
      "enabled":      true,
      "type":         "mod",          # or "tool"
      "launcherPath": "",
      "launcherArgs": "",
      "plugins":      ["SkyUI_SE.esp"]
    }

Absent fields default (enabled → true, type → "mod").  Records without an id
are dropped.  A missing file is an empty registry; an unreadable or malformed
file is also treated as empty, with a message added to ModRegistry.warnings.
The damaged file is renamed to mods.json.corrupt before anything is saved
over it; if that rename fails, saves are refused.

Saves write a sibling .tmp file and rename it over mods.json, so a crash
mid-save leaves the previous registry intact.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from Utils.tool_assets import resolve_launcher_path

log = logging.getLogger(__name__)


class ModKind(Enum):
    CONTENT = "mod"
    TOOL    = "tool"


class RegistryError(Exception):
    """Raised when the registry cannot be written."""


@dataclass
class ModRecord:
    id: str
    name: str = ""
    archive_name: str = ""
    mod_path: str = ""
    data_path: str = ""
    plugin_files: list[str] = field(default_factory=list)
    enabled: bool = True
    kind: ModKind = ModKind.CONTENT
    launcher_path: str = ""
    launcher_args: str = ""

    @property
    def is_tool(self) -> bool:
        return self.kind is ModKind.TOOL


def _str(obj: dict, key: str) -> str:
    value = obj.get(key, "")
    return value if isinstance(value, str) else ""


def record_from_dict(obj: dict) -> ModRecord:
    enabled = obj.get("enabled", True)
    plugins = obj.get("plugins", [])
    kind = ModKind.TOOL if obj.get("type") == "tool" else ModKind.CONTENT
    seen: set[str] = set()
    plugin_files: list[str] = []
    if isinstance(plugins, list):
        for p in plugins:
            if isinstance(p, str) and p not in seen:
                seen.add(p)
                plugin_files.append(p)
    return ModRecord(
        id=_str(obj, "id"),
        name=_str(obj, "name"),
        archive_name=_str(obj, "archive"),
        mod_path=_str(obj, "modPath"),
        data_path=_str(obj, "dataPath"),
        plugin_files=plugin_files,
        enabled=enabled if isinstance(enabled, bool) else True,
        kind=kind,
        launcher_path=_str(obj, "launcherPath"),
        launcher_args=_str(obj, "launcherArgs"),
    )


def record_to_dict(record: ModRecord) -> dict:
    return {
        "id":           record.id,
        "name":         record.name,
        "archive":      record.archive_name,
        "modPath":      record.mod_path,
        "dataPath":     record.data_path,
        "enabled":      record.enabled,
        "type":         record.kind.value,
        "launcherPath": record.launcher_path,
        "launcherArgs": record.launcher_args,
        "plugins":      list(record.plugin_files),
    }


class ModRegistry:
    """Durable store for ModRecords.  The registry file is the only state
    that survives a restart; everything else is derived from it."""

    def __init__(self, path: Path, tools_root: Path | None = None):
        self.path = path
        self.tools_root = tools_root
        self.warnings: list[str] = []
        self._blocked = False

    @property
    def corrupt_path(self) -> Path:
        return self.path.with_name(self.path.name + ".corrupt")

    def _warn(self, message: str) -> None:
        log.warning(message)
        self.warnings.append(message)

    def _set_aside(self) -> None:
        try:
            self.path.replace(self.corrupt_path)
        except OSError as exc:
            self._blocked = True
            self._warn(f"Could not move damaged registry to {self.corrupt_path}: {exc}; "
                       "changes will not be saved.")
            return
        self._warn(f"Damaged registry kept as {self.corrupt_path}.")

    def load(self) -> list[ModRecord]:
        """
        Return the stored records in file order.

        Never raises: a missing file is an empty registry, an unreadable or
        malformed file is reported through self.warnings, moved aside to
        corrupt_path and treated as empty.  Tool records with no launcher get
        one resolved from the tool asset folder (in memory only; storage is untouched until save()).
        """
        self.warnings = []
        self._blocked = False
        if not self.path.is_file():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as exc:
            self._warn(f"Could not read mod registry {self.path}: {exc}")
            self._set_aside()
            return []
        except json.JSONDecodeError as exc:
            self._warn(f"Mod registry {self.path} is corrupt ({exc}); "
                       "starting with an empty mod list.")
            self._set_aside()
            return []
        if not isinstance(data, list):
            self._warn(f"Mod registry {self.path} is not a list; "
                       "starting with an empty mod list.")
            self._set_aside()
            return []

        records: list[ModRecord] = []
        for obj in data:
            if not isinstance(obj, dict):
                continue
            record = record_from_dict(obj)
            if not record.id:
                continue
            if record.is_tool and not record.launcher_path and self.tools_root is not None:
                record.launcher_path = str(resolve_launcher_path(
                    record.name, self.tools_root / record.id))
            records.append(record)
        return records

    def save(self, records: list[ModRecord]) -> None:
        """
        Replace the stored registry with records.

        Raises RegistryError if the file cannot be written; the previous
        registry is left untouched in that case.
        """
        if self._blocked:
            raise RegistryError(
                f"Not writing mod registry {self.path}: the damaged file could not "
                f"be moved to {self.corrupt_path.name}.")
        payload = json.dumps([record_to_dict(r) for r in records], indent=4)
        tmp = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as f:
                f.write(payload)
            tmp.replace(self.path)
        except OSError as exc:
            try:
                tmp.unlink()
            except OSError:
                pass
            raise RegistryError(f"Failed to write mod registry {self.path}: {exc}") from exc
