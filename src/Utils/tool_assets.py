"""
tool_assets.py
Script-extender ("tool") mods: detection, launcher discovery and deployment
of their loader files into Tools/<mod id>/.

A mod is a tool mod when its name contains one of the TOOL_LOADERS keys
(case-insensitive).  Deploying copies every file under the mod folder whose
name starts with that key and whose extension is .exe/.dll/.txt into the
tool folder (flattened); a copied "*loader*.exe" becomes the launcher.

To add support for a new script extender, add a single entry to TOOL_LOADERS.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from Utils.mod_registry import ModRecord

log = logging.getLogger(__name__)

# Tool-name pattern → loader executable names, most likely first.
TOOL_LOADERS: dict[str, tuple[str, ...]] = {
    "skse": ("skse64_loader.exe", "skse_loader.exe"),
    "f4se": ("f4se_loader.exe",),
    "nvse": ("nvse_loader.exe",),
    "fose": ("fose_loader.exe",),
    "obse": ("obse_loader.exe",),
}

_ASSET_SUFFIXES = frozenset({".exe", ".dll", ".txt"})


def match_tool_pattern(mod_name: str) -> str | None:
    """Return the TOOL_LOADERS key contained in mod_name, or None."""
    low = mod_name.lower()
    for pattern in TOOL_LOADERS:
        if pattern in low:
            return pattern
    return None


def loader_candidates(mod_name: str) -> tuple[str, ...]:
    pattern = match_tool_pattern(mod_name)
    if pattern is None:
        return TOOL_LOADERS["skse"]
    return TOOL_LOADERS[pattern]


def probe_loader(mod_name: str, search_root: Path) -> str:
    """Return the first loader candidate present directly in search_root,
    falling back to the first candidate name."""
    candidates = loader_candidates(mod_name)
    for name in candidates:
        if (search_root / name).is_file():
            return name
    return candidates[0]


def resolve_launcher_path(mod_name: str, tool_dir: Path) -> Path:
    """Launcher path inside an already-deployed tool folder."""
    return tool_dir / probe_loader(mod_name, tool_dir)


def deploy_tool_assets(record: ModRecord, tools_root: Path, log_fn=None) -> int:
    """
    Copy a tool mod's loader files into tools_root/<record.id>/.

    Updates record.launcher_path when a loader executable is copied.
    Returns the number of files copied; raises OSError if the tool folder
    cannot be created.
    """
    _log = log_fn or (lambda _: None)
    if not record.is_tool:
        return 0

    tool_dir = tools_root / record.id
    tool_dir.mkdir(parents=True, exist_ok=True)
    prefix = match_tool_pattern(record.name) or "skse"
    mod_root = Path(record.mod_path)

    log.debug("Deploying tool assets for %s from %s to %s",
              record.name, mod_root, tool_dir)

    copied = 0
    if mod_root.is_dir():
        for src in sorted(mod_root.rglob("*")):
            if not src.is_file():
                continue
            if not src.name.lower().startswith(prefix):
                continue
            suffix = src.suffix.lower()
            if suffix not in _ASSET_SUFFIXES:
                continue
            dst = tool_dir / src.name
            try:
                if dst.exists() or dst.is_symlink():
                    dst.unlink()
                shutil.copy2(src, dst)
            except OSError as exc:
                _log(f"  WARN: could not copy tool file {src.name}: {exc}")
                continue
            copied += 1
            if suffix == ".exe" and "loader" in src.name.lower():
                record.launcher_path = str(dst)

    if copied == 0:
        _log(f"  WARN: no {prefix.upper()} files found in '{record.name}'.")
    else:
        _log(f"Tool '{record.name}': {copied} file(s) deployed to {tool_dir}.")
    return copied


def cleanup_tool_assets(record: ModRecord, tools_root: Path) -> None:
    """Delete tools_root/<record.id>/ for a tool mod (no-op otherwise)."""
    if not record.is_tool:
        return
    tool_dir = tools_root / record.id
    if tool_dir.is_dir():
        shutil.rmtree(tool_dir)
