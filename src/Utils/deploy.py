"""
deploy.py
Overlay projection: keep the virtual Data folder equal to the union of the
plugin files of every enabled mod.

Provides enable_mod(), disable_mod(), reconcile(), copy_base_plugins() and
list_overlay().  Nothing here persists state; every action is derived from
the ModRecord(s) passed in plus what is on disk, so each call is idempotent
and safe to repeat after a crash.

Transfer modes (LinkMode enum):
  COPY      — shutil.copy2() Full independent copy (default).
  HARDLINK  — os.link()     No extra disk space; same filesystem required.
  SYMLINK   — os.symlink()  Works across filesystems; dest is a pointer.

Overlap rule: when two enabled mods ship the same filename, the virtual
folder holds whichever copy was transferred last, and disabling either mod
removes the file.  There is no reference counting or priority.
"""

from __future__ import annotations

import logging
import os
import shutil
from enum import Enum, auto
from pathlib import Path
from typing import TYPE_CHECKING

from Utils.plugin_parser import is_plugin_file

if TYPE_CHECKING:
    from Utils.mod_registry import ModRecord

log = logging.getLogger(__name__)


class LinkMode(Enum):
    HARDLINK = auto()
    SYMLINK  = auto()
    COPY     = auto()


class OverlayError(Exception):
    """A single file transfer/removal failed; the operation stopped there.

    `completed` lists the files already handled before the failure, so the
    caller can report exactly how far the overlay got.
    """

    def __init__(self, mod_id: str, filename: str, action: str,
                 reason: str, completed: list[str]):
        super().__init__(f"Failed to {action} plugin {filename} for mod "
                         f"'{mod_id}': {reason}")
        self.mod_id = mod_id
        self.filename = filename
        self.action = action
        self.reason = reason
        self.completed = completed


def _transfer(src: Path, dst: Path, mode: LinkMode) -> None:
    """Place src at dst using the requested mode, replacing any existing dst."""
    dst.parent.mkdir(parents=True, exist_ok=True)
    if dst.exists() or dst.is_symlink():
        dst.unlink()
    if mode is LinkMode.HARDLINK:
        os.link(src, dst)
    elif mode is LinkMode.SYMLINK:
        os.symlink(src, dst)
    else:
        shutil.copy2(src, dst)


def _path_under_root(path: Path, root: Path) -> bool:
    """Return True if path resolves to a location under root (no path traversal)."""
    try:
        path.resolve().relative_to(root.resolve())
        return True
    except ValueError:
        return False


def _target(virtual_dir: Path, plugin: str, mod_id: str, action: str,
            completed: list[str]) -> Path:
    dst = virtual_dir / plugin
    if not _path_under_root(dst, virtual_dir):
        raise OverlayError(mod_id, plugin, action,
                           "path escapes the virtual Data folder", completed)
    return dst


# ---------------------------------------------------------------------------
# Per-mod transitions
# ---------------------------------------------------------------------------

def enable_mod(
    record: ModRecord,
    virtual_dir: Path,
    mode: LinkMode = LinkMode.COPY,
    log_fn=None,
) -> int:
    """Transfer every plugin file of record into virtual_dir.

    Existing files of the same name are replaced.  Stops at the first
    failure and raises OverlayError naming the file.
    Returns the number of files transferred.
    """
    _log = log_fn or (lambda _: None)
    data_dir = Path(record.data_path)
    completed: list[str] = []

    for plugin in record.plugin_files:
        dst = _target(virtual_dir, plugin, record.id, "copy", completed)
        src = data_dir / plugin
        if not src.is_file():
            raise OverlayError(record.id, plugin, "copy",
                               f"source file missing at {src}", completed)
        try:
            _transfer(src, dst, mode)
        except OSError as exc:
            raise OverlayError(record.id, plugin, "copy", str(exc), completed) from exc
        completed.append(plugin)

    if completed:
        _log(f"Overlay: {len(completed)} plugin(s) from '{record.id}' published.")
    return len(completed)


def disable_mod(record: ModRecord, virtual_dir: Path, log_fn=None) -> int:
    """Remove every plugin file of record from virtual_dir.

    Files that are already absent are skipped.  Stops at the first failed
    removal and raises OverlayError naming the file.
    Returns the number of files removed.
    """
    _log = log_fn or (lambda _: None)
    completed: list[str] = []
    removed = 0

    for plugin in record.plugin_files:
        dst = _target(virtual_dir, plugin, record.id, "remove", completed)
        if dst.exists() or dst.is_symlink():
            try:
                dst.unlink()
            except OSError as exc:
                raise OverlayError(record.id, plugin, "remove", str(exc),
                                   completed) from exc
            removed += 1
        completed.append(plugin)

    if removed:
        _log(f"Overlay: {removed} plugin(s) from '{record.id}' withdrawn.")
    return removed


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------

def reconcile(
    records: list[ModRecord],
    virtual_dir: Path,
    mode: LinkMode = LinkMode.COPY,
    log_fn=None,
) -> list[OverlayError]:
    """Enable every enabled record, in registry order.

    A failure in one mod does not stop the others; the failures are returned
    so the caller can surface them.  Running this any number of times leaves
    the virtual folder with the same contents.
    """
    _log = log_fn or (lambda _: None)
    virtual_dir.mkdir(parents=True, exist_ok=True)
    failures: list[OverlayError] = []
    for record in records:
        if not record.enabled:
            continue
        try:
            enable_mod(record, virtual_dir, mode)
        except OverlayError as exc:
            log.warning("%s", exc)
            _log(f"  WARN: {exc}")
            failures.append(exc)
    return failures


def copy_base_plugins(game_data_dir: Path, virtual_dir: Path, log_fn=None) -> int:
    """Copy the game's own plugin files from game_data_dir into virtual_dir.

    Files already present in virtual_dir are left alone.  Raises
    FileNotFoundError if game_data_dir does not exist.
    Returns the number of files copied.
    """
    _log = log_fn or (lambda _: None)
    if not game_data_dir.is_dir():
        raise FileNotFoundError(f"Game Data folder not found: {game_data_dir}")

    virtual_dir.mkdir(parents=True, exist_ok=True)
    copied = 0
    for entry in sorted(game_data_dir.iterdir()):
        if not entry.is_file() or not is_plugin_file(entry.name):
            continue
        dst = virtual_dir / entry.name
        if dst.exists():
            continue
        try:
            shutil.copy2(entry, dst)
            copied += 1
        except OSError as exc:
            _log(f"  WARN: could not copy base plugin {entry.name}: {exc}")
    if copied:
        _log(f"Copied {copied} base plugin(s) into {virtual_dir}.")
    return copied


def list_overlay(virtual_dir: Path) -> list[str]:
    """Sorted plugin filenames currently present in virtual_dir."""
    if not virtual_dir.is_dir():
        return []
    return sorted(
        e.name for e in virtual_dir.iterdir()
        if (e.is_file() or e.is_symlink()) and is_plugin_file(e.name)
    )
