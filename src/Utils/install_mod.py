"""
install_mod.py
Install a mod from an archive: extract into Mods/<id>/, normalise the layout
so plugins sit in a Data/ folder, register the mod and publish its plugins
into the virtual Data folder.

Workflow (install_mod_from_archive):
  1. derive_mod_id()        — archive stem with spaces/separators replaced,
                              suffixed _1, _2, … until unused
  2. extract_archive()      — `7z x <archive> -o<dest> -y` into a fresh folder
  3. unwrap_single_folder() — lift a lone wrapper folder one level
  4. resolve_data_folder()  — reuse Data/ (any case) or create it and move
                              every top-level entry inside
  5. find_plugin_files()    — root-level .esm/.esp/.esl in Data/
  6. register + save, deploy tool assets, publish to the overlay

Once extraction has succeeded the mod folder is never deleted by this
module; later failures are reported with the folder location instead.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING

import py7zr
from py7zr.exceptions import ArchiveError, PasswordRequired

from Utils.deploy import OverlayError, enable_mod
from Utils.mod_registry import ModKind, ModRecord, RegistryError
from Utils.plugin_parser import is_plugin_file
from Utils.tool_assets import deploy_tool_assets, match_tool_pattern, probe_loader

if TYPE_CHECKING:
    from Utils.mod_registry import ModRegistry
    from Utils.workspace import WorkspaceConfig

log = logging.getLogger(__name__)

DATA_FOLDER = "Data"

_IGNORED_TOP_LEVEL = frozenset({"__macosx"})


class InstallError(Exception):
    """Base class for install failures."""


class ArchiveNotFound(InstallError):
    pass


class ExtractionFailed(InstallError):
    """The extraction tool failed; stderr holds its diagnostic output verbatim."""

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


class InstallIncomplete(InstallError):
    """Extraction succeeded but a later step failed.  The extracted files
    are kept at mod_path."""

    def __init__(self, message: str, mod_path: Path):
        super().__init__(f"{message} (extracted files kept at {mod_path})")
        self.mod_path = mod_path


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

def sanitize_name(archive_path: Path) -> str:
    """Archive stem (last extension removed) with spaces and path
    separators replaced by underscores."""
    base = archive_path.stem
    for ch in (" ", "/", "\\"):
        base = base.replace(ch, "_")
    return base or "mod"


def derive_mod_id(archive_path: Path, existing_ids: set[str], mods_root: Path) -> str:
    """Return a mod id not used by any registered mod nor any folder in mods_root."""
    base = sanitize_name(archive_path)
    mod_id = base
    suffix = 1
    while mod_id in existing_ids or (mods_root / mod_id).exists():
        mod_id = f"{base}_{suffix}"
        suffix += 1
    return mod_id


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def _extract_in_process(archive: Path, dest: Path) -> None:
    """Fallback used when the external 7z executable is not installed."""
    name_lower = archive.name.lower()
    try:
        if name_lower.endswith(".7z"):
            with py7zr.SevenZipFile(archive, "r") as z:
                z.extractall(dest)
        elif name_lower.endswith(".zip"):
            with zipfile.ZipFile(archive, "r") as z:
                z.extractall(dest)
        else:
            raise ExtractionFailed(
                f"Cannot extract {archive.name}: the 7z command was not found "
                "and only .7z/.zip archives can be extracted without it.")
    except (ArchiveError, PasswordRequired, zipfile.BadZipFile,
            RuntimeError, NotImplementedError, OSError) as exc:
        raise ExtractionFailed(f"Extraction of {archive.name} failed: {exc}",
                               str(exc)) from exc


def extract_archive(archive: Path, dest: Path, seven_zip: str = "7z") -> None:
    """
    Extract archive into dest, which must not exist yet.

    Runs `<seven_zip> x <archive> -o<dest> -y` and blocks until it exits.
    A non-zero exit (including termination by a signal) raises
    ExtractionFailed carrying the tool's stderr.
    """
    dest.mkdir(parents=True, exist_ok=False)
    try:
        result = subprocess.run(
            [seven_zip, "x", str(archive), f"-o{dest}", "-y"],
            capture_output=True,
        )
    except FileNotFoundError:
        log.info("%s not found, extracting %s in-process", seven_zip, archive.name)
        _extract_in_process(archive, dest)
        return
    except OSError as exc:
        raise ExtractionFailed(f"Failed to start {seven_zip}: {exc}") from exc

    if result.returncode != 0:
        stderr = (result.stderr or b"").decode("utf-8", errors="replace")
        raise ExtractionFailed(
            f"{seven_zip} extraction failed (exit {result.returncode}): {stderr.strip()}",
            stderr,
        )


# ---------------------------------------------------------------------------
# Layout normalisation
# ---------------------------------------------------------------------------

def _top_level_entries(root: Path) -> list[Path]:
    return [e for e in root.iterdir() if e.name.lower() not in _IGNORED_TOP_LEVEL]


def _looks_like_mod_root(folder: Path) -> bool:
    for entry in folder.iterdir():
        if entry.is_dir() and entry.name.lower() == DATA_FOLDER.lower():
            return True
        if entry.is_file() and is_plugin_file(entry.name):
            return True
    return False


def unwrap_single_folder(mod_root: Path) -> bool:
    """
    If mod_root holds a single wrapper folder (e.g. MyMod-1-0/) whose own top
    level contains a Data/ folder or plugin files, move its contents up one
    level.  Returns True if anything was moved.
    """
    entries = _top_level_entries(mod_root)
    if len(entries) != 1 or not entries[0].is_dir():
        return False
    wrapper = entries[0]
    if wrapper.name.lower() == DATA_FOLDER.lower() or not _looks_like_mod_root(wrapper):
        return False

    staging = mod_root / f".unwrap_{wrapper.name}"
    wrapper.rename(staging)
    for child in staging.iterdir():
        child.rename(mod_root / child.name)
    staging.rmdir()
    return True


def resolve_data_folder(mod_root: Path) -> Path:
    """
    Return the mod's Data folder, matching case-insensitively.  When there is
    none, create Data/ and move every other top-level entry into it.
    """
    exact = mod_root / DATA_FOLDER
    if exact.is_dir():
        return exact

    for entry in mod_root.iterdir():
        if entry.is_dir() and entry.name.lower() == DATA_FOLDER.lower():
            return entry

    exact.mkdir()
    for entry in list(mod_root.iterdir()):
        if entry == exact:
            continue
        entry.rename(exact / entry.name)
    return exact


def find_plugin_files(data_dir: Path) -> list[str]:
    """Root-level plugin filenames in data_dir, sorted case-insensitively."""
    return sorted(
        (e.name for e in data_dir.iterdir() if e.is_file() and is_plugin_file(e.name)),
        key=str.lower,
    )


# ---------------------------------------------------------------------------
# Install
# ---------------------------------------------------------------------------

def install_mod_from_archive(
    archive_path: Path | str,
    config: WorkspaceConfig,
    records: list[ModRecord],
    registry: ModRegistry,
    log_fn=None,
) -> tuple[ModRecord, list[str]]:
    """
    Install archive_path as a new mod, append it to records and persist.

    Returns (record, warnings).  warnings lists non-fatal problems (registry
    write failure, overlay publish failure, missing tool files) that the
    caller should surface.  Raises ArchiveNotFound, ExtractionFailed or
    InstallIncomplete when the mod could not be installed.
    """
    _log = log_fn or (lambda _: None)
    archive = Path(archive_path)
    if not archive.is_file():
        raise ArchiveNotFound(f"Archive not found: {archive}")

    mods_root = config.mods_root
    mods_root.mkdir(parents=True, exist_ok=True)
    mod_id = derive_mod_id(archive, {r.id for r in records}, mods_root)
    mod_folder = mods_root / mod_id

    _log(f"Extracting {archive.name} → {mod_folder}")
    try:
        extract_archive(archive, mod_folder, config.seven_zip)
    except ExtractionFailed:
        # Nothing but our own partial output can be in the fresh folder.
        shutil.rmtree(mod_folder, ignore_errors=True)
        raise

    try:
        if unwrap_single_folder(mod_folder):
            _log("Removed wrapper folder from archive layout.")
        data_dir = resolve_data_folder(mod_folder)
        plugins = find_plugin_files(data_dir)
    except OSError as exc:
        raise InstallIncomplete(f"Could not normalise layout of '{mod_id}': {exc}",
                                mod_folder) from exc

    record = ModRecord(
        id=mod_id,
        name=archive.stem,
        archive_name=archive.name,
        mod_path=str(mod_folder),
        data_path=str(data_dir),
        plugin_files=plugins,
        enabled=True,
    )
    if match_tool_pattern(record.name):
        record.kind = ModKind.TOOL
        loader = probe_loader(record.name, mod_folder)
        record.launcher_path = str(config.tools_root / mod_id / loader)

    records.append(record)
    warnings: list[str] = []
    try:
        registry.save(records)
    except RegistryError as exc:
        warnings.append(str(exc))
        _log(f"  WARN: {exc}")

    dirty = False
    if record.is_tool:
        before = record.launcher_path
        try:
            if deploy_tool_assets(record, config.tools_root, log_fn) == 0:
                warnings.append(f"No tool files were copied for '{record.name}'.")
        except OSError as exc:
            warnings.append(f"Tool deployment for '{record.name}' failed: {exc}")
        dirty = record.launcher_path != before

    try:
        enable_mod(record, config.virtual_data_root, config.deploy_mode, log_fn)
    except OverlayError as exc:
        record.enabled = False
        dirty = True
        warnings.append(f"{exc}; mod left disabled "
                        f"(already published: {', '.join(exc.completed) or 'none'}).")
        _log(f"  WARN: {exc}")

    if dirty:
        try:
            registry.save(records)
        except RegistryError as exc:
            warnings.append(str(exc))

    _log(f"Installed '{record.name}' as '{mod_id}' with {len(plugins)} plugin(s).")
    return record, warnings
