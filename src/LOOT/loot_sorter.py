"""
loot_sorter.py
Sort the virtual Data folder's load order and gather plugin metadata through
the sorting engine.

Usage:
    from LOOT.loot_sorter import LootManager

    with LootManager() as loot:
        if loot.open(LootGameType.SkyrimSE, virtual_data, game_dir):
            loot.reload_metadata([p.filename for p in plugins])
            result = loot.sort(current_order, loadorder_path)
            report = loot.warnings(plugins)

Metadata files live in ~/.config/ReliquaryModManager/LOOT/data/:
  masterlist_<game>.yaml       community rules (downloaded on demand)
  masterlist_prelude.yaml      shared prelude (downloaded on demand)
  userlist_<game>.yaml         local user rules
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import requests

from LOOT.game_type import LootGameType
from LOOT.loot_session import LootSession
from LOOT.loot_shim import load_shim
from LOOT.loot_warnings import WarningEntry, correlate
from Utils.config_paths import get_loot_data_dir
from Utils.plugin_parser import PluginInfo
from Utils.plugins import count_moved, write_loadorder

log = logging.getLogger(__name__)

PRELUDE_FILE = "masterlist_prelude.yaml"
PRELUDE_URL = "https://raw.githubusercontent.com/loot/prelude/v0.21/prelude.yaml"
MASTERLIST_URL = "https://raw.githubusercontent.com/loot/{slug}/v0.21/masterlist.yaml"

_DOWNLOAD_TIMEOUT = 30


def masterlist_filename(game_type: LootGameType) -> str:
    """e.g. SkyrimSE → 'masterlist_skyrimse.yaml'"""
    return f"masterlist_{game_type.slug}.yaml"


def userlist_filename(game_type: LootGameType) -> str:
    return f"userlist_{game_type.slug}.yaml"


def masterlist_url(game_type: LootGameType) -> str:
    return MASTERLIST_URL.format(slug=game_type.slug)


def ensure_masterlist(
    filename: str,
    download_url: str = "",
    data_dir: Path | None = None,
    log_fn=None,
) -> bool:
    """Ensure a metadata file exists in the LOOT data dir.

    An existing file is kept as is; otherwise it is downloaded from
    download_url.

    Returns True when the file is present afterwards.  Download failures are
    logged, never raised.
    """
    _log = log_fn or (lambda _: None)
    data_dir = data_dir or get_loot_data_dir()
    dest = data_dir / filename
    if dest.is_file():
        return True

    if not download_url:
        return False

    _log(f"Downloading {filename}...")
    try:
        resp = requests.get(download_url, timeout=_DOWNLOAD_TIMEOUT)
        resp.raise_for_status()
        tmp = dest.with_suffix(".tmp")
        tmp.write_bytes(resp.content)
        tmp.replace(dest)
    except (requests.RequestException, OSError) as exc:
        log.warning("Failed to download %s from %s: %s", filename, download_url, exc)
        _log(f"Failed to download {filename}: {exc}")
        return False
    _log(f"Downloaded {filename} successfully.")
    return True


@dataclass
class SortResult:
    """Result of a LOOT sort operation."""
    sorted_names: list[str]
    moved_count: int
    warnings: list[str] = field(default_factory=list)
    success: bool = True


class LootManager:
    """
    Owns at most one LootSession plus the metadata gathered through it.

    The session is closed before a new one is opened, in close(), and on
    leaving a `with` block.  When the engine library or a handle is
    unavailable every operation degrades to a reported no-op.
    """

    def __init__(self, shim=None, data_dir: Path | None = None):
        self._shim = shim
        self._shim_loaded = shim is not None
        self._data_dir = data_dir
        self._session: LootSession | None = None
        self._details: dict[str, dict] = {}
        self._general: list = []
        self.masterlist_loaded = False

    # -----------------------------------------------------------------------
    # Session lifetime
    # -----------------------------------------------------------------------

    @property
    def data_dir(self) -> Path:
        if self._data_dir is None:
            self._data_dir = get_loot_data_dir()
        return self._data_dir

    @property
    def available(self) -> bool:
        return self._session is not None and self._session.is_open

    @property
    def game_type(self) -> LootGameType | None:
        return self._session.game_type if self._session else None

    def open(self, game_type: LootGameType, data_path: Path, install_path: Path) -> bool:
        """Open a session for a game context, replacing any previous one."""
        self.close()
        if not self._shim_loaded:
            self._shim = load_shim()
            self._shim_loaded = True
        if self._shim is None:
            return False
        self._session = LootSession.open(self._shim, game_type, data_path, install_path)
        return self._session is not None

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None
        self._details = {}
        self._general = []
        self.masterlist_loaded = False

    def __enter__(self) -> LootManager:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -----------------------------------------------------------------------
    # Metadata files
    # -----------------------------------------------------------------------

    def masterlist_path(self) -> Path | None:
        if self.game_type is None:
            return None
        return self.data_dir / masterlist_filename(self.game_type)

    def prelude_path(self) -> Path:
        return self.data_dir / PRELUDE_FILE

    def userlist_path(self) -> Path | None:
        if self.game_type is None:
            return None
        return self.data_dir / userlist_filename(self.game_type)

    def update_masterlist(self, log_fn=None) -> bool:
        """Fetch the masterlist and prelude for the open game if missing."""
        if self.game_type is None:
            return False
        ensure_masterlist(PRELUDE_FILE, PRELUDE_URL, self.data_dir, log_fn)
        return ensure_masterlist(masterlist_filename(self.game_type),
                                 masterlist_url(self.game_type), self.data_dir, log_fn)

    def reset_userlist(self, log_fn=None) -> bool:
        """Delete the user rules file and drop user metadata from the session."""
        _log = log_fn or (lambda _: None)
        path = self.userlist_path()
        if path is None:
            return False
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            _log(f"Failed to reset userlist: {exc}")
            return False
        if self._session is not None:
            self._session.clear_user_metadata()
        _log("Userlist reset.")
        return True

    def reload_metadata(self, plugin_names: list[str], log_fn=None) -> bool:
        """
        Load masterlist (+prelude) and userlist, then cache per-plugin
        details and general messages.  Returns False, with the cache left
        empty, when no masterlist could be loaded.
        """
        _log = log_fn or (lambda _: None)
        self._details = {}
        self._general = []
        self.masterlist_loaded = False

        if not self.available:
            _log("LOOT is unavailable; no metadata loaded.")
            return False

        masterlist = self.masterlist_path()
        if masterlist is not None and masterlist.is_file():
            prelude = self.prelude_path()
            self.masterlist_loaded = self._session.load_masterlist(
                masterlist, prelude if prelude.is_file() else None)

        userlist = self.userlist_path()
        if userlist is not None and userlist.is_file():
            self._session.load_userlist(userlist)

        if not self.masterlist_loaded:
            _log("Download a masterlist to view LOOT metadata.")
            return False

        for name in plugin_names:
            detail = self._session.plugin_details(name)
            if detail is not None:
                self._details[name.lower()] = detail
        self._general = self._session.general_messages()
        _log(f"Loaded LOOT metadata for {len(self._details)} plugin(s).")
        return True

    def details(self, plugin_name: str) -> dict | None:
        return self._details.get(plugin_name.lower())

    @property
    def general_messages(self) -> list:
        return list(self._general)

    def warnings(self, plugins: list[PluginInfo]) -> list[WarningEntry]:
        return correlate(plugins, self._details, self._general)

    # -----------------------------------------------------------------------
    # Sorting
    # -----------------------------------------------------------------------

    def sort(
        self,
        current_order: list[str],
        loadorder_path: Path | None = None,
        log_fn=None,
    ) -> SortResult:
        """
        Ask the engine to sort the plugins in the session's data folder.

        Engine failure or an unavailable session is reported in the result
        (success=False), never raised.  A successful sort whose order the
        engine exposes is written to loadorder_path.
        """
        _log = log_fn or (lambda _: None)
        if not self.available:
            msg = "Sorting unavailable: no LOOT session is open."
            _log(msg)
            return SortResult(list(current_order), 0, [msg], success=False)

        warnings: list[str] = []
        if not self.masterlist_loaded:
            warnings.append("No masterlist loaded; sorting uses plugin headers only.")

        _log(f"Sorting {len(current_order)} plugins...")
        if not self._session.sort():
            msg = "LOOT failed to sort plugins."
            _log(msg)
            return SortResult(list(current_order), 0, warnings + [msg], success=False)

        sorted_names = self._session.sorted_plugins()
        if not sorted_names:
            warnings.append("The LOOT library did not report a sorted order; "
                            "load order left unchanged.")
            sorted_names = list(current_order)
        else:
            known = {n.lower() for n in sorted_names}
            sorted_names += [n for n in current_order if n.lower() not in known]
            if loadorder_path is not None:
                try:
                    write_loadorder(loadorder_path, sorted_names)
                except OSError as exc:
                    warnings.append(f"Could not write {loadorder_path}: {exc}")

        moved = count_moved(current_order, sorted_names)
        _log(f"Sort complete. {moved} plugin(s) changed position.")
        return SortResult(sorted_names=sorted_names, moved_count=moved, warnings=warnings)
