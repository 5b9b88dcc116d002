"""
loot_session.py
Scoped ownership of one sorting-engine game handle.

    with LootSession.open(shim, LootGameType.SkyrimSE, virtual_data, game_dir) as s:
        s.load_masterlist(masterlist, prelude)
        s.sort()
        details = s.plugin_details("SkyUI_SE.esp")

LootSession.open() returns None when the engine refuses to create a handle;
callers treat that as "sorting unavailable".  The raw handle never leaves
this class.  Status calls return bool, payload calls return decoded Python
objects (or None / []), and every payload the engine hands over is released
before the decoded result is returned.  Nothing here raises for an engine
failure.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from LOOT.game_type import LootGameType

log = logging.getLogger(__name__)


class LootSession:

    def __init__(self, shim, handle: int, game_type: LootGameType):
        self._shim = shim
        self._handle = handle
        self.game_type = game_type

    @classmethod
    def open(
        cls,
        shim,
        game_type: LootGameType,
        data_path: Path | str,
        install_path: Path | str,
    ) -> LootSession | None:
        log.debug("Creating LOOT handle: game=%s data=%s install=%s",
                  game_type.name, data_path, install_path)
        handle = shim.create_game_handle(int(game_type), str(data_path), str(install_path))
        if not handle:
            log.warning("Failed to create LOOT game handle for %s", install_path)
            return None
        return cls(shim, handle, game_type)

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def close(self) -> None:
        """Destroy the handle.  Safe to call more than once."""
        handle, self._handle = self._handle, None
        if handle is not None:
            self._shim.destroy_game_handle(handle)

    def __enter__(self) -> LootSession:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -----------------------------------------------------------------------
    # Status calls
    # -----------------------------------------------------------------------

    def _status(self, call: str, rc: int) -> bool:
        if rc != 0:
            log.warning("LOOT %s failed rc=%d", call, rc)
        return rc == 0

    def _usable(self, call: str) -> bool:
        if self._handle is None:
            log.warning("LOOT %s called without a valid handle", call)
            return False
        return True

    def load_masterlist(self, path: Path | str, prelude: Path | str | None = None) -> bool:
        if not self._usable("load_masterlist"):
            return False
        rc = self._shim.load_masterlist(self._handle, str(path),
                                        str(prelude) if prelude else None)
        return self._status(f"load_masterlist({path})", rc)

    def load_userlist(self, path: Path | str) -> bool:
        if not self._usable("load_userlist"):
            return False
        return self._status(f"load_userlist({path})",
                            self._shim.load_userlist(self._handle, str(path)))

    def clear_user_metadata(self) -> bool:
        if not self._usable("clear_user_metadata"):
            return False
        return self._status("clear_user_metadata",
                            self._shim.clear_user_metadata(self._handle))

    def sort(self) -> bool:
        if not self._usable("sort_plugins"):
            return False
        return self._status("sort_plugins", self._shim.sort_plugins(self._handle))

    # -----------------------------------------------------------------------
    # Payload calls
    # -----------------------------------------------------------------------

    def _take_json(self, ptr):
        """Decode and release a JSON payload; None on any failure."""
        if not ptr:
            return None
        try:
            text = self._shim.read_string(ptr)
        finally:
            self._shim.free_json(ptr)
        try:
            return json.loads(text)
        except ValueError:
            log.debug("Discarding malformed LOOT payload: %.80r", text)
            return None

    def plugin_details(self, plugin_name: str) -> dict | None:
        if self._handle is None:
            return None
        doc = self._take_json(self._shim.get_plugin_details_json(self._handle, plugin_name))
        return doc if isinstance(doc, dict) else None

    def general_messages(self) -> list:
        if self._handle is None:
            return []
        doc = self._take_json(self._shim.get_general_messages_json(self._handle))
        return doc if isinstance(doc, list) else []

    def sorted_plugins(self) -> list[str]:
        """Plugin order computed by the last successful sort(), or [] when the
        engine library does not expose it."""
        if self._handle is None or not getattr(self._shim, "has_sorted_plugins", False):
            return []
        lst = self._shim.get_sorted_plugins(self._handle)
        try:
            return self._shim.read_string_list(lst)
        finally:
            self._shim.free_string_list(lst)
