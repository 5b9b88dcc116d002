"""
loot_shim.py
ctypes binding for the loot_shim shared library (a thin C ABI over libloot).

Exported functions:

    LootGameHandle* loot_create_game_handle(LootGameType, const char* data_path,
                                            const char* install_path);
    void  loot_destroy_game_handle(LootGameHandle*);
    int   loot_sort_plugins(LootGameHandle*);                         0 = success
    int   loot_load_masterlist(LootGameHandle*, const char* path,
                               const char* prelude_or_NULL);
    int   loot_load_userlist(LootGameHandle*, const char* path);
    int   loot_clear_user_metadata(LootGameHandle*);
    char* loot_get_plugin_details_json(LootGameHandle*, const char* plugin);
    char* loot_get_general_messages_json(LootGameHandle*);
    void  loot_free_json(char*);

Optional (newer builds):

    LootStringList loot_get_sorted_plugins(const LootGameHandle*);
    void           loot_free_string_list(LootStringList);

Every char* / LootStringList returned by the library is owned by the caller
and must be handed back to the matching free function.  Returned strings are
declared as c_void_p so ctypes does not copy-and-lose the original pointer.

LootShim is only the raw binding; use LOOT.loot_session.LootSession.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import logging
import os

log = logging.getLogger(__name__)

SHIM_ENV_VAR = "RELIQUARY_LOOT_SHIM"
_LIBRARY_NAME = "loot_shim"


class LootStringList(ctypes.Structure):
    _fields_ = [
        ("items", ctypes.POINTER(ctypes.c_char_p)),
        ("count", ctypes.c_size_t),
    ]


def _encode_path(path) -> bytes:
    return os.fsencode(str(path))


class LootShim:
    """Function table of a loaded loot_shim library."""

    def __init__(self, lib: ctypes.CDLL):
        self._lib = lib

        lib.loot_create_game_handle.argtypes = [ctypes.c_int, ctypes.c_char_p, ctypes.c_char_p]
        lib.loot_create_game_handle.restype = ctypes.c_void_p

        lib.loot_destroy_game_handle.argtypes = [ctypes.c_void_p]
        lib.loot_destroy_game_handle.restype = None

        lib.loot_sort_plugins.argtypes = [ctypes.c_void_p]
        lib.loot_sort_plugins.restype = ctypes.c_int

        lib.loot_load_masterlist.argtypes = [ctypes.c_void_p, ctypes.c_char_p, ctypes.c_char_p]
        lib.loot_load_masterlist.restype = ctypes.c_int

        lib.loot_load_userlist.argtypes = [ctypes.c_void_p, ctypes.c_char_p]
        lib.loot_load_userlist.restype = ctypes.c_int

        lib.loot_clear_user_metadata.argtypes = [ctypes.c_void_p]
        lib.loot_clear_user_metadata.restype = ctypes.c_int

        lib.loot_get_plugin_details_json.argtypes = [ctypes.c_void_p, ctypes.c_char_p]
        lib.loot_get_plugin_details_json.restype = ctypes.c_void_p

        lib.loot_get_general_messages_json.argtypes = [ctypes.c_void_p]
        lib.loot_get_general_messages_json.restype = ctypes.c_void_p

        lib.loot_free_json.argtypes = [ctypes.c_void_p]
        lib.loot_free_json.restype = None

        self.has_sorted_plugins = (hasattr(lib, "loot_get_sorted_plugins")
                                   and hasattr(lib, "loot_free_string_list"))
        if self.has_sorted_plugins:
            lib.loot_get_sorted_plugins.argtypes = [ctypes.c_void_p]
            lib.loot_get_sorted_plugins.restype = LootStringList
            lib.loot_free_string_list.argtypes = [LootStringList]
            lib.loot_free_string_list.restype = None

    # -- session lifetime ---------------------------------------------------

    def create_game_handle(self, game: int, data_path, install_path) -> int | None:
        return self._lib.loot_create_game_handle(
            int(game), _encode_path(data_path), _encode_path(install_path))

    def destroy_game_handle(self, handle: int) -> None:
        self._lib.loot_destroy_game_handle(handle)

    # -- status calls -------------------------------------------------------

    def sort_plugins(self, handle: int) -> int:
        return self._lib.loot_sort_plugins(handle)

    def load_masterlist(self, handle: int, path, prelude=None) -> int:
        prelude_arg = _encode_path(prelude) if prelude else None
        return self._lib.loot_load_masterlist(handle, _encode_path(path), prelude_arg)

    def load_userlist(self, handle: int, path) -> int:
        return self._lib.loot_load_userlist(handle, _encode_path(path))

    def clear_user_metadata(self, handle: int) -> int:
        return self._lib.loot_clear_user_metadata(handle)

    # -- payload calls ------------------------------------------------------

    def get_plugin_details_json(self, handle: int, plugin_name: str) -> int | None:
        return self._lib.loot_get_plugin_details_json(handle, plugin_name.encode("utf-8"))

    def get_general_messages_json(self, handle: int) -> int | None:
        return self._lib.loot_get_general_messages_json(handle)

    def read_string(self, ptr: int) -> str:
        return ctypes.string_at(ptr).decode("utf-8", errors="replace")

    def free_json(self, ptr: int) -> None:
        self._lib.loot_free_json(ptr)

    def get_sorted_plugins(self, handle: int) -> LootStringList:
        return self._lib.loot_get_sorted_plugins(handle)

    def read_string_list(self, lst: LootStringList) -> list[str]:
        if not lst.items or lst.count == 0:
            return []
        names: list[str] = []
        for i in range(lst.count):
            raw = lst.items[i]
            if raw:
                names.append(raw.decode("utf-8", errors="replace"))
        return names

    def free_string_list(self, lst: LootStringList) -> None:
        self._lib.loot_free_string_list(lst)


def find_shim_library() -> str | None:
    """Location of the shim library: $RELIQUARY_LOOT_SHIM, else the system
    library search path."""
    configured = os.environ.get(SHIM_ENV_VAR, "").strip()
    if configured:
        return configured
    return ctypes.util.find_library(_LIBRARY_NAME)


def load_shim(path: str | None = None) -> LootShim | None:
    """Load the shim library, or return None (logged) when it is unavailable."""
    path = path or find_shim_library()
    if not path:
        log.warning("LOOT shim library not found; set %s to enable sorting",
                    SHIM_ENV_VAR)
        return None
    try:
        return LootShim(ctypes.CDLL(path))
    except (OSError, AttributeError) as exc:
        log.warning("Failed to load LOOT shim library %s: %s", path, exc)
        return None
