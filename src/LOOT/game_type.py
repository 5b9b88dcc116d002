"""
game_type.py
Game kinds understood by the sorting engine, and detection of the kind from
a game install directory.

The integer values are part of the engine ABI and must not change.
"""

from __future__ import annotations

import logging
from enum import IntEnum
from pathlib import Path

log = logging.getLogger(__name__)


class LootGameType(IntEnum):
    Morrowind = 0
    Oblivion  = 1
    Skyrim    = 2   # Legendary Edition
    SkyrimSE  = 3   # Special / Anniversary Edition
    Fallout3  = 4
    FalloutNV = 5
    Fallout4  = 6
    OpenMW    = 7

    @property
    def slug(self) -> str:
        """Lowercase identifier used in metadata filenames, e.g. 'skyrimse'."""
        return self.name.lower()


# Checked in order; the first marker file present wins.
_GAME_MARKERS: list[tuple[tuple[str, ...], LootGameType]] = [
    (("Morrowind.exe",),                      LootGameType.Morrowind),
    (("Oblivion.exe",),                       LootGameType.Oblivion),
    (("TESV.exe",),                           LootGameType.Skyrim),
    (("SkyrimSE.exe",),                       LootGameType.SkyrimSE),
    (("Fallout3.exe",),                       LootGameType.Fallout3),
    (("FalloutNV.exe", "FalloutNVLauncher.exe"), LootGameType.FalloutNV),
    (("Fallout4.exe",),                       LootGameType.Fallout4),
    (("openmw.cfg",),                         LootGameType.OpenMW),
]

DEFAULT_GAME_TYPE = LootGameType.SkyrimSE


def game_type_from_name(name: str) -> LootGameType:
    """Look up a game type by name, case-insensitively ('skyrimse', 'Fallout4').
    Raises ValueError for unknown names."""
    for member in LootGameType:
        if member.name.lower() == name.strip().lower():
            return member
    valid = ", ".join(m.name for m in LootGameType)
    raise ValueError(f"Unknown game type '{name}'. Expected one of: {valid}")


def detect_game_type(install_dir: Path | str) -> LootGameType:
    """
    Identify the game installed in install_dir from its executable.

    A path pointing at the game's Data folder is resolved to its parent.
    Unknown installs fall back to SkyrimSE with a logged warning.
    """
    root = Path(install_dir)
    if root.name.lower() == "data":
        root = root.parent
    log.debug("Detecting game type in %s", root)

    for markers, game_type in _GAME_MARKERS:
        if any((root / marker).exists() for marker in markers):
            return game_type

    log.warning("Unknown game type in %s; defaulting to %s",
                root, DEFAULT_GAME_TYPE.name)
    return DEFAULT_GAME_TYPE
