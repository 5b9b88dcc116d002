"""
plugin_parser.py
Read master-file dependencies from Bethesda content files (.esm/.esp/.esl).

This is a tag scan, not a record parser.  The whole file is read into memory
and searched for the 4-byte tag "MAST"; each hit is decoded as

    tag      4 bytes   "MAST"
    length   4 bytes   uint32 LE
    name     `length` bytes, cut at the first embedded NUL

and the cursor jumps past the consumed bytes.  A "MAST" byte sequence inside
an unrelated payload is decoded the same way, so `PluginInfo.masters` is
best-effort metadata: it may contain spurious names or miss real ones.

Files shorter than 16 bytes cannot hold a header and yield no masters.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

log = logging.getLogger(__name__)

PLUGIN_EXTENSIONS: tuple[str, ...] = (".esm", ".esp", ".esl")

_MAST_TAG = b"MAST"
_MIN_HEADER_SIZE = 16


class PluginKind(Enum):
    MASTER = "ESM"
    PLUGIN = "ESP"
    LIGHT  = "ESL"


class ScanError(Exception):
    """Raised when a content file cannot be read."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Unreadable plugin {path}: {reason}")
        self.path = path
        self.reason = reason


@dataclass
class PluginInfo:
    """One scanned content file.

    `masters` is best-effort (see module docstring); it is never guaranteed
    to be the complete dependency list.
    """
    filename: str
    kind: PluginKind
    masters: list[str] = field(default_factory=list)
    display_name: str = ""

    def __post_init__(self) -> None:
        if not self.display_name:
            self.display_name = self.filename


def classify_plugin(filename: str) -> PluginKind:
    """Map a filename's extension (case-insensitive) to its PluginKind.
    Anything that is not .esm or .esl is treated as a regular plugin."""
    suffix = Path(filename).suffix.lower()
    if suffix == ".esm":
        return PluginKind.MASTER
    if suffix == ".esl":
        return PluginKind.LIGHT
    return PluginKind.PLUGIN


def is_plugin_file(filename: str) -> bool:
    return Path(filename).suffix.lower() in PLUGIN_EXTENSIONS


def scan_masters(buf: bytes) -> list[str]:
    """Return every MAST name found in buf, in file order."""
    masters: list[str] = []
    end = len(buf)
    pos = 0
    while pos + 8 < end:
        hit = buf.find(_MAST_TAG, pos)
        if hit == -1 or hit + 8 >= end:
            break
        length = struct.unpack_from("<I", buf, hit + 4)[0]
        start = hit + 8
        if start + length > end:
            break
        raw = buf[start:start + length]
        nul = raw.find(b"\x00")
        if nul != -1:
            raw = raw[:nul]
        masters.append(raw.decode("utf-8", errors="replace"))
        pos = start + length
    return masters


def read_plugin_header(plugin_path: Path) -> PluginInfo:
    """
    Scan a single content file and return its PluginInfo.

    Raises ScanError if the file cannot be opened or read.
    """
    info = PluginInfo(
        filename=plugin_path.name,
        kind=classify_plugin(plugin_path.name),
    )
    try:
        buf = plugin_path.read_bytes()
    except OSError as exc:
        raise ScanError(plugin_path, exc.strerror or str(exc)) from exc

    if len(buf) < _MIN_HEADER_SIZE:
        return info

    info.masters = scan_masters(buf)
    return info


def scan_plugins(data_dir: Path, log_fn=None) -> list[PluginInfo]:
    """
    Scan every root-level content file in data_dir, sorted by filename.

    Unreadable files are skipped with a warning; a missing directory yields
    an empty list.
    """
    _log = log_fn or (lambda _: None)
    if not data_dir.is_dir():
        return []

    plugins: list[PluginInfo] = []
    for entry in sorted(data_dir.iterdir(), key=lambda p: p.name.lower()):
        if not entry.is_file() or not is_plugin_file(entry.name):
            continue
        try:
            plugins.append(read_plugin_header(entry))
        except ScanError as exc:
            log.warning("%s", exc)
            _log(f"  WARN: {exc}")
    return plugins


def check_missing_masters(plugins: list[PluginInfo]) -> dict[str, list[str]]:
    """
    Check every scanned plugin for masters that are not in the scanned set.

    Returns
    -------
    dict[str, list[str]]
        Mapping of plugin filename → missing master filenames, in declaration
        order.  Only plugins that actually have missing masters are included.
    """
    known = {p.filename.lower() for p in plugins}
    missing_map: dict[str, list[str]] = {}

    for plugin in plugins:
        missing = [m for m in plugin.masters if m and m.lower() not in known]
        if missing:
            missing_map[plugin.filename] = missing

    return missing_map
