"""
plugins.py
Read and write the workspace loadorder.txt.

Format: one bare plugin filename per line, first line = first loaded.
Blank lines and lines starting with '#' are ignored on read.
"""

from __future__ import annotations

from pathlib import Path


def read_loadorder(path: Path) -> list[str]:
    """Read loadorder.txt and return plugin names in order."""
    if not path.is_file():
        return []
    names: list[str] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            names.append(line)
    return names


def write_loadorder(path: Path, names: list[str]) -> None:
    """Write names to loadorder.txt via a sibling .tmp file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(
        "\n".join(names) + ("\n" if names else ""),
        encoding="utf-8",
    )
    tmp.replace(path)


def count_moved(before: list[str], after: list[str]) -> int:
    """Number of positions in after whose plugin differs from before
    (compared case-insensitively)."""
    return sum(
        1 for i, name in enumerate(after)
        if i >= len(before) or before[i].lower() != name.lower()
    )


def merge_loadorder(previous: list[str], present: list[str]) -> list[str]:
    """
    Keep the previous order for plugins still present, then append newly
    present plugins in the order given.  Plugins no longer present are
    dropped.
    """
    present_lower = {n.lower(): n for n in present}
    merged: list[str] = []
    seen: set[str] = set()
    for name in previous:
        key = name.lower()
        if key in present_lower and key not in seen:
            merged.append(present_lower[key])
            seen.add(key)
    for name in present:
        if name.lower() not in seen:
            merged.append(name)
            seen.add(name.lower())
    return merged
