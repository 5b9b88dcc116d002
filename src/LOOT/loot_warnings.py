"""
loot_warnings.py
Correlate scanned plugins with sorting-engine metadata into a flat,
ordered list of WarningEntry rows (the Errors / Warnings report).

correlate() is pure: it reads only its three arguments.

Metadata shape consumed (per plugin, as returned by the engine):

    {
      "has_user_metadata": bool,
      "messages":     [{"level": "info|warn|error", "text": str}, ...],
      "dirty":        [{"utility": str, "crc": "0x…", "itm": int,
                        "deleted_references": int, "deleted_navmeshes": int,
                        "detail": str}, ...],
      "requirements": [{"name": str, ...}, ...]
    }

Absent or mistyped fields are treated as empty.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Sequence

from Utils.plugin_parser import PluginInfo

GENERAL_PLUGIN = "General"
USER_OVERRIDE_TEXT = "User rules are applied to this plugin."


class WarningCategory(Enum):
    INFO           = "Info"
    WARNING        = "Warning"
    ERROR          = "Error"
    USER_OVERRIDE  = "UserOverride"
    DIRTY          = "Dirty"
    MISSING_MASTER = "MissingMaster"


# Order of categories within one plugin's rows.
CATEGORY_ORDER = (
    WarningCategory.DIRTY,
    WarningCategory.MISSING_MASTER,
    WarningCategory.USER_OVERRIDE,
    WarningCategory.ERROR,
    WarningCategory.INFO,
    WarningCategory.WARNING,
)
_CATEGORY_RANK = {category: rank for rank, category in enumerate(CATEGORY_ORDER)}


@dataclass(frozen=True)
class WarningEntry:
    plugin: str
    category: WarningCategory
    message: str


def category_for_level(level) -> WarningCategory:
    if not isinstance(level, str):
        return WarningCategory.INFO
    level = level.strip().lower()
    if level in ("warn", "warning"):
        return WarningCategory.WARNING
    if level == "error":
        return WarningCategory.ERROR
    return WarningCategory.INFO


def _objects(detail: Mapping, key: str) -> list[dict]:
    value = detail.get(key)
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


def _text(obj: Mapping, key: str) -> str:
    value = obj.get(key, "")
    return value if isinstance(value, str) else ""


def _count(obj: Mapping, key: str) -> int:
    value = obj.get(key, 0)
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def format_dirty(info: Mapping) -> str:
    summary = (f"Utility {_text(info, 'utility')} | CRC {_text(info, 'crc')} | "
               f"ITM {_count(info, 'itm')} | "
               f"UDR {_count(info, 'deleted_references')} | "
               f"NAV {_count(info, 'deleted_navmeshes')}")
    detail = _text(info, "detail")
    if detail:
        summary += f" | {detail}"
    return summary


def _plugin_entries(
    plugin: PluginInfo,
    detail: Mapping,
    present: set[str],
) -> list[WarningEntry]:
    name = plugin.filename
    out: list[WarningEntry] = []

    for msg in _objects(detail, "messages"):
        out.append(WarningEntry(name, category_for_level(msg.get("level")),
                                _text(msg, "text")))

    if detail.get("has_user_metadata") is True:
        out.append(WarningEntry(name, WarningCategory.USER_OVERRIDE, USER_OVERRIDE_TEXT))

    for info in _objects(detail, "dirty"):
        out.append(WarningEntry(name, WarningCategory.DIRTY, format_dirty(info)))

    required = [_text(req, "name") for req in _objects(detail, "requirements")]
    reported: set[str] = set()
    for dep in required + list(plugin.masters):
        key = dep.lower()
        if not dep or key in present or key in reported:
            continue
        reported.add(key)
        out.append(WarningEntry(name, WarningCategory.MISSING_MASTER,
                                f"Requires {dep}, which is not present."))
    return out


def correlate(
    plugins: Sequence[PluginInfo],
    details: Mapping[str, Mapping],
    general_messages: Sequence,
) -> list[WarningEntry]:
    """
    Build the warning report.

    details maps lowercase plugin filename → engine metadata; plugins with no
    (or empty) metadata contribute nothing.  Entries with empty text are
    dropped.  The result is stable-sorted by plugin name (case-insensitive),
    then by category in CATEGORY_ORDER.
    """
    present = {p.filename.lower() for p in plugins}
    entries: list[WarningEntry] = []

    for plugin in plugins:
        detail = details.get(plugin.filename.lower())
        if not detail:
            continue
        entries.extend(_plugin_entries(plugin, detail, present))

    for msg in general_messages:
        if isinstance(msg, dict):
            entries.append(WarningEntry(GENERAL_PLUGIN, category_for_level(msg.get("level")),
                                        _text(msg, "text")))

    entries = [e for e in entries if e.message]
    entries.sort(key=lambda e: (e.plugin.casefold(), _CATEGORY_RANK[e.category]))
    return entries
