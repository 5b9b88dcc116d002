from __future__ import annotations

import json
import struct
import subprocess
from pathlib import Path

import pytest

from Utils.workspace import WorkspaceConfig


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path, monkeypatch):
    config_dir = tmp_path / "config"
    monkeypatch.setenv("RELIQUARY_CONFIG_DIR", str(config_dir))
    return config_dir


def plugin_bytes(*masters: str) -> bytes:
    """A minimal TES4-style header carrying one MAST record per master."""
    body = b""
    for name in masters:
        raw = name.encode("utf-8") + b"\x00"
        body += b"MAST" + struct.pack("<I", len(raw)) + raw
        body += b"DATA" + struct.pack("<I", 8) + b"\x00" * 8
    return b"TES4" + struct.pack("<I", len(body)) + b"\x00" * 16 + body


@pytest.fixture
def workspace_config(tmp_path) -> WorkspaceConfig:
    return WorkspaceConfig(workspace=tmp_path / "ws")


# ---------------------------------------------------------------------------
# Fake 7z
# ---------------------------------------------------------------------------

class FakeSevenZip:
    """Stands in for subprocess.run: writes `layouts[archive name]` into the
    -o destination and records every command line."""

    def __init__(self):
        self.layouts: dict[str, dict[str, bytes]] = {}
        self.calls: list[list[str]] = []
        self.returncode = 0
        self.stderr = b""

    def __call__(self, cmd, capture_output=False, **kwargs):
        self.calls.append(list(cmd))
        archive = Path(cmd[2]).name
        dest = Path(next(a for a in cmd if a.startswith("-o"))[2:])
        if self.returncode == 0:
            for rel, data in self.layouts.get(archive, {}).items():
                target = dest / rel
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)
        else:
            (dest / "partial.bin").write_bytes(b"x")
        return subprocess.CompletedProcess(cmd, self.returncode, b"", self.stderr)


@pytest.fixture
def fake_7z(monkeypatch) -> FakeSevenZip:
    fake = FakeSevenZip()
    monkeypatch.setattr("Utils.install_mod.subprocess.run", fake)
    return fake


@pytest.fixture
def make_archive(tmp_path):
    """Create an (empty) archive file; the fake 7z supplies its contents."""
    def _make(name: str, subdir: str = "downloads") -> Path:
        path = tmp_path / subdir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"7z\xbc\xaf")
        return path
    return _make


# ---------------------------------------------------------------------------
# Fake sorting-engine shim
# ---------------------------------------------------------------------------

class FakeShim:
    """Python-level stand-in for LOOT.loot_shim.LootShim.

    Payloads are registered as strings and handed out as integer
    "pointers"; every release is recorded so tests can check ownership.
    """

    def __init__(self, handle: int | None = 0x1000, has_sorted_plugins: bool = True):
        self.handle = handle
        self.has_sorted_plugins = has_sorted_plugins
        self.details: dict[str, str] = {}
        self.general: str | None = None
        self.sorted: list[str] = []
        self.rc: dict[str, int] = {}
        self.calls: list[tuple] = []
        self.destroyed: list[int] = []
        self.freed: list[int] = []
        self.freed_lists: list[object] = []
        self._heap: dict[int, str] = {}
        self._next_ptr = 0x5000

    def set_details(self, plugin: str, detail) -> None:
        self.details[plugin] = detail if isinstance(detail, str) else json.dumps(detail)

    def _alloc(self, text: str) -> int:
        ptr = self._next_ptr
        self._next_ptr += 0x10
        self._heap[ptr] = text
        return ptr

    @property
    def outstanding(self) -> list[int]:
        return [p for p in self._heap if p not in self.freed]

    def create_game_handle(self, game, data_path, install_path):
        self.calls.append(("create", int(game), data_path, install_path))
        return self.handle

    def destroy_game_handle(self, handle):
        self.destroyed.append(handle)

    def sort_plugins(self, handle):
        self.calls.append(("sort", handle))
        return self.rc.get("sort", 0)

    def load_masterlist(self, handle, path, prelude=None):
        self.calls.append(("masterlist", path, prelude))
        return self.rc.get("masterlist", 0)

    def load_userlist(self, handle, path):
        self.calls.append(("userlist", path))
        return self.rc.get("userlist", 0)

    def clear_user_metadata(self, handle):
        self.calls.append(("clear_user",))
        return self.rc.get("clear_user", 0)

    def get_plugin_details_json(self, handle, plugin_name):
        text = self.details.get(plugin_name)
        return self._alloc(text) if text is not None else None

    def get_general_messages_json(self, handle):
        return self._alloc(self.general) if self.general is not None else None

    def read_string(self, ptr):
        return self._heap[ptr]

    def free_json(self, ptr):
        self.freed.append(ptr)

    def get_sorted_plugins(self, handle):
        return list(self.sorted)

    def read_string_list(self, lst):
        return list(lst)

    def free_string_list(self, lst):
        self.freed_lists.append(lst)


@pytest.fixture
def fake_shim() -> FakeShim:
    return FakeShim()
