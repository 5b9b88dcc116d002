import pytest
import requests

from conftest import FakeShim
from LOOT.game_type import LootGameType
from LOOT.loot_sorter import (
    PRELUDE_FILE,
    LootManager,
    ensure_masterlist,
    masterlist_filename,
    masterlist_url,
    userlist_filename,
)
from LOOT.loot_warnings import WarningCategory
from Utils.plugin_parser import PluginInfo, PluginKind
from Utils.plugins import read_loadorder


@pytest.fixture
def loot_dir(tmp_path):
    d = tmp_path / "lootdata"
    d.mkdir()
    return d


@pytest.fixture
def manager(fake_shim, loot_dir, tmp_path):
    mgr = LootManager(shim=fake_shim, data_dir=loot_dir)
    assert mgr.open(LootGameType.SkyrimSE, tmp_path / "VirtualData", tmp_path / "Game")
    yield mgr
    mgr.close()


def test_metadata_filenames():
    assert masterlist_filename(LootGameType.SkyrimSE) == "masterlist_skyrimse.yaml"
    assert userlist_filename(LootGameType.Fallout4) == "userlist_fallout4.yaml"
    assert masterlist_url(LootGameType.Oblivion).endswith("/loot/oblivion/v0.21/masterlist.yaml")


class FakeResponse:
    def __init__(self, content=b"", status=200):
        self.content = content
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")


def test_ensure_masterlist_existing_file_skips_download(loot_dir, monkeypatch):
    (loot_dir / "masterlist_skyrimse.yaml").write_text("groups: []")

    def fail(*args, **kwargs):
        raise AssertionError("should not download")

    monkeypatch.setattr("LOOT.loot_sorter.requests.get", fail)
    assert ensure_masterlist("masterlist_skyrimse.yaml", "http://x", loot_dir)


def test_ensure_masterlist_downloads(loot_dir, monkeypatch):
    seen = []

    def fake_get(url, timeout):
        seen.append(url)
        return FakeResponse(b"plugins: []")

    monkeypatch.setattr("LOOT.loot_sorter.requests.get", fake_get)
    assert ensure_masterlist(PRELUDE_FILE, "http://example/prelude.yaml", loot_dir)
    assert (loot_dir / PRELUDE_FILE).read_bytes() == b"plugins: []"
    assert seen == ["http://example/prelude.yaml"]


@pytest.mark.parametrize("outcome", [
    requests.ConnectionError("offline"),
    FakeResponse(status=404),
])
def test_ensure_masterlist_download_failure(loot_dir, monkeypatch, outcome):
    def fake_get(url, timeout):
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr("LOOT.loot_sorter.requests.get", fake_get)
    assert ensure_masterlist("masterlist_x.yaml", "http://x", loot_dir) is False
    assert not (loot_dir / "masterlist_x.yaml").exists()


def test_ensure_masterlist_without_url(loot_dir):
    assert ensure_masterlist("masterlist_x.yaml", "", loot_dir) is False


def test_ensure_masterlist_unwritable_dir(tmp_path, monkeypatch):
    monkeypatch.setattr("LOOT.loot_sorter.requests.get",
                        lambda url, timeout: FakeResponse(b"plugins: []"))
    missing = tmp_path / "no-such-dir"
    assert ensure_masterlist("masterlist_x.yaml", "http://x", missing) is False
    assert not missing.exists()


def test_open_without_handle():
    mgr = LootManager(shim=FakeShim(handle=None))
    assert mgr.open(LootGameType.SkyrimSE, "/v", "/g") is False
    assert mgr.available is False


def test_reopen_closes_previous_session(fake_shim, loot_dir):
    mgr = LootManager(shim=fake_shim, data_dir=loot_dir)
    mgr.open(LootGameType.SkyrimSE, "/v", "/g")
    mgr.open(LootGameType.Fallout4, "/v", "/g")
    assert fake_shim.destroyed == [0x1000]
    assert mgr.game_type is LootGameType.Fallout4
    with mgr:
        pass
    assert fake_shim.destroyed == [0x1000, 0x1000]


def test_reload_without_masterlist(manager, fake_shim):
    fake_shim.set_details("A.esp", {"messages": [{"text": "hi"}]})
    lines = []
    assert manager.reload_metadata(["A.esp"], log_fn=lines.append) is False
    assert manager.details("A.esp") is None
    assert any("Download a masterlist" in line for line in lines)


def test_reload_with_masterlist(manager, fake_shim, loot_dir):
    (loot_dir / "masterlist_skyrimse.yaml").write_text("")
    (loot_dir / PRELUDE_FILE).write_text("")
    (loot_dir / "userlist_skyrimse.yaml").write_text("")
    fake_shim.set_details("A.esp", {"messages": [{"level": "warn", "text": "careful"}]})
    fake_shim.general = '[{"level": "info", "text": "general note"}]'

    assert manager.reload_metadata(["A.esp", "B.esp"]) is True
    assert ("masterlist", str(loot_dir / "masterlist_skyrimse.yaml"),
            str(loot_dir / PRELUDE_FILE)) in fake_shim.calls
    assert ("userlist", str(loot_dir / "userlist_skyrimse.yaml")) in fake_shim.calls
    assert manager.details("a.ESP") is not None
    assert manager.details("B.esp") is None
    assert fake_shim.outstanding == []

    report = manager.warnings([PluginInfo("A.esp", PluginKind.PLUGIN)])
    assert [(e.plugin, e.category) for e in report] == [
        ("A.esp", WarningCategory.WARNING),
        ("General", WarningCategory.INFO),
    ]


def test_masterlist_load_failure(manager, fake_shim, loot_dir):
    (loot_dir / "masterlist_skyrimse.yaml").write_text("")
    fake_shim.rc["masterlist"] = 1
    assert manager.reload_metadata(["A.esp"]) is False
    assert manager.masterlist_loaded is False


def test_sort_writes_loadorder(manager, fake_shim, tmp_path):
    fake_shim.sorted = ["Skyrim.esm", "B.esp", "A.esp"]
    loadorder = tmp_path / "loadorder.txt"
    result = manager.sort(["Skyrim.esm", "A.esp", "B.esp", "Extra.esp"], loadorder)

    assert result.success
    assert result.sorted_names == ["Skyrim.esm", "B.esp", "A.esp", "Extra.esp"]
    assert result.moved_count == 2
    assert read_loadorder(loadorder) == result.sorted_names
    assert fake_shim.freed_lists


def test_sort_failure_is_reported(manager, fake_shim, tmp_path):
    fake_shim.rc["sort"] = 7
    result = manager.sort(["A.esp"], tmp_path / "loadorder.txt")
    assert result.success is False
    assert result.sorted_names == ["A.esp"]
    assert not (tmp_path / "loadorder.txt").exists()


def test_sort_without_session():
    result = LootManager(shim=FakeShim(handle=None)).sort(["A.esp"])
    assert result.success is False
    assert result.moved_count == 0


def test_sort_when_library_hides_order(loot_dir, tmp_path):
    shim = FakeShim(has_sorted_plugins=False)
    mgr = LootManager(shim=shim, data_dir=loot_dir)
    mgr.open(LootGameType.SkyrimSE, "/v", "/g")
    result = mgr.sort(["A.esp", "B.esp"], tmp_path / "loadorder.txt")
    assert result.success
    assert result.sorted_names == ["A.esp", "B.esp"]
    assert result.moved_count == 0
    assert any("did not report" in w for w in result.warnings)


def test_reset_userlist(manager, fake_shim, loot_dir):
    userlist = loot_dir / "userlist_skyrimse.yaml"
    userlist.write_text("plugins: []")
    assert manager.reset_userlist() is True
    assert not userlist.exists()
    assert ("clear_user",) in fake_shim.calls
