import pytest

from Utils.deploy import (
    OverlayError,
    copy_base_plugins,
    disable_mod,
    enable_mod,
    list_overlay,
    reconcile,
)
from Utils.mod_registry import ModRecord


@pytest.fixture
def virtual(tmp_path):
    d = tmp_path / "VirtualData"
    d.mkdir()
    return d


def make_mod(tmp_path, mod_id, files, enabled=True):
    data = tmp_path / "Mods" / mod_id / "Data"
    data.mkdir(parents=True)
    for name in files:
        (data / name).write_bytes(f"{mod_id}:{name}".encode())
    return ModRecord(id=mod_id, name=mod_id, mod_path=str(data.parent),
                     data_path=str(data), plugin_files=list(files), enabled=enabled)


def snapshot(directory):
    return {p.name: p.read_bytes() for p in directory.iterdir()}


def test_enable_is_idempotent(tmp_path, virtual):
    mod = make_mod(tmp_path, "A", ["a.esp", "a.esm"])
    assert enable_mod(mod, virtual) == 2
    once = snapshot(virtual)
    enable_mod(mod, virtual)
    assert snapshot(virtual) == once
    assert list_overlay(virtual) == ["a.esm", "a.esp"]


def test_disable_is_idempotent(tmp_path, virtual):
    mod = make_mod(tmp_path, "A", ["a.esp"])
    enable_mod(mod, virtual)
    assert disable_mod(mod, virtual) == 1
    assert disable_mod(mod, virtual) == 0
    assert snapshot(virtual) == {}


def test_reconcile_converges(tmp_path, virtual):
    records = [
        make_mod(tmp_path, "A", ["a.esp"]),
        make_mod(tmp_path, "B", ["b.esp"], enabled=False),
        make_mod(tmp_path, "C", ["c.esm"]),
    ]
    assert reconcile(records, virtual) == []
    first = snapshot(virtual)
    assert reconcile(records, virtual) == []
    assert snapshot(virtual) == first
    assert sorted(first) == ["a.esp", "c.esm"]


def test_reconcile_continues_after_failure(tmp_path, virtual):
    broken = make_mod(tmp_path, "A", ["a.esp"])
    (tmp_path / "Mods" / "A" / "Data" / "a.esp").unlink()
    good = make_mod(tmp_path, "B", ["b.esp"])
    failures = reconcile([broken, good], virtual)
    assert [f.mod_id for f in failures] == ["A"]
    assert list_overlay(virtual) == ["b.esp"]


def test_disjoint_disable_keeps_other_mod(tmp_path, virtual):
    a = make_mod(tmp_path, "A", ["a.esp"])
    b = make_mod(tmp_path, "B", ["b.esp"])
    enable_mod(a, virtual)
    enable_mod(b, virtual)
    disable_mod(a, virtual)
    assert list_overlay(virtual) == ["b.esp"]


def test_overlap_last_writer_wins_and_disable_removes(tmp_path, virtual):
    a = make_mod(tmp_path, "A", ["shared.esp"])
    b = make_mod(tmp_path, "B", ["shared.esp"])
    enable_mod(a, virtual)
    enable_mod(b, virtual)
    assert (virtual / "shared.esp").read_bytes() == b"B:shared.esp"

    disable_mod(a, virtual)
    assert not (virtual / "shared.esp").exists()


def test_missing_source_reports_file_and_progress(tmp_path, virtual):
    mod = make_mod(tmp_path, "A", ["first.esp", "second.esp"])
    (tmp_path / "Mods" / "A" / "Data" / "second.esp").unlink()
    with pytest.raises(OverlayError) as excinfo:
        enable_mod(mod, virtual)
    assert excinfo.value.filename == "second.esp"
    assert excinfo.value.completed == ["first.esp"]


def test_path_traversal_is_refused(tmp_path, virtual):
    mod = ModRecord(id="evil", data_path=str(tmp_path), plugin_files=["../escape.esp"])
    (tmp_path / "escape.esp").write_bytes(b"x")
    with pytest.raises(OverlayError):
        enable_mod(mod, virtual)


def test_copy_base_plugins(tmp_path, virtual):
    game_data = tmp_path / "Game" / "Data"
    game_data.mkdir(parents=True)
    (game_data / "Skyrim.esm").write_bytes(b"base")
    (game_data / "Update.esm").write_bytes(b"base")
    (game_data / "Skyrim - Textures0.bsa").write_bytes(b"bsa")
    (virtual / "Update.esm").write_bytes(b"already here")

    assert copy_base_plugins(game_data, virtual) == 1
    assert (virtual / "Skyrim.esm").read_bytes() == b"base"
    assert (virtual / "Update.esm").read_bytes() == b"already here"
    assert not (virtual / "Skyrim - Textures0.bsa").exists()


def test_copy_base_plugins_missing_data_dir(tmp_path, virtual):
    with pytest.raises(FileNotFoundError):
        copy_base_plugins(tmp_path / "Game" / "Data", virtual)
