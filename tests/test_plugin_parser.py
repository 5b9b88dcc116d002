import struct

import pytest

from conftest import plugin_bytes
from Utils.plugin_parser import (
    PluginInfo,
    PluginKind,
    ScanError,
    check_missing_masters,
    classify_plugin,
    is_plugin_file,
    read_plugin_header,
    scan_masters,
    scan_plugins,
)


def test_two_mast_records_in_order():
    buf = plugin_bytes("Skyrim.esm", "Update.esm")
    assert scan_masters(buf) == ["Skyrim.esm", "Update.esm"]


def test_name_is_cut_at_first_nul():
    raw = b"Dawnguard.esm\x00garbage"
    buf = b"\x00" * 16 + b"MAST" + struct.pack("<I", len(raw)) + raw
    assert scan_masters(buf) == ["Dawnguard.esm"]


def test_name_without_nul_uses_declared_length():
    raw = b"HearthFires.esm"
    buf = b"\x00" * 16 + b"MAST" + struct.pack("<I", len(raw)) + raw + b"\x00" * 4
    assert scan_masters(buf) == ["HearthFires.esm"]


def test_length_past_end_stops_scan():
    buf = b"\x00" * 16 + b"MAST" + struct.pack("<I", 1000) + b"short"
    assert scan_masters(buf) == []


def test_short_file_has_no_masters(tmp_path):
    path = tmp_path / "Tiny.esp"
    path.write_bytes(b"MAST\x04\x00\x00\x00ab")
    info = read_plugin_header(path)
    assert info.masters == []
    assert info.kind is PluginKind.PLUGIN


def test_read_plugin_header(tmp_path):
    path = tmp_path / "Patch.ESM"
    path.write_bytes(plugin_bytes("Skyrim.esm"))
    info = read_plugin_header(path)
    assert info.filename == "Patch.ESM"
    assert info.display_name == "Patch.ESM"
    assert info.kind is PluginKind.MASTER
    assert info.masters == ["Skyrim.esm"]


def test_unreadable_file_raises_scan_error(tmp_path):
    with pytest.raises(ScanError) as excinfo:
        read_plugin_header(tmp_path / "Missing.esp")
    assert excinfo.value.path == tmp_path / "Missing.esp"


@pytest.mark.parametrize("name, kind", [
    ("a.esm", PluginKind.MASTER),
    ("A.ESM", PluginKind.MASTER),
    ("b.esl", PluginKind.LIGHT),
    ("c.esp", PluginKind.PLUGIN),
    ("d.txt", PluginKind.PLUGIN),
])
def test_classify_plugin(name, kind):
    assert classify_plugin(name) is kind


def test_is_plugin_file():
    assert is_plugin_file("Foo.EsP")
    assert not is_plugin_file("Foo.bsa")
    assert not is_plugin_file("esp")


def test_scan_plugins_root_level_sorted(tmp_path):
    (tmp_path / "zeta.esp").write_bytes(plugin_bytes("Skyrim.esm"))
    (tmp_path / "Alpha.esm").write_bytes(plugin_bytes())
    (tmp_path / "readme.txt").write_text("hi")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "Nested.esp").write_bytes(plugin_bytes())

    plugins = scan_plugins(tmp_path)
    assert [p.filename for p in plugins] == ["Alpha.esm", "zeta.esp"]
    assert plugins[1].masters == ["Skyrim.esm"]


def test_scan_plugins_missing_dir(tmp_path):
    assert scan_plugins(tmp_path / "nope") == []


def test_check_missing_masters():
    plugins = [
        PluginInfo("Skyrim.esm", PluginKind.MASTER),
        PluginInfo("Mod.esp", PluginKind.PLUGIN, masters=["skyrim.esm", "Ghost.esm"]),
        PluginInfo("Fine.esp", PluginKind.PLUGIN, masters=["Skyrim.esm"]),
    ]
    assert check_missing_masters(plugins) == {"Mod.esp": ["Ghost.esm"]}
