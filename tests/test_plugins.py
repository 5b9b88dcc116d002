from Utils.plugins import count_moved, merge_loadorder, read_loadorder, write_loadorder


def test_loadorder_round_trip(tmp_path):
    path = tmp_path / "sub" / "loadorder.txt"
    write_loadorder(path, ["Skyrim.esm", "Update.esm", "Mod.esp"])
    assert path.read_text() == "Skyrim.esm\nUpdate.esm\nMod.esp\n"
    assert read_loadorder(path) == ["Skyrim.esm", "Update.esm", "Mod.esp"]
    assert not (tmp_path / "sub" / "loadorder.tmp").exists()


def test_read_skips_blank_and_comments(tmp_path):
    path = tmp_path / "loadorder.txt"
    path.write_text("# comment\n\nSkyrim.esm\n  Mod.esp  \n")
    assert read_loadorder(path) == ["Skyrim.esm", "Mod.esp"]
    assert read_loadorder(tmp_path / "missing.txt") == []


def test_merge_keeps_previous_order():
    previous = ["Skyrim.esm", "Gone.esp", "b.esp", "A.esp"]
    present = ["A.esp", "B.esp", "Skyrim.esm", "New.esp"]
    assert merge_loadorder(previous, present) == ["Skyrim.esm", "B.esp", "A.esp", "New.esp"]


def test_count_moved():
    assert count_moved(["a", "b", "c"], ["a", "c", "b"]) == 2
    assert count_moved(["a", "b"], ["A", "B"]) == 0
    assert count_moved(["a"], ["a", "b"]) == 1
