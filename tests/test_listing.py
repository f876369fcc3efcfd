import os
from pathlib import Path

from services.listing import DirectoryEntry, find_conflicts, list_directory


def test_directories_first_then_name(tmp_path: Path) -> None:
    (tmp_path / "b.txt").write_text("bb")
    (tmp_path / "a.txt").write_text("a")
    (tmp_path / "zdir").mkdir()
    (tmp_path / "Adir").mkdir()

    entries = list_directory(str(tmp_path))
    assert [e.name for e in entries] == ["Adir", "zdir", "a.txt", "b.txt"]
    assert [e.is_directory for e in entries] == [True, True, False, False]
    assert entries[3].size == 2
    assert entries[0].size == 0


def test_broken_symlink_is_reported_not_fatal(tmp_path: Path) -> None:
    (tmp_path / "ok.txt").write_text("x")
    (tmp_path / "dangling").symlink_to(tmp_path / "missing")

    by_name = {e.name: e for e in list_directory(str(tmp_path))}
    assert by_name["dangling"].error
    assert by_name["dangling"].to_dict()["error"] is True
    assert "error" not in by_name["ok.txt"].to_dict()


def test_entry_dict_shape() -> None:
    d = DirectoryEntry("f.txt", False, size=3, mtime=0.5).to_dict()
    assert d == {
        "name": "f.txt",
        "isDirectory": False,
        "size": 3,
        "mtime": "1970-01-01T00:00:00.500Z",
    }
    assert DirectoryEntry("x", True, error=True).to_dict()["mtime"] is None


def test_find_conflicts(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("a")
    (tmp_path / "sub").mkdir()
    assert find_conflicts(["a.txt", "b.txt", "sub", "a.txt", ""], str(tmp_path)) == ["a.txt", "sub"]
    assert find_conflicts(["a.txt"], os.path.join(str(tmp_path), "nope")) == []
