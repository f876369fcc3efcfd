import os
from pathlib import Path
from unittest.mock import patch

import pytest

from services.sandbox import Sandbox
from services.trash import OperationRefused, RecycleStore


def _store(root: Path, **kw) -> RecycleStore:
    return RecycleStore(Sandbox(str(root)), clock=lambda: 1700000000.123, **kw)


def test_allocate_under_drive(root: Path) -> None:
    store = _store(root)
    src = str(root / "a" / "sub" / "b.txt")
    dst = store.allocate(src)
    assert dst == os.path.join(str(root), "a", "$Recycle.Bin", "1700000000123_b.txt")
    assert os.path.isdir(os.path.dirname(dst))


def test_allocate_for_top_level_segment_uses_root_bin(root: Path) -> None:
    (root / "a").mkdir()
    store = _store(root)
    dst = store.allocate(str(root / "a"))
    assert dst == os.path.join(str(root), "$Recycle.Bin", "1700000000123_a")


def test_allocate_adds_counter_on_collision(root: Path) -> None:
    store = _store(root)
    src = str(root / "a" / "b.txt")
    first = store.allocate(src)
    Path(first).write_text("x")
    second = store.allocate(src)
    assert second != first
    assert os.path.basename(second) == "1700000000123_1_b.txt"


def test_allocate_survives_mkdir_failure(root: Path) -> None:
    store = _store(root)
    with patch("services.trash.os.makedirs", side_effect=PermissionError("denied")):
        dst = store.allocate(str(root / "a" / "b.txt"))
    assert dst.endswith(os.path.join("a", "$Recycle.Bin", "1700000000123_b.txt"))


def test_is_trash_dir(root: Path) -> None:
    store = _store(root)
    assert store.is_trash_dir(str(root / "a" / "$Recycle.Bin"))
    assert store.is_trash_dir(str(root / "$Recycle.Bin"))
    assert not store.is_trash_dir(str(root / "a" / "$Recycle.Bin" / "1_b.txt"))
    assert not store.is_trash_dir(str(root / "a" / "b.txt"))


def test_check_deletable(root: Path) -> None:
    store = _store(root, protected=["c"])
    with pytest.raises(OperationRefused, match="refuse_delete_root"):
        store.check_deletable(str(root))
    with pytest.raises(OperationRefused, match="refuse_delete_recycle_bin"):
        store.check_deletable(str(root / "d" / "$Recycle.Bin"))
    with pytest.raises(OperationRefused, match="protected_path"):
        store.check_deletable(str(root / "c" / "windows"))
    store.check_deletable(str(root / "d" / "file.txt"))
