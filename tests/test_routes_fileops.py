import errno
import os
from pathlib import Path
from unittest.mock import patch

from conftest import parse_ndjson


def _exdev(*_args, **_kwargs):
    raise OSError(errno.EXDEV, "Invalid cross-device link")


def test_mkdir_then_list(client, run_op, root: Path) -> None:
    (root / "projects").mkdir()
    events = run_op({"action": "mkdir", "path": "/projects/new"})
    assert events == [{"type": "complete"}]

    listing = client.get("/api/files", query_string={"path": "/projects"}).get_json()
    assert {"name": "new", "isDirectory": True} == {k: listing["files"][0][k] for k in ("name", "isDirectory")}


def test_stream_headers(client) -> None:
    resp = client.post("/api/files", json={"action": "mkdir", "path": "/h"})
    assert resp.headers["Content-Type"].startswith("application/x-ndjson")
    assert resp.headers["Cache-Control"] == "no-store"
    parse_ndjson(resp.get_data())


def test_delete_across_devices_lands_in_recycle_bin(run_op, root: Path) -> None:
    (root / "a").mkdir()
    (root / "a" / "b.txt").write_bytes(b"x" * 50_000)

    with patch("services.fileops.os.rename", side_effect=_exdev):
        events = run_op({"action": "delete", "path": "/a/b.txt"})

    assert events[-1] == {"type": "complete"}
    progress = events[:-1]
    assert progress
    assert all(e["type"] == "progress" and e["file"] == "b.txt" for e in progress)
    assert all(isinstance(e["speed"], str) for e in progress)
    assert progress[-1]["percent"] == 100

    assert not (root / "a" / "b.txt").exists()
    trashed = os.listdir(root / "a" / "$Recycle.Bin")
    assert len(trashed) == 1
    ts, name = trashed[0].split("_", 1)
    assert ts.isdigit() and name == "b.txt"


def test_nested_copy_mirrors_tree(run_op, root: Path) -> None:
    (root / "x" / "n1" / "n2").mkdir(parents=True)
    (root / "x" / "n1" / "n2" / "deep.txt").write_text("deep")
    (root / "x" / "top.txt").write_text("top")

    events = run_op({"action": "copy", "path": "/x", "destination": "/y"})

    assert events[-1] == {"type": "complete"}
    assert sum(1 for e in events if e["type"] in ("complete", "error")) == 1
    assert (root / "y" / "n1" / "n2" / "deep.txt").read_text() == "deep"
    assert (root / "y" / "top.txt").read_text() == "top"


def test_move_renames(run_op, root: Path) -> None:
    (root / "m.txt").write_text("m")
    events = run_op({"action": "move", "path": "/m.txt", "destination": "/n.txt"})
    assert events == [{"type": "complete"}]
    assert (root / "n.txt").read_text() == "m"
    assert not (root / "m.txt").exists()


def test_failed_operation_streams_single_error(run_op) -> None:
    events = run_op({"action": "copy", "path": "/missing", "destination": "/else"})
    assert len(events) == 1
    assert events[0]["type"] == "error"
    assert events[0]["error"]
    assert "Traceback" in events[0]["details"]


def test_escaping_destination_stays_inside_root(run_op, root: Path, tmp_path: Path) -> None:
    (root / "f.txt").write_text("f")
    events = run_op({"action": "copy", "path": "/f.txt", "destination": "../../outside.txt"})
    assert events[-1]["type"] == "complete"
    assert (root / "outside.txt").read_text() == "f"
    assert not (tmp_path / "outside.txt").exists()


def test_bad_requests_are_rejected_before_streaming(client) -> None:
    resp = client.post("/api/files", data="not json", content_type="application/json")
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "bad_request", "ok": False}

    resp = client.post("/api/files", json={"action": "format", "path": "/"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "unsupported_action"

    resp = client.post("/api/files", json={"action": "move", "path": "/a"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "destination_required"


def test_unknown_route_is_json(client) -> None:
    resp = client.get("/api/nothing")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "not_found", "ok": False}
