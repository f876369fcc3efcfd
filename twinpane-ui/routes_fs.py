"""Filesystem API for the dual-pane UI.

This blueprint exposes the browsing endpoints:

- GET  /api/files?path=...            directory listing
- POST /api/files/conflicts           names that already exist in a destination
- GET  /api/files/download?path=...   raw file bytes as an attachment
- POST /api/files/upload              multipart upload into a directory

All paths are client-relative ("/projects/a.txt") and are confined to the
sandbox root by ``Sandbox.resolve_followed``: these endpoints read or write
through the path, so a symlink pointing outside the root is treated as an
escape.
"""

from __future__ import annotations

import os
import stat
import uuid
from typing import Any, Dict, List
from urllib.parse import quote as _url_quote

from flask import Blueprint, Response, jsonify, request

from services.config import Settings
from services.listing import find_conflicts, list_directory
from services.logging_setup import core_log as _core_log
from services.sandbox import PathEscapeError, Sandbox


class UploadTooLarge(Exception):
    """Upload body exceeded the configured size limit."""


def error_response(message: str, status: int = 400, *, ok: bool | None = None, **extra: Any) -> Any:
    payload: Dict[str, Any] = {"error": message}
    if ok is not None:
        payload["ok"] = ok
    payload.update(extra)
    return jsonify(payload), status


def _sanitize_download_filename(name: str, *, default: str = "download") -> str:
    """Sanitize filename for Content-Disposition header (prevent header injection)."""
    s = os.path.basename((name or "").strip())
    s = s.replace("\r", "").replace("\n", "").replace('"', "")
    if not s:
        s = default
    if len(s) > 180:
        s = s[:180]
    return s


def _content_disposition_attachment(filename: str) -> str:
    """Build a safe Content-Disposition attachment header value."""
    fn = _sanitize_download_filename(filename)
    # RFC 5987 filename* improves UTF-8 handling in modern browsers.
    fn_star = _url_quote(fn, safe="")
    try:
        fn.encode("latin-1")
    except UnicodeEncodeError:
        fn = fn.encode("ascii", "replace").decode("ascii").replace("?", "_")
    return f"attachment; filename=\"{fn}\"; filename*=UTF-8''{fn_star}"


def _upload_filename(raw: str) -> str:
    name = os.path.basename(str(raw or "").replace("\\", "/").replace("\x00", "").strip())
    if name in ("", ".", ".."):
        return "upload.bin"
    return name


def create_fs_blueprint(sandbox: Sandbox, settings: Settings) -> Blueprint:
    """Create the /api/files browsing blueprint."""

    bp = Blueprint("fs", __name__)
    chunk_size = settings.chunk_size
    max_upload_bytes = settings.max_upload_bytes

    @bp.get("/api/files")
    def api_files_list() -> Any:
        raw = request.args.get("path", "") or ""
        try:
            rp = sandbox.resolve_followed(raw)
        except PathEscapeError as e:
            return error_response(str(e), 403, ok=False)
        if not os.path.isdir(rp):
            return error_response("not_a_directory", 400, ok=False, path=raw)
        try:
            entries = list_directory(rp)
        except OSError as e:
            _core_log("warning", "fs.list_failed", path=rp, error=str(e))
            return error_response("list_failed", 500, ok=False, details=str(e))
        return jsonify({"path": raw, "files": [e.to_dict() for e in entries]})

    @bp.post("/api/files/conflicts")
    def api_files_conflicts() -> Any:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return error_response("bad_request", 400, ok=False)
        names = data.get("names")
        if not isinstance(names, list):
            return error_response("names_required", 400, ok=False)
        try:
            rp = sandbox.resolve_followed(str(data.get("path") or ""))
        except PathEscapeError as e:
            return error_response(str(e), 403, ok=False)
        try:
            conflicts: List[str] = find_conflicts([str(n) for n in names], rp)
        except OSError as e:
            return error_response("list_failed", 500, ok=False, details=str(e))
        return jsonify({"ok": True, "path": data.get("path") or "", "conflicts": conflicts})

    @bp.get("/api/files/download")
    def api_files_download() -> Any:
        raw = str(request.args.get("path", "") or "").strip()
        if not raw:
            return error_response("path_required", 400, ok=False)
        try:
            rp = sandbox.resolve_followed(raw)
        except PathEscapeError as e:
            return error_response(str(e), 403, ok=False)
        try:
            st = os.stat(rp)
        except FileNotFoundError:
            return error_response("not_found", 404, ok=False)
        except OSError as e:
            return error_response("download_failed", 500, ok=False, details=str(e))
        if not stat.S_ISREG(st.st_mode):
            return error_response("not_a_file", 400, ok=False)
        try:
            fp = open(rp, "rb")
        except OSError as e:
            return error_response("download_failed", 500, ok=False, details=str(e))

        def _gen():
            try:
                while True:
                    chunk = fp.read(chunk_size)
                    if not chunk:
                        break
                    yield chunk
            finally:
                fp.close()

        headers = {
            "Content-Disposition": _content_disposition_attachment(os.path.basename(rp)),
            "Content-Length": str(int(st.st_size)),
            "Cache-Control": "no-store",
        }
        _core_log("info", "fs.download", path=rp, bytes=int(st.st_size))
        return Response(_gen(), mimetype="application/octet-stream", headers=headers)

    @bp.post("/api/files/upload")
    def api_files_upload() -> Any:
        """Upload one file into a directory.

        multipart: file=<file>, path=<destination directory> (form field or query)

        An existing file of the same name is overwritten.
        """
        f = request.files.get("file")
        if f is None:
            return error_response("file_required", 400, ok=False)
        raw_dir = str(request.form.get("path") or request.args.get("path") or "")
        try:
            ddir = sandbox.resolve_followed(raw_dir)
        except PathEscapeError as e:
            return error_response(str(e), 403, ok=False)
        if not os.path.isdir(ddir):
            return error_response("not_a_directory", 400, ok=False, path=raw_dir)

        name = _upload_filename(f.filename or "")
        dest = os.path.join(ddir, name)
        if os.path.isdir(dest) and not os.path.islink(dest):
            return error_response("not_a_file", 400, ok=False, name=name)

        # Stage next to the target so the final os.replace stays on one filesystem.
        tmp_path = os.path.join(ddir, f".{name}.upload-{uuid.uuid4().hex[:8]}.tmp")
        total = 0
        try:
            with open(tmp_path, "wb") as outfp:
                while True:
                    chunk = f.stream.read(chunk_size)
                    if not chunk:
                        break
                    total += len(chunk)
                    if max_upload_bytes is not None and total > max_upload_bytes:
                        raise UploadTooLarge(total)
                    outfp.write(chunk)
            os.replace(tmp_path, dest)
        except UploadTooLarge:
            _discard(tmp_path)
            return error_response("upload_too_large", 413, ok=False, max_mb=settings.max_upload_mb)
        except (OSError, ValueError) as e:
            _discard(tmp_path)
            _core_log("warning", "fs.upload_failed", path=dest, error=str(e))
            return error_response("upload_failed", 500, ok=False, details=str(e))

        _core_log("info", "fs.upload", path=dest, bytes=int(total))
        return jsonify({"ok": True, "success": True, "bytes": total, "path": sandbox.relative(dest)})

    return bp


def _discard(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        _core_log("warning", "fs.tmp_cleanup_failed", path=path, error=str(e))
