"""File operations backend for the dual-pane UI.

This module serves POST /api/files (mkdir / delete / copy / move).

Request body (JSON):
    {"action": "mkdir"|"delete"|"copy"|"move", "path": "...", "destination": "..."}

The response is an ``application/x-ndjson`` stream: zero or more progress
records followed by exactly one ``complete`` or ``error`` record. The UI
issues one request per selected entry, so a multi-select copy runs as
several independent operations.
"""

from __future__ import annotations

from typing import Any

from flask import Blueprint, Response, request

from routes_fs import error_response
from services.config import Settings
from services.events import encode_event
from services.fileops import BadRequest, FileOpRequest, start_operation
from services.logging_setup import core_log as _core_log
from services.sandbox import Sandbox
from services.trash import RecycleStore


def create_fileops_blueprint(sandbox: Sandbox, recycle: RecycleStore, settings: Settings) -> Blueprint:
    bp = Blueprint("fileops", __name__)

    @bp.post("/api/files")
    def api_files_operation() -> Any:
        data = request.get_json(silent=True, force=True)
        try:
            req = FileOpRequest.from_payload(data)
        except BadRequest as e:
            return error_response(str(e), 400, ok=False)

        channel, worker = start_operation(req, sandbox=sandbox, recycle=recycle, settings=settings)

        def _gen():
            try:
                for event in channel.iter_events(worker.is_alive):
                    yield encode_event(event)
            finally:
                # Runs on normal end and on client disconnect (generator close).
                if not channel.terminated:
                    _core_log("info", "fileops.client_gone", action=req.action, path=req.path)
                channel.close()

        headers = {"Cache-Control": "no-store", "X-Accel-Buffering": "no"}
        return Response(_gen(), mimetype="application/x-ndjson", headers=headers)

    return bp
