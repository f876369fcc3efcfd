"""File operation dispatcher: mkdir / delete / copy / move.

One ``FileOperation`` per request. Each runs on its own thread and talks
to the caller only through an ``EventChannel``:

    started -> running -> completed | failed

Delete and move try an atomic ``os.rename`` first. If the rename fails
for any reason (EXDEV across mounts, permissions, ...) they fall back to a
full ``copy_tree`` followed by removal of the source. The source is only
removed after the copy has finished, so a delete never loses data that
is not already in the recycle bin.

There is no locking between operations: two requests touching the same
subtree at the same time are not coordinated.
"""

from __future__ import annotations

import os
import shutil
import stat
import threading
import traceback
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from services.config import Settings
from services.events import CompleteEvent, Emitter, ErrorEvent, EventChannel
from services.logging_setup import core_log as _core_log
from services.sandbox import Sandbox
from services.transfer import TransferStats, copy_tree
from services.trash import RecycleStore


ACTIONS = ("mkdir", "delete", "copy", "move")

STATE_STARTED = "started"
STATE_RUNNING = "running"
STATE_COMPLETED = "completed"
STATE_FAILED = "failed"


class BadRequest(ValueError):
    pass


@dataclass(frozen=True)
class FileOpRequest:
    action: str
    path: str
    destination: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Any) -> "FileOpRequest":
        if not isinstance(data, dict):
            raise BadRequest("bad_request")
        action = str(data.get("action") or "").strip().lower()
        if action not in ACTIONS:
            raise BadRequest("unsupported_action")
        path = data.get("path")
        if path is not None and not isinstance(path, str):
            raise BadRequest("bad_path")
        dest = data.get("destination")
        if action in ("copy", "move"):
            if not isinstance(dest, str) or not dest.strip():
                raise BadRequest("destination_required")
        else:
            dest = None
        return cls(action=action, path=path or "", destination=dest)


def force_remove(path: str) -> None:
    """``rm -rf`` for one entry: symlinks are unlinked, never followed."""
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        return
    if stat.S_ISDIR(st.st_mode):
        shutil.rmtree(path)
    else:
        os.unlink(path)


class FileOperation:
    def __init__(
        self,
        request: FileOpRequest,
        *,
        sandbox: Sandbox,
        recycle: RecycleStore,
        emit: Emitter,
        settings: Optional[Settings] = None,
    ) -> None:
        self.request = request
        self.sandbox = sandbox
        self.recycle = recycle
        self.settings = settings or Settings(root=sandbox.root)
        self.op_id = f"op_{uuid.uuid4().hex[:12]}"
        self.state = STATE_STARTED
        self.stats = TransferStats()
        self.fallback = False
        self._emit = emit

    # --- helpers ---

    def _copy(self, src: str, dest: str) -> None:
        stats = copy_tree(
            src,
            dest,
            self._emit,
            chunk_size=self.settings.chunk_size,
            interval=self.settings.progress_interval,
        )
        self.stats.files += stats.files
        self.stats.dirs += stats.dirs
        self.stats.links += stats.links
        self.stats.bytes += stats.bytes

    def _rename_or_copy(self, src: str, dest: str) -> None:
        try:
            os.rename(src, dest)
            return
        except OSError as e:
            _core_log("info", "fileops.rename_fallback", op_id=self.op_id, src=src, dst=dest, error=str(e))
        self.fallback = True
        self._copy(src, dest)
        force_remove(src)

    # --- actions ---

    def _do_mkdir(self) -> None:
        os.makedirs(self.sandbox.resolve(self.request.path), exist_ok=True)

    def _do_delete(self) -> None:
        src = self.sandbox.resolve(self.request.path)
        self.recycle.check_deletable(src)
        if not os.path.lexists(src):
            raise FileNotFoundError(f"not_found: {self.request.path}")
        self._rename_or_copy(src, self.recycle.allocate(src))

    def _do_copy(self) -> None:
        src = self.sandbox.resolve(self.request.path)
        dest = self.sandbox.resolve(self.request.destination)
        self._copy(src, dest)

    def _do_move(self) -> None:
        src = self.sandbox.resolve(self.request.path)
        dest = self.sandbox.resolve(self.request.destination)
        if self.sandbox.is_root(src):
            raise PermissionError("refuse_move_root")
        if os.path.normpath(src) == os.path.normpath(dest):
            return
        self._rename_or_copy(src, dest)

    def run(self) -> None:
        """Execute the request; always emits exactly one terminal event."""
        self.state = STATE_RUNNING
        handler = getattr(self, f"_do_{self.request.action}")
        try:
            handler()
        except Exception as e:
            self.state = STATE_FAILED
            _core_log(
                "warning",
                "fileops.failed",
                op_id=self.op_id,
                action=self.request.action,
                path=self.request.path,
                dst=self.request.destination,
                error=str(e),
            )
            self._emit(ErrorEvent(error=str(e) or e.__class__.__name__, details=traceback.format_exc()))
            return
        self.state = STATE_COMPLETED
        _core_log(
            "info",
            "fileops.done",
            op_id=self.op_id,
            action=self.request.action,
            path=self.request.path,
            dst=self.request.destination,
            fallback=self.fallback,
            files=self.stats.files,
            bytes=self.stats.bytes,
        )
        self._emit(CompleteEvent())


def start_operation(
    request: FileOpRequest,
    *,
    sandbox: Sandbox,
    recycle: RecycleStore,
    settings: Settings,
) -> Tuple[EventChannel, threading.Thread]:
    """Run ``request`` on a daemon thread; returns its channel and thread."""
    channel = EventChannel(maxsize=settings.channel_size)
    op = FileOperation(request, sandbox=sandbox, recycle=recycle, emit=channel.emit, settings=settings)
    t = threading.Thread(target=op.run, name=f"fileops-{op.op_id}", daemon=True)
    _core_log("info", "fileops.start", op_id=op.op_id, action=request.action, path=request.path, dst=request.destination)
    t.start()
    return channel, t
