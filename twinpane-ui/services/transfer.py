"""Recursive copy with per-file progress reporting.

Used for explicit copy requests and as the slow path of move/delete when
an atomic rename is not possible (EXDEV, permissions, ...).

Ordering: children are copied in sorted name order, depth-first, one at a
time. A failed copy is not rolled back: the destination may be left
partially populated. Symlinks already present at the destination are
replaced, never written through.
"""

from __future__ import annotations

import errno
import math
import os
import shutil
import stat
import time
from dataclasses import dataclass
from typing import Callable

from services.events import Emitter, OperationEvent, ProgressEvent

MIB = 1024 * 1024


class TransferError(OSError):
    pass


@dataclass
class TransferStats:
    files: int = 0
    dirs: int = 0
    links: int = 0
    bytes: int = 0


def _safe_emit(emit: Emitter, event: OperationEvent) -> None:
    try:
        emit(event)
    except Exception:
        # The consumer may be gone; the copy goes on regardless.
        pass


def _is_within(path: str, parent: str) -> bool:
    try:
        return os.path.commonpath([path, parent]) == parent
    except ValueError:
        return False


def _percent(done: int, total: int) -> int:
    if total <= 0:
        return 0
    # Round half up, like the browser side does.
    return min(100, int(math.floor(done * 100.0 / total + 0.5)))


def _progress(name: str, done: int, total: int, elapsed: float) -> ProgressEvent:
    speed = (done / elapsed / MIB) if elapsed > 0 else 0.0
    return ProgressEvent(file=name, percent=_percent(done, total), speed=speed)


def _copystat_best_effort(src: str, dst: str) -> None:
    """Some mounts (exFAT/NTFS/FAT, FUSE) reject metadata; bytes matter, metadata doesn't."""
    try:
        shutil.copystat(src, dst, follow_symlinks=False)
    except (OSError, NotImplementedError):
        pass


def copy_file(
    src: str,
    dest: str,
    size: int,
    emit: Emitter,
    *,
    chunk_size: int = 64 * 1024,
    interval: float = 0.2,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """Copy one regular file, emitting throttled progress. Returns bytes copied."""
    name = os.path.basename(src)
    # Never write through a symlink sitting at the destination.
    if os.path.islink(dest):
        os.unlink(dest)

    start = clock()
    last = start
    done = 0
    with open(src, "rb") as rf, open(dest, "wb") as wf:
        while True:
            chunk = rf.read(chunk_size)
            if not chunk:
                break
            wf.write(chunk)
            done += len(chunk)
            now = clock()
            if now - last >= interval:
                _safe_emit(emit, _progress(name, done, size, now - start))
                last = now

    _safe_emit(emit, _progress(name, done, size, clock() - start))
    _copystat_best_effort(src, dest)
    return done


def _copy_symlink(src: str, dest: str) -> None:
    target = os.readlink(src)
    if os.path.islink(dest) or (os.path.lexists(dest) and not os.path.isdir(dest)):
        os.unlink(dest)
    os.symlink(target, dest)


def _copy_entry(src: str, dest: str, emit: Emitter, stats: TransferStats, opts: dict) -> None:
    st = os.lstat(src)
    mode = st.st_mode

    if stat.S_ISLNK(mode):
        _copy_symlink(src, dest)
        stats.links += 1
        return

    if stat.S_ISDIR(mode):
        # A link at the destination is replaced, never descended into.
        if os.path.islink(dest):
            os.unlink(dest)
        os.makedirs(dest, exist_ok=True)
        stats.dirs += 1
        for name in sorted(os.listdir(src)):
            _copy_entry(os.path.join(src, name), os.path.join(dest, name), emit, stats, opts)
        _copystat_best_effort(src, dest)
        return

    if stat.S_ISREG(mode):
        stats.bytes += copy_file(src, dest, int(st.st_size), emit, **opts)
        stats.files += 1
        return

    # FIFOs, sockets and device nodes would block or make no sense to copy.
    raise TransferError(errno.EINVAL, "unsupported_file_type", src)


def copy_tree(
    src: str,
    dest: str,
    emit: Emitter,
    *,
    chunk_size: int = 64 * 1024,
    interval: float = 0.2,
    clock: Callable[[], float] = time.monotonic,
) -> TransferStats:
    """Copy ``src`` (file, directory or symlink) to ``dest``.

    Raises ``OSError`` on the first I/O failure. Progress emission never
    raises.
    """
    src_n = os.path.normpath(src)
    dest_n = os.path.normpath(dest)
    if src_n == dest_n:
        raise TransferError(errno.EINVAL, "same_path", src)

    st = os.lstat(src_n)
    if stat.S_ISDIR(st.st_mode) and _is_within(dest_n, src_n):
        raise TransferError(errno.EINVAL, "destination_inside_source", dest)

    parent = os.path.dirname(dest_n)
    if parent:
        os.makedirs(parent, exist_ok=True)

    stats = TransferStats()
    opts = {"chunk_size": chunk_size, "interval": interval, "clock": clock}
    _copy_entry(src_n, dest_n, emit, stats, opts)
    return stats
